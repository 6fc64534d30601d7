"""Workspace (panel) configuration feature."""
