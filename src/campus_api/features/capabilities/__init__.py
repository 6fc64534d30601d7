"""Capability registry feature."""
