"""rbac feature."""
