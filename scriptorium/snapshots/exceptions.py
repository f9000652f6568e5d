class SnapshotError(Exception):
    """Base exception for snapshot operations."""


class SnapshotNotFoundError(SnapshotError):
    """Raised when a snapshot id does not exist."""
