"""Base exception shared by every backup failure."""


class BackupError(Exception):
    """Base class for all errors raised while running a backup."""
    pass
