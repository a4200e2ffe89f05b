"""
Custom exception classes for store and change-feed operations.
"""


class StoreError(Exception):
    """Raised when a row store read or subscription fails."""
    pass


class StoreUnavailableError(StoreError):
    """Raised when the backing store cannot be reached at all."""
    pass


class ChannelError(StoreError):
    """Raised when a change-feed channel cannot be opened."""
    pass
