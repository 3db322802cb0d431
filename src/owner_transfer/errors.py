"""Exception types raised across the transfer package."""


class TransferError(Exception):
    """Base class for ownership transfer errors"""
    pass


class ConfigurationError(TransferError):
    """Raised when settings cannot produce a usable transfer configuration"""
    pass


class StorageError(TransferError):
    """Raised by a storage adapter for failures other than a missing item"""
    pass


class OwnerChangeError(StorageError):
    """Raised when the storage backend rejects an owner change"""

    def __init__(self, item_id: str, reason: str):
        super().__init__(f"{item_id}: {reason}")
        self.item_id = item_id
        self.reason = reason


class CheckpointError(TransferError):
    """Raised when a stored checkpoint cannot be decoded"""
    pass


class SchedulerError(TransferError):
    """Raised when the next slice cannot be scheduled"""
    pass
