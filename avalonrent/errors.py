"""Exception types raised by avalon-rent."""


class ConfigurationError(ValueError):
    """Raised when a configured value cannot be used for a run."""


class StorageError(RuntimeError):
    """Raised when the state store or history table rejects a write."""
