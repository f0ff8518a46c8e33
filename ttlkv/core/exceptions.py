"""Store exception hierarchy."""


class KVError(Exception):
    """Base exception for all store errors."""


class ConfigError(KVError):
    """Missing or invalid construction parameter."""


class StorageError(KVError):
    """Underlying database query or I/O failed."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"[{operation}] {message}")


class EncodingError(KVError):
    """Value could not be serialized or deserialized."""
