"""Namespaced key-value store with lazy TTL expiration.

- SQLite (or any SQLAlchemy database) as durable storage
- Prefix isolation between stores sharing one table
- Value-only updates keep the previous expiration
- One reader/writer lock per store instance
"""

from .core.cleanup import ExpirySweeper
from .core.codec import Codec, JsonCodec
from .core.config import StoreSettings, load_settings
from .core.exceptions import ConfigError, EncodingError, KVError, StorageError
from .core.locks import ReadWriteLock
from .core.logging import configure_logging, get_logger
from .store import TTLStore, now_ms, ttl_to_millis

__all__ = [
    "TTLStore",
    "StoreSettings",
    "load_settings",
    "Codec",
    "JsonCodec",
    "ReadWriteLock",
    "ExpirySweeper",
    "KVError",
    "ConfigError",
    "StorageError",
    "EncodingError",
    "configure_logging",
    "get_logger",
    "now_ms",
    "ttl_to_millis",
]
