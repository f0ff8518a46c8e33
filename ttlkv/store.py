"""Namespaced key-value store with lazy TTL expiration.

Every key is stored as ``prefix + key`` in a single ``kv`` table together with
an absolute deadline in epoch milliseconds (0 = never expires). Expired rows
are not swept eagerly: ``get`` treats them as missing and deletes them, and an
optional ExpirySweeper can purge the ones nobody reads.

Locking: one ReadWriteLock per store. Lookups, scans and counts take the
shared side; writes take the exclusive side. ``set`` without a ttl and
``get`` on an expired entry each use two separate critical sections, so
concurrent callers may race (last write wins, a second delete is a no-op).
"""

import time
from datetime import timedelta
from typing import Any, Callable, List, Optional, Union

from .core.cleanup import ExpirySweeper
from .core.codec import Codec, JsonCodec
from .core.config import StoreSettings, load_settings
from .core.database import Database
from .core.exceptions import ConfigError, EncodingError
from .core.locks import ReadWriteLock
from .core.logging import get_logger, log_store_operation

logger = get_logger(__name__)

TTL = Union[timedelta, int, float]

_ONE_MS = timedelta(milliseconds=1)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def ttl_to_millis(ttl: Optional[TTL]) -> int:
    """Convert a timedelta or a number of seconds to whole milliseconds.

    Positive values round up and never drop below 1 ms, so any positive ttl
    yields a deadline. Zero and negative values are floored.
    """
    if ttl is None:
        return 0
    if not isinstance(ttl, timedelta):
        if isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
            raise TypeError(f"ttl must be a timedelta or seconds, got {type(ttl).__name__}")
        positive = ttl > 0
        ttl = timedelta(seconds=ttl)
    else:
        positive = ttl > timedelta(0)
    if positive:
        return max(1, -(-ttl // _ONE_MS))
    return ttl // _ONE_MS


class TTLStore:
    """Key-value store over one durable table, isolated by key prefix.

    Either pass ``path`` and ``prefix`` (missing values fall back to the
    TTLKV_* environment) or a ready StoreSettings instance. Values are
    serialized with ``codec`` (JSON by default). ``clock`` returns epoch
    milliseconds and exists so callers can control time.
    """

    def __init__(self, path: Optional[str] = None, prefix: Optional[str] = None, *,
                 settings: Optional[StoreSettings] = None,
                 codec: Optional[Codec] = None,
                 clock: Optional[Callable[[], int]] = None):
        if settings is None:
            settings = load_settings(path=path, prefix=prefix)
        elif path is not None or prefix is not None:
            raise ConfigError("pass either settings or path/prefix, not both")

        if not settings.path:
            raise ConfigError("path is required")
        if not settings.prefix:
            raise ConfigError("prefix is required")

        self.settings = settings
        self.codec = codec or JsonCodec()
        self._clock = clock or now_ms
        self._lock = ReadWriteLock()
        self._db = Database(settings)
        self._db.startup()
        self._closed = False

        self._sweeper: Optional[ExpirySweeper] = None
        if settings.sweep_interval > 0:
            self._sweeper = ExpirySweeper(self, settings.sweep_interval)
            self._sweeper.start()

        logger.info("Store opened", path=settings.path, prefix=settings.prefix)

    @property
    def prefix(self) -> str:
        return self.settings.prefix

    def _key(self, key: str) -> str:
        return self.settings.prefix + key

    def __repr__(self):
        return f"{self.__class__.__name__}(path={self.settings.path!r}, prefix={self.prefix!r})"

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ============================================================================
    # Writes
    # ============================================================================

    def set(self, key: str, value: Any, ttl: Optional[TTL] = None) -> None:
        """Store value under key.

        A positive ttl (timedelta or seconds) makes the entry expire ttl from
        now. Without one the entry keeps the deadline it already has, and a new
        key never expires: a value-only update must not clear an expiration.
        """
        data = self.codec.encode(value)
        namespaced = self._key(key)

        ttl_ms = ttl_to_millis(ttl)
        if ttl_ms > 0:
            expires_at = self._clock() + ttl_ms
        else:
            expires_at = 0
            if self.has(key):
                with self._lock.read_locked():
                    prior = self._db.get_expires_at(namespaced)
                # row may have been deleted between the two reads
                expires_at = prior or 0

        with self._lock.write_locked():
            self._db.upsert_entry(namespaced, data, expires_at)

        log_store_operation(logger, "set", key, expires_at=expires_at)

    def delete(self, key: str) -> None:
        """Delete key. Deleting a missing key is not an error."""
        with self._lock.write_locked():
            deleted = self._db.delete_entry(self._key(key))
        log_store_operation(logger, "delete", key, deleted=deleted)

    def clear(self) -> None:
        """Delete every entry under this store's prefix."""
        with self._lock.write_locked():
            count = self._db.delete_prefix(self.prefix)
        logger.info("Store cleared", prefix=self.prefix, deleted=count)

    def purge_expired(self) -> int:
        """Delete entries under the prefix whose deadline has passed."""
        with self._lock.write_locked():
            count = self._db.delete_expired(self.prefix, self._clock())
        log_store_operation(logger, "purge_expired", self.prefix, deleted=count)
        return count

    # ============================================================================
    # Reads
    # ============================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for key, or default if missing or expired.

        An expired entry is deleted on the way out.
        """
        namespaced = self._key(key)
        with self._lock.read_locked():
            entry = self._db.get_entry(namespaced)

        if entry is None:
            log_store_operation(logger, "get", key, hit=False)
            return default

        data, expires_at = entry
        if expires_at > 0 and self._clock() > expires_at:
            self.delete(key)
            log_store_operation(logger, "get", key, hit=False, expired=True)
            return default

        log_store_operation(logger, "get", key, hit=True)
        return self.codec.decode(data)

    def has(self, key: str) -> bool:
        """Check whether a row exists for key, expired or not."""
        with self._lock.read_locked():
            return self._db.entry_exists(self._key(key))

    def keys(self) -> List[str]:
        """Keys under the prefix (prefix stripped), including expired ones."""
        with self._lock.read_locked():
            namespaced = self._db.list_keys(self.prefix)
        offset = len(self.prefix)
        return [k[offset:] for k in namespaced]

    def size(self) -> int:
        """Number of rows under the prefix, including expired ones."""
        with self._lock.read_locked():
            return self._db.count_entries(self.prefix)

    def for_each(self, fn: Callable[[str, Any], None]) -> None:
        """Call fn(key, value) for every key.

        Keys are snapshotted first and each value is fetched with get(), so
        expired or concurrently deleted keys are passed with None.
        """
        for key in self.keys():
            try:
                value = self.get(key)
            except EncodingError as e:
                logger.warning("Skipping undecodable value", store_key=key, error=str(e))
                value = None
            fn(key, value)

    # ============================================================================
    # Lifecycle
    # ============================================================================

    def close(self) -> None:
        """Stop the sweeper and release database connections."""
        if self._closed:
            return
        self._closed = True
        if self._sweeper:
            self._sweeper.stop()
            self._sweeper = None
        with self._lock.write_locked():
            self._db.shutdown()
        logger.info("Store closed", prefix=self.prefix)
