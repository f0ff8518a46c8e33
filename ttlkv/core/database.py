"""Synchronous database service with SQLModel and SQLAlchemy 2.0."""

import logging
from contextlib import contextmanager
from typing import List, Optional, Tuple
from sqlmodel import SQLModel, Session, create_engine, select
from sqlalchemy import and_, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .config import StoreSettings
from .exceptions import StorageError
from .logging import get_logger
from ..models.entry import KVEntry

logger = get_logger(__name__)


def _prefix_successor(prefix: str) -> Optional[str]:
    """Smallest string greater than every string starting with prefix.

    Returns None when no such string exists (prefix is all U+10FFFF).
    """
    stripped = prefix.rstrip(chr(0x10FFFF))
    if not stripped:
        return None
    nxt = ord(stripped[-1]) + 1
    if 0xD800 <= nxt <= 0xDFFF:
        # surrogates cannot be stored as UTF-8
        nxt = 0xE000
    return stripped[:-1] + chr(nxt)


def _under_prefix(prefix: str):
    # Range on the primary key: exact, case-sensitive and index-backed.
    upper = _prefix_successor(prefix)
    if upper is None:
        return KVEntry.key >= prefix
    return and_(KVEntry.key >= prefix, KVEntry.key < upper)


class Database:
    """Owns the engine for one store and runs every query against it."""

    def __init__(self, settings: StoreSettings):
        self.settings = settings
        self.engine = None

    def startup(self):
        """Initialize database connection and create the kv table."""
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.dialects").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

        url = self.settings.database_url
        kwargs = {"echo": self.settings.database_echo}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {
                "check_same_thread": False,
                "timeout": self.settings.busy_timeout,
            }
            if self.settings.is_memory:
                kwargs["poolclass"] = StaticPool

        try:
            self.engine = create_engine(url, **kwargs)
            SQLModel.metadata.create_all(self.engine, tables=[KVEntry.__table__])
        except SQLAlchemyError as e:
            logger.error("Database startup failed", path=self.settings.path, error=str(e))
            raise StorageError("startup", str(e)) from e

        logger.info("Database initialized", path=self.settings.path)

    def shutdown(self):
        """Close database connections."""
        if self.engine:
            self.engine.dispose()
            self.engine = None
            logger.info("Database connections closed", path=self.settings.path)

    @contextmanager
    def get_session(self, operation: str, **context):
        """Yield a session; SQLAlchemy failures surface as StorageError."""
        if self.engine is None:
            raise StorageError(operation, "database not initialized")

        try:
            with Session(self.engine) as session:
                try:
                    yield session
                except SQLAlchemyError:
                    session.rollback()
                    raise
        except SQLAlchemyError as e:
            logger.error("Database operation failed", operation=operation, error=str(e), **context)
            raise StorageError(operation, str(e)) from e

    # ============================================================================
    # Point operations
    # ============================================================================

    def get_entry(self, key: str) -> Optional[Tuple[bytes, int]]:
        """Return (value, expires_at) for key, or None when no row exists."""
        with self.get_session("get", key=key) as session:
            stmt = select(KVEntry).where(KVEntry.key == key)
            entry = session.exec(stmt).first()
            if entry is None:
                return None
            return entry.value, entry.expires_at or 0

    def get_expires_at(self, key: str) -> Optional[int]:
        """Return the stored deadline for key, or None when no row exists."""
        with self.get_session("get_expires_at", key=key) as session:
            stmt = select(KVEntry.expires_at).where(KVEntry.key == key)
            expires_at = session.exec(stmt).first()
            if expires_at is None:
                return None
            return expires_at

    def entry_exists(self, key: str) -> bool:
        with self.get_session("exists", key=key) as session:
            stmt = select(KVEntry.key).where(KVEntry.key == key)
            return session.exec(stmt).first() is not None

    def upsert_entry(self, key: str, value: bytes, expires_at: int) -> None:
        """Insert the row or replace value and deadline of the existing one."""
        with self.get_session("set", key=key) as session:
            stmt = select(KVEntry).where(KVEntry.key == key)
            existing = session.exec(stmt).first()

            if existing:
                existing.value = value
                existing.expires_at = expires_at
            else:
                session.add(KVEntry(key=key, value=value, expires_at=expires_at))

            session.commit()

    def delete_entry(self, key: str) -> bool:
        """Delete the row for key. Returns False if there was nothing to delete."""
        with self.get_session("delete", key=key) as session:
            stmt = select(KVEntry).where(KVEntry.key == key)
            entry = session.exec(stmt).first()

            if entry is None:
                return False

            session.delete(entry)
            session.commit()
            return True

    # ============================================================================
    # Prefix scans
    # ============================================================================

    def list_keys(self, prefix: str) -> List[str]:
        """Namespaced keys under prefix, in storage order."""
        with self.get_session("keys", prefix=prefix) as session:
            stmt = select(KVEntry.key).where(_under_prefix(prefix))
            return list(session.exec(stmt).all())

    def count_entries(self, prefix: str) -> int:
        with self.get_session("size", prefix=prefix) as session:
            stmt = select(func.count()).select_from(KVEntry).where(_under_prefix(prefix))
            return session.exec(stmt).one()

    def delete_prefix(self, prefix: str) -> int:
        """Delete every row under prefix. Returns count deleted."""
        with self.get_session("clear", prefix=prefix) as session:
            stmt = select(KVEntry).where(_under_prefix(prefix))
            entries = session.exec(stmt).all()

            count = len(entries)
            for entry in entries:
                session.delete(entry)

            session.commit()
            logger.debug("Deleted entries", prefix=prefix, count=count)
            return count

    def delete_expired(self, prefix: str, now: int) -> int:
        """Delete rows under prefix whose deadline is before now. Returns count deleted."""
        with self.get_session("purge_expired", prefix=prefix) as session:
            stmt = select(KVEntry).where(
                _under_prefix(prefix),
                KVEntry.expires_at > 0,
                KVEntry.expires_at < now,
            )
            entries = session.exec(stmt).all()

            count = len(entries)
            for entry in entries:
                session.delete(entry)

            session.commit()
            return count
