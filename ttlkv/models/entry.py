"""SQLModel table backing the key-value store."""

from sqlmodel import SQLModel, Field


class KVEntry(SQLModel, table=True):
    """One row per namespaced key.

    expires_at is an epoch timestamp in milliseconds; 0 means the entry
    never expires.
    """

    __tablename__ = "kv"

    key: str = Field(primary_key=True)
    value: bytes
    expires_at: int = Field(default=0)
