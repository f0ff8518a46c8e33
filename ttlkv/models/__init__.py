"""Database models."""

from .entry import KVEntry

__all__ = ["KVEntry"]
