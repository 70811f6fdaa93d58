"""Persistence adapters for the Replied core."""

from .record_store import COLLECTIONS, RecordStore, SqlRecordStore

__all__ = ["COLLECTIONS", "RecordStore", "SqlRecordStore"]
