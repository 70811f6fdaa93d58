# tests/test_db_models.py
"""Tests for database model defaults."""

from __future__ import annotations

from sqlalchemy import inspect

from replied.db.session import create_db_engine, create_tables, drop_tables
from replied.models import Message, Reply


def test_tables_are_created_and_dropped() -> None:
    engine = create_db_engine("sqlite://")
    create_tables(engine)
    assert set(inspect(engine).get_table_names()) == {"profiles", "messages", "replies"}
    drop_tables(engine)
    assert inspect(engine).get_table_names() == []
    engine.dispose()


def test_message_defaults(store, recipient_id) -> None:
    message_id = store.insert("messages", {"receiver_id": recipient_id, "content": "sealed"})
    row = store.get("messages", {"id": message_id})
    assert row["status"] == "pending"
    assert len(row["id"]) == 36


def test_reply_is_unique_per_message() -> None:
    unique = {c.name for c in Reply.__table__.columns if c.unique}
    assert "message_id" in unique
    assert Message.__table__.c.receiver_id.foreign_keys
