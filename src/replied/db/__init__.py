# src/replied/db/__init__.py
"""Database configuration and utilities."""

from .session import Base, create_db_engine, create_session_factory, create_tables

__all__ = ["Base", "create_db_engine", "create_session_factory", "create_tables"]
