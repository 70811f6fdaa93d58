# src/replied/models/__init__.py
"""SQLAlchemy models for the Replied service."""

from .message import Message, Reply
from .profile import Profile

__all__ = ["Message", "Profile", "Reply"]
