# src/replied/services/threads.py
"""Follow-up protection for threaded conversations."""

from __future__ import annotations

from replied.core.errors import DecodeError, DependencyFailure, RecordStoreError
from replied.repositories.record_store import RecordStore
from replied.schemas.records import ThreadRoot, decode_record


class ThreadIntegrityVerifier:
    """Decide whether a sender may continue an existing thread."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def find_root(self, thread_id: str) -> ThreadRoot | None:
        """Return the earliest message of ``thread_id``, if any.

        Raises:
            DependencyFailure: If the store cannot be read or the row is
                malformed.
        """
        try:
            rows = self._store.query(
                "messages",
                {"thread_id": thread_id},
                order=("created_at",),
                limit=1,
            )
            return decode_record(ThreadRoot, rows[0]) if rows else None
        except (RecordStoreError, DecodeError) as exc:
            raise DependencyFailure("thread_lookup_failed", "Could not verify thread") from exc

    def verify(self, thread_id: str, claimed_sender_id: str | None) -> bool:
        """Return True if ``claimed_sender_id`` may post to ``thread_id``.

        Unknown threads and anonymously rooted threads carry no constraint;
        the thread id itself is an unguessable token. A thread started by a
        signed-in sender accepts follow-ups from that sender only.
        """
        root = self.find_root(thread_id)
        if root is None or root.sender_id is None:
            return True
        return claimed_sender_id is not None and claimed_sender_id == root.sender_id
