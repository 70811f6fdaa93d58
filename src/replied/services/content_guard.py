# src/replied/services/content_guard.py
"""Banned-term and blocked-phrase screening for inbound messages."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Final

from replied.schemas.records import RecipientPolicy

BANNED_TERMS: Final[tuple[str, ...]] = ("badword1", "badword2", "spamlink", "offensive")


def _contains_any(text: str, needles: Iterable[str]) -> bool:
    lowered = text.lower()
    for needle in needles:
        needle = needle.strip().lower()
        if needle and needle in lowered:
            return True
    return False


class ContentGuard:
    """Case-insensitive substring screening.

    Matching is deliberately not tokenized: a banned term inside a longer
    word still matches.
    """

    def __init__(self, extra_terms: Iterable[str] = ()) -> None:
        terms = [*BANNED_TERMS, *extra_terms]
        self._terms = tuple(t.strip().lower() for t in terms if t.strip())

    @property
    def terms(self) -> tuple[str, ...]:
        """Return the process-wide banned terms."""
        return self._terms

    def is_globally_prohibited(self, text: str) -> bool:
        """Return True if ``text`` contains any process-wide banned term."""
        return _contains_any(text, self._terms)

    @staticmethod
    def is_policy_blocked(text: str, policy: RecipientPolicy) -> bool:
        """Return True if ``text`` contains a phrase the recipient blocked."""
        return _contains_any(text, policy.blocked_phrases)
