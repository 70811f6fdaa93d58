# tests/services/test_threads.py
"""Tests for follow-up protection on threads."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from replied.core.errors import DependencyFailure, RecordStoreError
from replied.services.threads import ThreadIntegrityVerifier


@pytest.fixture()
def verifier(store) -> ThreadIntegrityVerifier:
    return ThreadIntegrityVerifier(store)


def test_unknown_thread_is_allowed(verifier: ThreadIntegrityVerifier) -> None:
    assert verifier.find_root("t-unknown") is None
    assert verifier.verify("t-unknown", None)
    assert verifier.verify("t-unknown", "someone")


def test_anonymous_root_allows_anyone(verifier, recipient_id, make_message) -> None:
    make_message(recipient_id, thread_id="t1", sender_id=None)
    assert verifier.verify("t1", None)
    assert verifier.verify("t1", "someone")


def test_signed_root_allows_only_its_sender(
    verifier, recipient_id, make_message, sender_a_id, sender_b_id
) -> None:
    make_message(recipient_id, thread_id="t1", sender_id=sender_a_id)
    assert verifier.verify("t1", sender_a_id)
    assert not verifier.verify("t1", sender_b_id)
    assert not verifier.verify("t1", None)


def test_root_is_the_earliest_message(
    verifier, recipient_id, make_message, sender_a_id, sender_b_id
) -> None:
    start = datetime(2024, 1, 1, tzinfo=UTC)
    make_message(recipient_id, thread_id="t1", sender_id=sender_b_id, created_at=start + timedelta(hours=1))
    root_id = make_message(recipient_id, thread_id="t1", sender_id=sender_a_id, created_at=start)

    root = verifier.find_root("t1")
    assert root is not None
    assert root.id == root_id
    assert verifier.verify("t1", sender_a_id)
    assert not verifier.verify("t1", sender_b_id)


def test_store_failure_fails_closed(mocker) -> None:
    store = mocker.MagicMock()
    store.query.side_effect = RecordStoreError("down")
    with pytest.raises(DependencyFailure) as exc_info:
        ThreadIntegrityVerifier(store).verify("t1", "someone")
    assert exc_info.value.reason == "thread_lookup_failed"


def test_malformed_root_fails_closed(mocker) -> None:
    store = mocker.MagicMock()
    store.query.return_value = [{"sender_id": "a"}]
    with pytest.raises(DependencyFailure):
        ThreadIntegrityVerifier(store).find_root("t1")
