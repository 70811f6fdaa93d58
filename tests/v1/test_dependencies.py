# tests/v1/test_dependencies.py
"""Tests for request-derived API dependencies."""

import pytest

from replied.api.v1.dependencies import resolve_source_key


@pytest.mark.parametrize(
    ("peer", "forwarded", "trusted", "expected"),
    [
        # Untrusted peers are keyed by their own address, whatever they claim.
        ("203.0.113.7", "198.51.100.1", [], "203.0.113.7"),
        ("203.0.113.7", "198.51.100.1", ["10.0.0.1"], "203.0.113.7"),
        # Behind a trusted proxy the nearest untrusted hop is the client.
        ("10.0.0.1", "198.51.100.1", ["10.0.0.1"], "198.51.100.1"),
        ("10.0.0.1", "6.6.6.6, 198.51.100.1", ["10.0.0.1"], "198.51.100.1"),
        ("10.0.0.1", "198.51.100.1, 10.0.0.2", ["10.0.0.1", "10.0.0.2"], "198.51.100.1"),
        # A trusted proxy without a header is the client.
        ("10.0.0.1", "", ["10.0.0.1"], "10.0.0.1"),
        # Wildcard trusts the whole chain and keys by its first hop.
        ("10.0.0.1", "198.51.100.1, 10.0.0.2", ["*"], "198.51.100.1"),
    ],
)
def test_resolve_source_key(peer, forwarded, trusted, expected) -> None:
    assert resolve_source_key(peer, forwarded, trusted) == expected


def test_spoofed_header_does_not_escape_rate_limit(client, container, recipient_id) -> None:
    container.settings.trusted_proxies = []
    payload = {"receiver_id": recipient_id, "content": "hello"}
    for n in range(5):
        response = client.post(
            "/api/v1/messages/send",
            json=payload,
            headers={"X-Forwarded-For": f"198.51.100.{n}"},
        )
        assert response.status_code == 201

    response = client.post(
        "/api/v1/messages/send",
        json=payload,
        headers={"X-Forwarded-For": "198.51.100.99"},
    )
    assert response.status_code == 429
