# tests/services/test_crypto.py
"""Tests for the at-rest encryption vault."""

from __future__ import annotations

import pytest

from replied.core.errors import ConfigurationError, IntegrityError
from replied.core.settings import Settings
from replied.services.crypto import (
    KEY_LENGTH_BYTES,
    NONCE_LENGTH_BYTES,
    CryptoVault,
    build_vault,
    generate_key_hex,
)


def test_seal_then_open_returns_plaintext(vault: CryptoVault) -> None:
    token = vault.seal("hello there, ünïcode ✓")
    assert vault.open(token) == "hello there, ünïcode ✓"


def test_seal_uses_fresh_nonce_each_time(vault: CryptoVault) -> None:
    first = vault.seal("same text")
    second = vault.seal("same text")
    assert first != second
    assert first[: NONCE_LENGTH_BYTES * 2] != second[: NONCE_LENGTH_BYTES * 2]


def test_token_is_hex_of_nonce_ciphertext_and_tag(vault: CryptoVault) -> None:
    token = vault.seal("abc")
    raw = bytes.fromhex(token)
    # 12-byte nonce, 3 bytes of ciphertext, 16-byte tag
    assert len(raw) == NONCE_LENGTH_BYTES + 3 + 16


@pytest.mark.parametrize(
    "offset",
    [0, NONCE_LENGTH_BYTES - 1, NONCE_LENGTH_BYTES, NONCE_LENGTH_BYTES + 5, -16, -1],
    ids=["nonce-first", "nonce-last", "ciphertext-first", "ciphertext-middle", "tag-first", "tag-last"],
)
def test_flipped_byte_fails_authentication(vault: CryptoVault, offset: int) -> None:
    raw = bytearray(bytes.fromhex(vault.seal("tamper with me")))
    raw[offset] ^= 0x01
    with pytest.raises(IntegrityError):
        vault.open(raw.hex())


def test_short_token_is_rejected(vault: CryptoVault) -> None:
    with pytest.raises(IntegrityError):
        vault.open("00" * (NONCE_LENGTH_BYTES - 1))


def test_non_hex_token_is_rejected(vault: CryptoVault) -> None:
    with pytest.raises(IntegrityError):
        vault.open("not a sealed token")


def test_token_from_another_key_is_rejected(vault: CryptoVault) -> None:
    other = CryptoVault(generate_key_hex())
    with pytest.raises(IntegrityError):
        vault.open(other.seal("secret"))


@pytest.mark.parametrize("key", [None, "", "zz" * KEY_LENGTH_BYTES, "ab" * 16])
def test_unusable_key_raises_configuration_error(key: str | None) -> None:
    vault = CryptoVault(key)
    with pytest.raises(ConfigurationError):
        vault.seal("anything")
    with pytest.raises(ConfigurationError):
        vault.validate()


def test_open_or_none_hides_failures(vault: CryptoVault) -> None:
    assert vault.open_or_none(None) is None
    assert vault.open_or_none("") is None
    assert vault.open_or_none("plaintext that was never sealed") is None
    assert vault.open_or_none(vault.seal("ok")) == "ok"


def test_build_vault_validates_key() -> None:
    with pytest.raises(ConfigurationError):
        build_vault(Settings(ENCRYPTION_KEY=None))
    vault = build_vault(Settings(ENCRYPTION_KEY=generate_key_hex()))
    assert vault.open(vault.seal("x")) == "x"
