# src/replied/services/crypto.py
"""At-rest encryption for message bodies, replies and contact addresses."""

from __future__ import annotations

import binascii
import logging
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from replied.core.errors import ConfigurationError, CryptoFailure, IntegrityError
from replied.core.settings import Settings

logger = logging.getLogger(__name__)

KEY_LENGTH_BYTES = 32
NONCE_LENGTH_BYTES = 12


def _decode_key(key_hex: str | None) -> bytes:
    if not key_hex:
        raise ConfigurationError("Encryption key is not configured")
    try:
        key = bytes.fromhex(key_hex.strip())
    except ValueError as err:
        raise ConfigurationError("Encryption key must be hex encoded") from err
    if len(key) != KEY_LENGTH_BYTES:
        raise ConfigurationError(f"Encryption key must be {KEY_LENGTH_BYTES} bytes")
    return key


class CryptoVault:
    """AES-256-GCM sealing of short text fields.

    Tokens are the hex encoding of ``nonce || ciphertext || tag``. A fresh
    random nonce is drawn for every seal, so tokens are never stable and must
    not be used as lookup keys.
    """

    def __init__(self, key_hex: str | None) -> None:
        self._key_hex = key_hex
        self._aead: AESGCM | None = None

    def _cipher(self) -> AESGCM:
        if self._aead is None:
            self._aead = AESGCM(_decode_key(self._key_hex))
        return self._aead

    def validate(self) -> None:
        """Fail fast if the configured key is unusable.

        Raises:
            ConfigurationError: If the key is absent or malformed.
        """
        self._cipher()

    def seal(self, plaintext: str) -> str:
        """Encrypt ``plaintext`` and return a hex token.

        Raises:
            ConfigurationError: If the key is absent or malformed.
        """
        aead = self._cipher()
        nonce = secrets.token_bytes(NONCE_LENGTH_BYTES)
        sealed = aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return (nonce + sealed).hex()

    def open(self, token: str) -> str:
        """Decrypt a token produced by :meth:`seal`.

        Raises:
            ConfigurationError: If the key is absent or malformed.
            IntegrityError: If the token is not hex, too short, or fails
                authentication.
        """
        aead = self._cipher()
        try:
            raw = binascii.unhexlify(token)
        except (binascii.Error, ValueError) as err:
            raise IntegrityError("Sealed token is not valid hex") from err
        if len(raw) < NONCE_LENGTH_BYTES:
            raise IntegrityError("Sealed token is shorter than a nonce")
        nonce, sealed = raw[:NONCE_LENGTH_BYTES], raw[NONCE_LENGTH_BYTES:]
        try:
            plaintext = aead.decrypt(nonce, sealed, None)
        except InvalidTag as err:
            raise IntegrityError("Sealed token failed authentication") from err
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as err:  # pragma: no cover - authenticated data
            raise IntegrityError("Sealed token does not hold UTF-8 text") from err

    def open_or_none(self, token: str | None, *, field: str = "field") -> str | None:
        """Decrypt ``token`` for a read path, returning None when unavailable."""
        if not token:
            return None
        try:
            return self.open(token)
        except CryptoFailure as exc:
            logger.warning("Could not open %s: %s", field, exc)
            return None


def build_vault(config: Settings) -> CryptoVault:
    """Create the process-wide vault and validate its key.

    Raises:
        ConfigurationError: If ``ENCRYPTION_KEY`` is missing or malformed.
    """
    vault = CryptoVault(config.encryption_key)
    vault.validate()
    return vault


def generate_key_hex() -> str:
    """Return a new random key suitable for ``ENCRYPTION_KEY``."""
    return secrets.token_bytes(KEY_LENGTH_BYTES).hex()
