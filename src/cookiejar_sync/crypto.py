"""Passphrase-based AES-256-GCM encryption for the synced cookie blob.

Key derivation: PBKDF2-HMAC-SHA256, 200,000 iterations, 16-byte random
salt, 32-byte key.  Cipher: AES-256-GCM with a 12-byte random nonce.

Every ``encrypt`` call draws a fresh salt and nonce, so identical
plaintexts never produce identical envelopes.  ``decrypt`` re-derives the
key from the salt stored in the envelope.

Envelope format (JSON string, binary fields standard base64)::

    {"v": 1, "salt": "<16 bytes>", "iv": "<12 bytes>", "ct": "<ciphertext+tag>"}

Both functions are pure: no key caching, no hidden state.
"""

from __future__ import annotations

import base64
import binascii
import json
import os
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import BaseModel, Field, ValidationError

from .errors import CryptoError, DecryptionError

ENVELOPE_VERSION = 1
PBKDF2_ITERATIONS = 200_000
KEY_LENGTH = 32
SALT_LENGTH = 16
IV_LENGTH = 12


class EncryptedEnvelope(BaseModel):
    """Wire form of an encrypted payload.

    Attributes:
        version: Format version; unknown versions fail closed.
        salt: Base64 PBKDF2 salt (16 bytes).
        iv: Base64 AES-GCM nonce (12 bytes).
        ciphertext: Base64 ciphertext with the 16-byte GCM tag appended.
    """

    version: int = Field(alias="v")
    salt: str
    iv: str
    ciphertext: str = Field(alias="ct")

    model_config = {"frozen": True, "populate_by_name": True}


def derive_key(passphrase: str, salt: bytes) -> bytes:
    """Derive a 256-bit AES key from *passphrase* and *salt*."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _unb64(value: str, field: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError(f"Malformed envelope field '{field}': {e}") from e


def encrypt(payload: Any, passphrase: str) -> str:
    """Encrypt a JSON-serializable *payload* under *passphrase*.

    Returns:
        The envelope as a JSON string.

    Raises:
        CryptoError: If the passphrase is empty or the payload is not
            JSON-serializable.
    """
    if not passphrase:
        raise CryptoError("Passphrase must not be empty")
    try:
        plaintext = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise CryptoError(f"Payload is not JSON-serializable: {e}") from e

    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    ciphertext = AESGCM(derive_key(passphrase, salt)).encrypt(iv, plaintext, None)

    envelope = EncryptedEnvelope(
        version=ENVELOPE_VERSION,
        salt=_b64(salt),
        iv=_b64(iv),
        ciphertext=_b64(ciphertext),
    )
    return envelope.model_dump_json(by_alias=True)


def decrypt(envelope: str, passphrase: str) -> Any:
    """Decrypt an envelope produced by :func:`encrypt`.

    Raises:
        CryptoError: If the passphrase is empty.
        DecryptionError: Wrong passphrase, tampered or truncated data,
            malformed envelope, or an unsupported format version.
    """
    if not passphrase:
        raise CryptoError("Passphrase must not be empty")

    try:
        parsed = EncryptedEnvelope.model_validate_json(envelope)
    except ValidationError as e:
        raise DecryptionError(f"Invalid envelope format: {e}") from e

    if parsed.version != ENVELOPE_VERSION:
        raise DecryptionError(
            f"Unsupported envelope version {parsed.version} (expected {ENVELOPE_VERSION})"
        )

    salt = _unb64(parsed.salt, "salt")
    iv = _unb64(parsed.iv, "iv")
    ciphertext = _unb64(parsed.ciphertext, "ct")
    if len(salt) != SALT_LENGTH:
        raise DecryptionError(
            f"Invalid salt length {len(salt)} (expected {SALT_LENGTH})"
        )
    if len(iv) != IV_LENGTH:
        raise DecryptionError(
            f"Invalid iv length {len(iv)} (expected {IV_LENGTH})"
        )

    try:
        plaintext = AESGCM(derive_key(passphrase, salt)).decrypt(
            iv, ciphertext, None
        )
    except InvalidTag as e:
        raise DecryptionError(
            "Could not decrypt data. Passphrase may be incorrect."
        ) from e

    try:
        return json.loads(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise DecryptionError(f"Decrypted payload is not valid JSON: {e}") from e
