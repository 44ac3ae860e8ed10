"""
Envelope encryption for backup payloads.

Every payload is sealed with AES-256-GCM under a key derived from the
user's password with PBKDF2-HMAC-SHA256. The result is a
self-describing binary envelope:

    uint32 LE   header length
    bytes       UTF-8 JSON header (version, algorithm, keyDerivation,
                iterations, saltSize, ivSize, timestamp)
    bytes       salt (saltSize)
    bytes       iv (ivSize)
    bytes       ciphertext || 16-byte tag

The layout is a wire format shared with backups written by earlier
clients, so it must stay byte-compatible.
"""

from __future__ import annotations

import json
import logging
import os
import struct
import time
from typing import Optional

from pydantic import ValidationError

from .errors import (
    EncryptionError,
    InvalidPasswordOrCorruptData,
    MalformedEnvelope,
    UnsupportedEnvelopeVersion,
)
from .models import ENVELOPE_VERSION, EnvelopeHeader

logger = logging.getLogger("tmcloud.crypto")

SALT_SIZE = 16
IV_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32
PBKDF2_ITERATIONS = 100_000

_LENGTH = struct.Struct("<I")


def derive_key(password: str, salt: bytes, iterations: int = PBKDF2_ITERATIONS) -> bytes:
    """Derive a 256-bit AES key with PBKDF2-HMAC-SHA256.

    Args:
        password: User password (UTF-8 encoded before derivation).
        salt: Per-envelope random salt.
        iterations: PBKDF2 iteration count.

    Returns:
        32 bytes of key material.

    Raises:
        EncryptionError: If the KDF is unavailable.
    """
    try:
        from cryptography.hazmat.primitives.hashes import SHA256
        from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
    except ImportError as exc:
        raise EncryptionError("PBKDF2 is unavailable: install 'cryptography'") from exc

    kdf = PBKDF2HMAC(
        algorithm=SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def _aesgcm(key: bytes):
    try:
        from cryptography.hazmat.primitives.ciphers.aead import AESGCM
    except ImportError as exc:
        raise EncryptionError("AES-GCM is unavailable: install 'cryptography'") from exc
    return AESGCM(key)


def encrypt(plaintext: bytes, password: str, timestamp: Optional[int] = None) -> bytes:
    """Seal a payload into an envelope.

    A fresh salt and IV are drawn for every call; an IV is never
    reused under the same key.

    Args:
        plaintext: Bytes to protect.
        password: Encryption password.
        timestamp: Header timestamp in epoch ms. Defaults to now.

    Returns:
        The serialized envelope.

    Raises:
        EncryptionError: If the cipher cannot run.
    """
    salt = os.urandom(SALT_SIZE)
    iv = os.urandom(IV_SIZE)
    key = derive_key(password, salt)

    try:
        ciphertext = _aesgcm(key).encrypt(iv, plaintext, None)
    except EncryptionError:
        raise
    except Exception as exc:
        logger.error("Encryption failed: %s", exc)
        raise EncryptionError("Failed to encrypt data") from exc

    header = EnvelopeHeader(
        iterations=PBKDF2_ITERATIONS,
        salt_size=len(salt),
        iv_size=len(iv),
        timestamp=timestamp if timestamp is not None else int(time.time() * 1000),
    )
    header_bytes = json.dumps(
        header.model_dump(by_alias=True), separators=(",", ":")
    ).encode("utf-8")

    return b"".join([_LENGTH.pack(len(header_bytes)), header_bytes, salt, iv, ciphertext])


def parse_envelope(blob: bytes) -> tuple[EnvelopeHeader, bytes, bytes, bytes]:
    """Split an envelope into header, salt, iv and ciphertext.

    Raises:
        MalformedEnvelope: If the layout is inconsistent.
        UnsupportedEnvelopeVersion: If the header version is too new.
    """
    if len(blob) < _LENGTH.size:
        raise MalformedEnvelope("Envelope shorter than its length prefix")

    (header_length,) = _LENGTH.unpack_from(blob, 0)
    header_end = _LENGTH.size + header_length
    if header_end > len(blob):
        raise MalformedEnvelope(
            f"Header length {header_length} exceeds envelope size {len(blob)}"
        )

    try:
        raw = json.loads(blob[_LENGTH.size:header_end].decode("utf-8"))
        header = EnvelopeHeader.model_validate(raw)
    except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
        raise MalformedEnvelope(f"Unreadable envelope header: {exc}") from exc

    if header.version > ENVELOPE_VERSION:
        raise UnsupportedEnvelopeVersion(
            f"Unsupported encryption format version: {header.version}"
        )
    if header.salt_size <= 0 or header.iv_size <= 0 or header.iterations <= 0:
        raise MalformedEnvelope("Envelope header has non-positive sizes")

    salt_end = header_end + header.salt_size
    iv_end = salt_end + header.iv_size
    if iv_end > len(blob):
        raise MalformedEnvelope("Envelope is missing its salt or IV region")

    ciphertext = blob[iv_end:]
    if len(ciphertext) < TAG_SIZE:
        raise MalformedEnvelope("Envelope ciphertext is shorter than the tag")

    return header, blob[header_end:salt_end], blob[salt_end:iv_end], ciphertext


def is_envelope(blob: bytes) -> bool:
    """Check whether bytes look like a readable envelope."""
    try:
        parse_envelope(blob)
    except MalformedEnvelope:
        return False
    return True


def decrypt(blob: bytes, password: str) -> bytes:
    """Open an envelope and return the plaintext.

    Args:
        blob: Serialized envelope.
        password: Password used at encryption time.

    Returns:
        The original plaintext.

    Raises:
        MalformedEnvelope: Inconsistent layout.
        UnsupportedEnvelopeVersion: Header version too new.
        InvalidPasswordOrCorruptData: Wrong password or tampered bytes.
        EncryptionError: Cipher unavailable.
    """
    header, salt, iv, ciphertext = parse_envelope(blob)
    key = derive_key(password, salt, header.iterations)

    try:
        from cryptography.exceptions import InvalidTag
    except ImportError as exc:
        raise EncryptionError("AES-GCM is unavailable: install 'cryptography'") from exc

    try:
        return _aesgcm(key).decrypt(iv, ciphertext, None)
    except InvalidTag as exc:
        raise InvalidPasswordOrCorruptData(
            "Decryption failed: Invalid password or corrupted data"
        ) from exc
    except ValueError as exc:
        raise MalformedEnvelope(f"Envelope rejected by cipher: {exc}") from exc
