from __future__ import annotations

import hashlib
import hmac
import os
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from crm.backup.errors import DecryptionError, IntegrityError, MissingKeyError

IV_SIZE = 16
TAG_SIZE = 16
CHECKSUM_SIZE = 64  # sha256 hex digest
DELIMITER = b"\n"
HEADER_SIZE = CHECKSUM_SIZE + len(DELIMITER)

# scrypt parameters match the artifacts already in circulation (fixed salt, N=2**14, r=8, p=1).
_KDF_SALT = b"salt"
_KDF_N = 2**14
_KDF_R = 8
_KDF_P = 1

Key = Union[str, bytes]


def _require_key(key: Optional[Key]) -> bytes:
    if not key:
        raise MissingKeyError()
    if isinstance(key, str):
        key = key.encode("utf-8")
    return key


def derive_key(key: Key) -> bytes:
    """Stretch the configured passphrase into a 32-byte AES-256 key."""
    kdf = Scrypt(salt=_KDF_SALT, length=32, n=_KDF_N, r=_KDF_R, p=_KDF_P)
    return kdf.derive(_require_key(key))


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def encrypt(plain: bytes, key: Key) -> bytes:
    """Encrypt into a frame of [iv (16 bytes)][auth tag (16 bytes)][ciphertext]."""
    aesgcm = AESGCM(derive_key(key))
    iv = os.urandom(IV_SIZE)
    sealed = aesgcm.encrypt(iv, plain, None)
    # AESGCM appends the tag; the frame carries it up front.
    ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
    return iv + tag + ciphertext


def decrypt(frame: bytes, key: Key) -> bytes:
    if len(frame) < IV_SIZE + TAG_SIZE:
        raise DecryptionError("Encrypted frame is too short")
    aesgcm = AESGCM(derive_key(key))
    iv = frame[:IV_SIZE]
    tag = frame[IV_SIZE : IV_SIZE + TAG_SIZE]
    ciphertext = frame[IV_SIZE + TAG_SIZE :]
    try:
        return aesgcm.decrypt(iv, ciphertext + tag, None)
    except InvalidTag as exc:
        raise DecryptionError() from exc


def seal(plain: bytes, key: Optional[Key]) -> bytes:
    """Encrypt ``plain`` and prepend the hex sha256 of the encrypted frame."""
    frame = encrypt(plain, _require_key(key))
    return sha256_hex(frame).encode("ascii") + DELIMITER + frame


def checksum_of(artifact: bytes) -> str:
    """Return the checksum embedded in an artifact header."""
    if len(artifact) < HEADER_SIZE or artifact[CHECKSUM_SIZE:HEADER_SIZE] != DELIMITER:
        raise IntegrityError()
    try:
        return artifact[:CHECKSUM_SIZE].decode("ascii")
    except UnicodeDecodeError as exc:
        raise IntegrityError() from exc


def verify(artifact: bytes) -> bytes:
    """Check the embedded checksum and return the encrypted frame it covers."""
    embedded = checksum_of(artifact)
    frame = artifact[HEADER_SIZE:]
    if not hmac.compare_digest(embedded, sha256_hex(frame)):
        raise IntegrityError()
    return frame


def open_artifact(artifact: bytes, key: Optional[Key]) -> bytes:
    """
    Verify and decrypt an artifact produced by ``seal``.

    The checksum is checked before any decryption is attempted so corruption
    (IntegrityError) is reported separately from a wrong key (DecryptionError).
    """
    secret = _require_key(key)
    frame = verify(artifact)
    return decrypt(frame, secret)


__all__ = [
    "CHECKSUM_SIZE",
    "derive_key",
    "sha256_hex",
    "encrypt",
    "decrypt",
    "seal",
    "checksum_of",
    "verify",
    "open_artifact",
]
