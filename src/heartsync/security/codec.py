"""
Passphrase-protected package codec.

Turns any JSON-serializable payload plus a human passphrase into one
printable, tamper-evident string, and back.

Encryption details:
- fresh 128-bit salt per call, PBKDF2-HMAC-SHA256 (:mod:`heartsync.security.kdf`)
  stretches the passphrase into a 256-bit key
- AES-256-GCM (via :class:`cryptography.hazmat.primitives.ciphers.aead.AESGCM`)
  with a fresh 96-bit random nonce
- ``{"salt", "iv", "data"}`` JSON, each field standard base64; ``data`` is
  ciphertext with the 16-byte GCM tag appended

A new salt means a new key on every call, so a (key, nonce) pair is never
reused and two encryptions of the same payload never match.

:func:`decrypt` never raises: a wrong passphrase, a flipped bit, a truncated
or malformed package all come back as ``None``.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import os
from dataclasses import dataclass
from typing import Any, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .kdf import PBKDF2_ITERATIONS, SALT_LENGTH, derive_key, generate_salt

NONCE_LENGTH = 12
TAG_LENGTH = 16


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _b64decode(text: Any) -> bytes:
    if not isinstance(text, str):
        raise ValueError("expected base64 text")
    return base64.b64decode(text.encode("ascii"), validate=True)


@dataclass(frozen=True)
class EncryptedPackage:
    salt: bytes
    iv: bytes
    data: bytes

    def to_json(self) -> str:
        return json.dumps(
            {
                "salt": _b64encode(self.salt),
                "iv": _b64encode(self.iv),
                "data": _b64encode(self.data),
            }
        )

    @classmethod
    def from_json(cls, text: str) -> "EncryptedPackage":
        """
        Parse a package string. Raises ``ValueError`` on any structural problem
        (bad JSON, missing field, bad base64, wrong sizes).
        """
        packed = json.loads(text.strip())
        if not isinstance(packed, dict):
            raise ValueError("package is not an object")
        try:
            salt = _b64decode(packed["salt"])
            iv = _b64decode(packed["iv"])
            data = _b64decode(packed["data"])
        except (KeyError, UnicodeEncodeError, binascii.Error) as e:
            raise ValueError(f"malformed package: {e}")
        if len(salt) < SALT_LENGTH:
            raise ValueError("salt too short")
        if len(iv) != NONCE_LENGTH:
            raise ValueError("nonce must be 12 bytes")
        if len(data) < TAG_LENGTH:
            raise ValueError("ciphertext too short to contain tag")
        return cls(salt=salt, iv=iv, data=data)


def encrypt(payload: Any, passphrase: str, iterations: int = PBKDF2_ITERATIONS) -> str:
    """Encrypt ``payload`` under ``passphrase`` and return the package string."""
    plaintext = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    salt = generate_salt()
    key = derive_key(passphrase, salt, iterations=iterations)
    iv = os.urandom(NONCE_LENGTH)
    data = AESGCM(key).encrypt(iv, plaintext, None)
    return EncryptedPackage(salt=salt, iv=iv, data=data).to_json()


def decrypt(package: str, passphrase: str, iterations: int = PBKDF2_ITERATIONS) -> Optional[Any]:
    """
    Decrypt a package string. Returns the payload, or ``None`` if the
    passphrase is wrong or the package is malformed, corrupt or tampered with.
    """
    try:
        packed = EncryptedPackage.from_json(package)
    except (TypeError, ValueError, AttributeError):
        return None

    key = derive_key(passphrase, packed.salt, iterations=iterations)
    try:
        plaintext = AESGCM(key).decrypt(packed.iv, packed.data, None)
    except InvalidTag:
        return None

    try:
        return json.loads(plaintext.decode("utf-8"))
    except ValueError:
        return None


async def encrypt_async(payload: Any, passphrase: str) -> str:
    """:func:`encrypt` run in a worker thread so the event loop keeps going."""
    return await asyncio.to_thread(encrypt, payload, passphrase)


async def decrypt_async(package: str, passphrase: str) -> Optional[Any]:
    """:func:`decrypt` run in a worker thread so the event loop keeps going."""
    return await asyncio.to_thread(decrypt, package, passphrase)
