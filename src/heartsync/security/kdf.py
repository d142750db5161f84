"""Passphrase-based key derivation for HeartSync packages."""
from __future__ import annotations

import os
from typing import Dict

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

SALT_LENGTH = 16
KEY_LENGTH = 32
# Lower bound as well as default; cheaper settings are refused
PBKDF2_ITERATIONS = 100_000


def generate_salt(length: int = SALT_LENGTH) -> bytes:
    """Return a cryptographically secure random salt."""
    return os.urandom(length)


def derive_key(
    passphrase: bytes | str,
    salt: bytes,
    iterations: int = PBKDF2_ITERATIONS,
    key_len: int = KEY_LENGTH,
) -> bytes:
    """
    Derive a symmetric key from a passphrase using PBKDF2-HMAC-SHA256.
    Returns raw derived key bytes.
    """
    if iterations < PBKDF2_ITERATIONS:
        raise ValueError(f"iterations must be at least {PBKDF2_ITERATIONS}")
    if isinstance(passphrase, str):
        passphrase = passphrase.encode("utf-8")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=key_len,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase)


def kdf_params_to_dict(salt: bytes, iterations: int = PBKDF2_ITERATIONS, key_len: int = KEY_LENGTH) -> Dict:
    return {
        "algo": "pbkdf2-sha256",
        "salt": salt.hex(),
        "iterations": iterations,
        "key_len": key_len,
    }
