"""Security helpers: passphrase KDF, package codec and app-lock PIN for HeartSync.

This package provides:
- PBKDF2-HMAC-SHA256 key derivation from a passphrase and random salt
- AES-256-GCM packaging of JSON payloads into a printable string
- Argon2id hashing of the device-local app-lock PIN
"""

from .kdf import generate_salt, derive_key, kdf_params_to_dict
from .codec import EncryptedPackage, encrypt, decrypt, encrypt_async, decrypt_async

__all__ = [
    "generate_salt",
    "derive_key",
    "kdf_params_to_dict",
    "EncryptedPackage",
    "encrypt",
    "decrypt",
    "encrypt_async",
    "decrypt_async",
]
