"""
App-lock PIN.

The PIN never leaves the device: its Argon2id hash and the lock toggle live
in device-local registry slots, which export skips and import never writes.
"""

from __future__ import annotations

import logging

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from ..core.exceptions import InvalidPinError
from ..core.registry import KEYS
from ..core.store import StoreAdapter

logger = logging.getLogger(__name__)

PIN_LENGTH = 4


class PinLock:
    def __init__(self, store: StoreAdapter, hasher: PasswordHasher | None = None):
        self.store = store
        self.hasher = hasher or PasswordHasher()

    @staticmethod
    def _check_format(pin: str) -> None:
        if not isinstance(pin, str) or len(pin) != PIN_LENGTH or not pin.isdigit():
            raise InvalidPinError(f"PIN must be {PIN_LENGTH} digits")

    def is_lock_required(self) -> bool:
        """Lock only applies when it is enabled AND a PIN hash exists."""
        return bool(self.store.get(KEYS.LOCK_ENABLED)) and bool(self.store.get(KEYS.APP_PIN))

    def set_pin(self, pin: str) -> bool:
        self._check_format(pin)
        stored = self.store.set(KEYS.APP_PIN, self.hasher.hash(pin))
        if not stored:
            return False
        return self.store.set(KEYS.LOCK_ENABLED, True).success

    def verify(self, pin: str) -> bool:
        stored_hash = self.store.get(KEYS.APP_PIN)
        if not stored_hash or not isinstance(pin, str):
            return False
        try:
            self.hasher.verify(stored_hash, pin)
        except VerifyMismatchError:
            return False
        except (VerificationError, InvalidHashError):
            logger.warning("Stored app PIN hash is unusable")
            return False

        if self.hasher.check_needs_rehash(stored_hash):
            self.store.set(KEYS.APP_PIN, self.hasher.hash(pin))
        return True

    def disable(self) -> None:
        self.store.set(KEYS.LOCK_ENABLED, False)
        self.store.remove(KEYS.APP_PIN)
