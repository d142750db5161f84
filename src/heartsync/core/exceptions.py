"""
Exceptions for HeartSync core module
Everything derives from HeartSyncError so callers have one place to catch.
"""


class HeartSyncError(Exception):
    # general container for errors
    pass


class ValidationError(HeartSyncError):
    # raised on bad user input before any side effect (short passphrase, empty payload)
    pass


class UnknownKeyError(HeartSyncError):
    # raised when a key is not part of the registry
    def __init__(self, key):
        super().__init__(f"Unknown storage key: {key!r}")
        self.key = key


class StorageError(HeartSyncError):
    # raised if the key-value backend rejects an operation
    pass


class QuotaExceededError(StorageError):
    # raised when a write would exceed the backend capacity
    pass


class DecryptionError(HeartSyncError):
    # wrong passphrase OR corrupted package; the two are never told apart
    pass

class MalformedSnapshotError(HeartSyncError):
    # raised when a decrypted payload does not match the registry shape
    def __init__(self, key, reason):
        super().__init__(f"{key}: {reason}")
        self.key = key
        self.reason = reason

class UnsupportedSnapshotVersionError(HeartSyncError):
    # raised for a sync version this build does not know how to apply
    def __init__(self, version):
        super().__init__(f"Unsupported snapshot sync version: {version!r}")
        self.version = version

class InvalidPinError(HeartSyncError):
    # raised when an app-lock PIN is not 4 digits
    pass
