"""Exception taxonomy for the vault core and the sync layer.

Every exception carries a short ``user_message`` that is safe to show to a
person: it never contains key material, ciphertext or a traceback.
"""
from typing import Optional


class VaultError(Exception):
    """Base class for all privault errors."""

    default_message = "Vault operation failed"

    def __init__(self, message: Optional[str] = None):
        self.user_message = message or self.default_message
        super().__init__(self.user_message)


class AuthenticationFailed(VaultError):
    default_message = "Incorrect password or credential"


class VaultLockedError(VaultError):
    default_message = "Vault is locked. Unlock first."


class IntegrityError(VaultError):
    """AEAD verification failed: tampered data, corrupt data or wrong key.

    The cause is deliberately not distinguished.
    """

    default_message = "Decryption failed: data is corrupt or was tampered with"


DecryptionFailed = IntegrityError


class SetupError(VaultError):
    default_message = "Vault setup failed"


class StoreReadError(VaultError):
    default_message = "Could not read from the secure store"


class StoreWriteError(VaultError):
    default_message = "Could not write to the secure store"


class EntryNotFound(VaultError):
    default_message = "No such vault entry"


class SyncError(VaultError):
    default_message = "Synchronization failed"


class NotAuthenticated(SyncError):
    default_message = "Not authenticated. Please log in."


class ServerUnavailable(SyncError):
    default_message = "Server not available"


class AuthenticationError(SyncError):
    default_message = "Authentication with the server failed"


class SyncServerError(SyncError):
    default_message = "Server reported an error"


class SyncTimeout(SyncError):
    default_message = "Synchronization timed out"


class DecodingError(SyncError):
    default_message = "Server response format is incorrect"
