"""VaultCipher: owns the in-memory master key and every AEAD operation on it.

States::

    LOCKED --setup / unlock_*--> UNLOCKED --lock--> LOCKED

Encrypt and decrypt snapshot an AES-GCM context while holding the shared
lock and then run outside it. A concurrent ``lock()`` therefore never
invalidates an operation already in flight, but no new operation can start
once the vault is locked.
"""
import base64
import binascii
import hmac
import json
import threading
import time

from enum import Enum
from typing import Any, Dict, Optional, Tuple

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from privault.crypto.aead import open_sealed, seal
from privault.crypto.hash import derive, generate_salt
from privault.storage.audit import AuditLog
from privault.storage.credentials import CredentialStore
from privault.storage.vault import KdfHeaderFile
from privault.utils.dataModels import (
    KDF_ARGON2ID, KDF_NAMES, KDF_SHA256_ITERATED, KEY_SIZE, MIN_KDF_ITERATIONS,
    AuditEventType, Classification, EncryptedObject, KdfParams, Sidecar,
)
from privault.utils.errors import (
    AuthenticationFailed, IntegrityError, SetupError, StoreWriteError, VaultLockedError,
)
from privault.utils.events import EventBus, VaultEvent
from privault.utils.logging_config import get_logger

logger = get_logger(__name__)


class VaultState(str, Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"


def kdf_params_from_config(kdf: str = "sha256-iterated", iterations: int = MIN_KDF_ITERATIONS,
                           time_cost: int = 4, memory_kib: int = 65536, parallelism: int = 2) -> KdfParams:
    """Fresh KDF parameters (new random salt) for a vault being set up."""
    if kdf not in KDF_NAMES:
        raise SetupError(f"Unknown key derivation algorithm: {kdf}")
    if KDF_NAMES[kdf] == KDF_ARGON2ID:
        return KdfParams(KDF_ARGON2ID, generate_salt(), time_cost, memory_kib, parallelism)
    if iterations < MIN_KDF_ITERATIONS:
        raise SetupError(f"Key derivation needs at least {MIN_KDF_ITERATIONS} iterations")
    return KdfParams(KDF_SHA256_ITERATED, generate_salt(), iterations)


class VaultCipher:
    """Locked/unlocked master-key holder; see the module docstring for the state machine."""

    def __init__(self, credentials: CredentialStore, header: KdfHeaderFile,
                 audit: Optional[AuditLog] = None, events: Optional[EventBus] = None,
                 lock: Optional[threading.RLock] = None, kdf_params: Optional[Dict[str, Any]] = None):
        self.credentials = credentials
        self.header = header
        self.audit = audit
        self.events = events or EventBus()
        self.mutex = lock or threading.RLock()
        self.kdf_params = kdf_params or {}
        self._key: Optional[bytearray] = None
        self.error_message: Optional[str] = None
        self.last_error: Optional[Exception] = None

    @property
    def state(self) -> VaultState:
        with self.mutex:
            return VaultState.UNLOCKED if self._key is not None else VaultState.LOCKED

    @property
    def is_unlocked(self) -> bool:
        return self.state is VaultState.UNLOCKED

    def is_initialized(self) -> bool:
        return self.credentials.is_initialized() and self.header.exists()

    def setup(self, password: str, force: bool = False) -> None:
        if not password:
            raise SetupError("Password must not be empty")
        with self.mutex:
            if self.is_initialized() and not force:
                raise SetupError("Vault already exists. Unlock it instead.")
            params = kdf_params_from_config(**self.kdf_params)
            try:
                key = derive(password, params)
            except ValueError as e:
                raise SetupError(str(e)) from None
            try:
                self.header.save(params)
                self.credentials.save(key)
            except StoreWriteError as e:
                raise SetupError(e.user_message) from None
            self._install_key(key)
        self._after_unlock("Vault set up and unlocked")

    def unlock_with_password(self, password: str) -> bool:
        """Return True on success; on a wrong password stay locked and set error_message.

        Store errors (no vault, unreadable keystore) propagate as raised.
        """
        params = self.header.load()
        stored = self.credentials.load()
        try:
            candidate = derive(password, params)
        except ValueError:
            candidate = b""
        if not candidate or not hmac.compare_digest(candidate, stored):
            return self._fail_unlock(AuthenticationFailed("Incorrect password"))
        with self.mutex:
            self._install_key(candidate)
        self._after_unlock("Vault unlocked with password")
        return True

    def unlock_with_external_credential(self, raw_key: bytes) -> bool:
        """Unlock with key material released by an OS-level gate (e.g. biometrics)."""
        if not isinstance(raw_key, (bytes, bytearray)) or len(raw_key) != KEY_SIZE:
            return self._fail_unlock(AuthenticationFailed("External credential was rejected"))
        with self.mutex:
            self._install_key(bytes(raw_key))
        self._after_unlock("Vault unlocked with external credential")
        return True

    def lock(self) -> None:
        with self.mutex:
            was_unlocked = self._key is not None
            if was_unlocked:
                for i in range(len(self._key)):
                    self._key[i] = 0
                self._key = None
        if was_unlocked:
            logger.info("Vault locked")
            self._audit(AuditEventType.VAULT_LOCKED, "Vault locked")
            self.events.publish(VaultEvent.LOCKED)

    def _install_key(self, key: bytes) -> None:
        self._key = bytearray(key)
        self.error_message = None
        self.last_error = None

    def _after_unlock(self, details: str) -> None:
        logger.info(details)
        self._audit(AuditEventType.VAULT_UNLOCKED, details)
        self.events.publish(VaultEvent.UNLOCKED)

    def _fail_unlock(self, error: AuthenticationFailed) -> bool:
        self.last_error = error
        self.error_message = error.user_message
        logger.warning("Unlock attempt failed")
        return False

    def _audit(self, event_type: AuditEventType, details: str, filename: Optional[str] = None) -> None:
        if self.audit is not None:
            self.audit.record(event_type, details, filename)

    def _snapshot(self) -> AESGCM:
        with self.mutex:
            if self._key is None:
                raise VaultLockedError()
            return AESGCM(bytes(self._key))

    def encrypt(self, plaintext: bytes, original_name: str,
                classification: Optional[Classification] = None) -> Tuple[EncryptedObject, Sidecar]:
        aesgcm = self._snapshot()
        obj = seal(aesgcm, bytes(plaintext))
        sidecar = Sidecar(
            original_file_name=original_name,
            date_encrypted=time.time(),
            nonce_b64=base64.b64encode(obj.nonce).decode("ascii"),
            classification=classification,
        )
        return obj, sidecar

    def decrypt(self, obj: EncryptedObject, sidecar: Sidecar) -> Tuple[bytes, str]:
        aesgcm = self._snapshot()
        plaintext = open_sealed(aesgcm, obj)
        self._audit(AuditEventType.FILE_DECRYPTED, f"File decrypted: {sidecar.original_file_name}",
                    sidecar.original_file_name)
        return plaintext, sidecar.original_file_name

    def encrypt_metadata_blob(self, fields: Dict[str, Any]) -> str:
        aesgcm = self._snapshot()
        payload = json.dumps(fields, sort_keys=True, separators=(",", ":")).encode("utf-8")
        return base64.b64encode(seal(aesgcm, payload).combined).decode("ascii")

    def decrypt_metadata_blob(self, blob_b64: str) -> Dict[str, Any]:
        aesgcm = self._snapshot()
        try:
            obj = EncryptedObject.from_combined(base64.b64decode(blob_b64, validate=True))
        except (ValueError, TypeError, binascii.Error):
            raise IntegrityError() from None
        plaintext = open_sealed(aesgcm, obj)
        try:
            fields = json.loads(plaintext.decode("utf-8"))
        except ValueError:
            raise IntegrityError() from None
        if not isinstance(fields, dict):
            raise IntegrityError()
        return fields
