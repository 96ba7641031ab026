"""Persistence of the master key material outside the vault's own files.

The master key never sits next to the encrypted container: the default
backend keeps it in a separate, owner-only keystore document.
"""
import base64
import binascii
import json
import os
import threading

from pathlib import Path
from typing import Dict, Optional

from privault.utils.errors import StoreReadError, StoreWriteError
from privault.utils.helper import atomic_write
from privault.utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_ACCOUNT = "privault.master-key"


class MemoryKeystore:
    """Process-local secret backend for embedding and tests."""

    def __init__(self):
        self._items: Dict[str, bytes] = {}

    def contains(self, account: str) -> bool:
        return account in self._items

    def get(self, account: str) -> Optional[bytes]:
        return self._items.get(account)

    def set(self, account: str, secret: bytes) -> None:
        self._items[account] = bytes(secret)

    def delete(self, account: str) -> None:
        self._items.pop(account, None)


class FileKeystore:
    """Owner-only JSON document of {account: base64(secret)}.

    Directory mode 0700, file mode 0600, every write goes through a temp file
    and an atomic replace.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("keystore root must be an object")
        return data

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        os.chmod(self.path.parent, 0o700)
        atomic_write(self.path, json.dumps(data, indent=2).encode("utf-8"), mode=0o600)

    def contains(self, account: str) -> bool:
        try:
            return account in self._read()
        except (OSError, ValueError):
            return False

    def get(self, account: str) -> Optional[bytes]:
        with self._lock:
            value = self._read().get(account)
        if value is None:
            return None
        return base64.b64decode(value, validate=True)

    def set(self, account: str, secret: bytes) -> None:
        with self._lock:
            data = self._read()
            data[account] = base64.b64encode(bytes(secret)).decode("ascii")
            self._write(data)

    def delete(self, account: str) -> None:
        with self._lock:
            data = self._read()
            if data.pop(account, None) is not None:
                self._write(data)


class CredentialStore:
    """Wraps a secret backend under one application-scoped account name."""

    def __init__(self, backend, account: str = DEFAULT_ACCOUNT):
        self.backend = backend
        self.account = account

    def is_initialized(self) -> bool:
        return self.backend.contains(self.account)

    def save(self, key_bytes: bytes) -> None:
        try:
            self.backend.delete(self.account)
            self.backend.set(self.account, key_bytes)
        except (OSError, ValueError) as e:
            logger.error("Keystore write failed for %s", self.account)
            raise StoreWriteError(f"Could not save key material: {e}") from None

    def load(self) -> bytes:
        try:
            secret = self.backend.get(self.account)
        except (OSError, ValueError, binascii.Error) as e:
            raise StoreReadError(f"Could not read key material: {e}") from None
        if not secret:
            raise StoreReadError("No key material stored; set up the vault first")
        return secret

    def clear(self) -> None:
        try:
            self.backend.delete(self.account)
        except (OSError, ValueError) as e:
            raise StoreWriteError(f"Could not remove key material: {e}") from None
