"""On-disk encrypted container.

Layout::

    SecureVault/
      CACHEDIR.TAG                  # keeps backup tools out
      <uuid>.encrypted              # nonce(12) || AES-256-GCM ciphertext || tag(16)
      <uuid>.encrypted.meta         # JSON sidecar: originalFileName, dateEncrypted, nonce

Deletion is a plain unlink; residual data may remain recoverable on the
underlying storage.
"""
import datetime as _dt
import json
import os
import uuid

from pathlib import Path
from typing import List, Optional

from privault.crypto.cipher import VaultCipher
from privault.storage.audit import AuditLog
from privault.utils.dataModels import (
    ENCRYPTED_SUFFIX, AuditEventType, Classification, EncryptedObject, Sidecar, VaultEntry,
)
from privault.utils.errors import EntryNotFound, IntegrityError, StoreReadError, StoreWriteError
from privault.utils.events import VaultEvent
from privault.utils.helper import CACHEDIR_TAG, atomic_write
from privault.utils.logging_config import get_logger

logger = get_logger(__name__)


class VaultStore:
    """Adds, enumerates, reads and deletes entries; byte encryption is delegated to VaultCipher."""

    def __init__(self, container: Path, cipher: VaultCipher, audit: Optional[AuditLog] = None):
        self.container = Path(container)
        self.cipher = cipher
        self.audit = audit
        self._ensure_container()

    def _ensure_container(self) -> None:
        try:
            self.container.mkdir(parents=True, exist_ok=True)
            os.chmod(self.container, 0o700)
            tag = self.container / "CACHEDIR.TAG"
            if not tag.exists():
                tag.write_text(CACHEDIR_TAG, encoding="ascii")
        except OSError as e:
            raise StoreWriteError(f"Could not create vault container: {e.strerror or e}") from None

    def _audit(self, event_type: AuditEventType, details: str, filename: Optional[str]) -> None:
        if self.audit is not None:
            self.audit.record(event_type, details, filename)

    def _object_path(self, entry_id: str) -> Path:
        return self.container / f"{entry_id}{ENCRYPTED_SUFFIX}"

    def add_file(self, data: bytes, name: str, classification: Optional[Classification] = None) -> VaultEntry:
        """Encrypt bytes into the container and return the new entry."""
        if not name:
            raise ValueError("name must not be empty")
        obj, sidecar = self.cipher.encrypt(data, name, classification)

        entry_id = str(uuid.uuid4())
        blob_path = self._object_path(entry_id)
        meta_path = blob_path.with_name(blob_path.name + ".meta")
        with self.cipher.mutex:
            try:
                # Sidecar first: a ciphertext never appears without its metadata.
                atomic_write(meta_path, json.dumps(sidecar.to_dict()).encode("utf-8"), mode=0o600)
                atomic_write(blob_path, obj.combined, mode=0o600)
            except OSError as e:
                meta_path.unlink(missing_ok=True)
                raise StoreWriteError(f"Could not store {name}: {e.strerror or e}") from None

        entry = VaultEntry(
            id=entry_id,
            original_name=name,
            location=blob_path,
            date_added=_dt.datetime.fromtimestamp(sidecar.date_encrypted, _dt.timezone.utc),
            size=len(obj.combined),
            classification=classification,
        )
        self._audit(AuditEventType.FILE_ENCRYPTED, "File encrypted and stored in vault", name)
        logger.info("Added %s as id=%s", name, entry_id)
        self.cipher.events.publish(VaultEvent.ENTRY_ADDED, entry=entry)
        return entry

    def add_path(self, path: Path, classification: Optional[Classification] = None) -> VaultEntry:
        src = Path(path)
        if not src.is_file():
            raise StoreReadError(f"Not a file: {src}")
        return self.add_file(src.read_bytes(), src.name, classification)

    def _load_entry(self, blob_path: Path) -> VaultEntry:
        meta_path = blob_path.with_name(blob_path.name + ".meta")
        sidecar = Sidecar.from_dict(json.loads(meta_path.read_text(encoding="utf-8")))
        return VaultEntry(
            id=blob_path.name[: -len(ENCRYPTED_SUFFIX)],
            original_name=sidecar.original_file_name,
            location=blob_path,
            date_added=_dt.datetime.fromtimestamp(sidecar.date_encrypted, _dt.timezone.utc),
            size=blob_path.stat().st_size,
            classification=sidecar.classification,
        )

    def list_entries(self) -> List[VaultEntry]:
        """All well-formed entries, oldest first.

        A ciphertext whose sidecar is missing or malformed is logged and skipped.
        """
        with self.cipher.mutex:
            try:
                candidates = sorted(self.container.glob(f"*{ENCRYPTED_SUFFIX}"))
            except OSError as e:
                raise StoreReadError(f"Could not read vault container: {e.strerror or e}") from None

            entries = []
            for blob_path in candidates:
                if not blob_path.is_file():
                    continue
                try:
                    entries.append(self._load_entry(blob_path))
                except (OSError, ValueError, TypeError, OverflowError) as e:
                    logger.warning("Skipping corrupt vault object %s: %s", blob_path.name, e)
        entries.sort(key=lambda entry: (entry.date_added, entry.id))
        return entries

    def get_entry(self, entry_id: str) -> VaultEntry:
        try:
            canonical = str(uuid.UUID(entry_id))
        except (ValueError, TypeError, AttributeError):
            raise EntryNotFound(f"No such id: {entry_id}") from None
        blob_path = self._object_path(canonical)
        if not blob_path.is_file():
            raise EntryNotFound(f"No such id: {entry_id}")
        try:
            return self._load_entry(blob_path)
        except (OSError, ValueError, TypeError, OverflowError):
            raise EntryNotFound(f"Entry {entry_id} is corrupt (sidecar unreadable)") from None

    def read_entry(self, entry: VaultEntry) -> bytes:
        try:
            blob = entry.location.read_bytes()
            sidecar = Sidecar.from_dict(json.loads(entry.sidecar_location.read_text(encoding="utf-8")))
        except FileNotFoundError:
            raise EntryNotFound(f"No such id: {entry.id}") from None
        except OSError as e:
            raise StoreReadError(f"Could not read {entry.original_name}: {e.strerror or e}") from None
        except (ValueError, TypeError):
            raise IntegrityError() from None
        try:
            obj = EncryptedObject.from_combined(blob)
        except ValueError:
            raise IntegrityError() from None

        plaintext, name = self.cipher.decrypt(obj, sidecar)
        self._audit(AuditEventType.FILE_ACCESSED, f"File accessed: {name}", name)
        return plaintext

    def export_entry(self, entry: VaultEntry, out: Path) -> Path:
        plaintext = self.read_entry(entry)
        out = Path(out)
        if out.is_dir():
            name = Path(entry.original_name).name
            out = out / (name if name not in ("", ".", "..") else entry.id)
        try:
            out.write_bytes(plaintext)
        except OSError as e:
            raise StoreWriteError(f"Could not write {out}: {e.strerror or e}") from None
        return out

    def delete_entry(self, entry: VaultEntry) -> None:
        """Remove ciphertext and sidecar; both removals are attempted even if one fails."""
        failures = []
        with self.cipher.mutex:
            for path in (entry.location, entry.sidecar_location):
                try:
                    path.unlink(missing_ok=True)
                except OSError as e:
                    failures.append(f"{path.name}: {e.strerror or e}")
        self._audit(AuditEventType.FILE_DELETED, f"File deleted: {entry.original_name}", entry.original_name)
        self.cipher.events.publish(VaultEvent.ENTRY_REMOVED, entry=entry)
        if failures:
            raise StoreWriteError("Could not fully delete entry: " + "; ".join(failures))
        logger.info("Deleted id=%s", entry.id)
