import datetime as _dt
import json

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from privault.crypto.cipher import VaultCipher
from privault.sync.models import SyncResult, VaultFileMetadata
from privault.utils.dataModels import VaultEntry
from privault.utils.errors import StoreWriteError
from privault.utils.helper import atomic_write, format_rfc3339, parse_rfc3339, utc_now
from privault.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class LedgerRecord:
    version: int
    is_deleted: bool
    last_modified: _dt.datetime


def metadata_fields(entry: VaultEntry) -> Dict[str, Any]:
    """Plain metadata that gets encrypted into a sync record's payload."""
    fields: Dict[str, Any] = {
        "file_id": entry.id,
        "filename": entry.original_name,
        "size": entry.size,
        "date_added": entry.date_added.timestamp(),
    }
    if entry.classification is not None:
        c = entry.classification
        fields.update({
            "risk_score": c.risk_score,
            "category": c.category.value,
            "classification": c.risk_level.value,
            "keywords": list(c.keywords),
        })
    return fields


class SyncLedger:
    """Local sync state: last sync token and the version of every locally-originated record.

    Only ``commit`` mutates persisted state, and it is only called after a
    successful exchange, so a failed or timed-out sync leaves nothing applied.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.sync_token = ""
        self.last_sync_at: Optional[_dt.datetime] = None
        self.records: Dict[str, LedgerRecord] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            self.sync_token = data.get("sync_token", "") or ""
            last = data.get("last_sync_at")
            self.last_sync_at = parse_rfc3339(last) if last else None
            for record_id, raw in (data.get("records") or {}).items():
                self.records[record_id] = LedgerRecord(
                    version=int(raw["version"]),
                    is_deleted=bool(raw.get("is_deleted", False)),
                    last_modified=parse_rfc3339(raw["last_modified"]),
                )
        except (OSError, ValueError, TypeError, KeyError, AttributeError) as e:
            logger.warning("Sync state %s is unreadable, starting a fresh sync: %s", self.path, e)
            self.sync_token = ""
            self.last_sync_at = None
            self.records = {}

    def save(self) -> None:
        data = {
            "sync_token": self.sync_token,
            "last_sync_at": format_rfc3339(self.last_sync_at) if self.last_sync_at else None,
            "records": {
                record_id: {
                    "version": r.version,
                    "is_deleted": r.is_deleted,
                    "last_modified": format_rfc3339(r.last_modified),
                }
                for record_id, r in self.records.items()
            },
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write(self.path, json.dumps(data, indent=2).encode("utf-8"))
        except OSError as e:
            raise StoreWriteError(f"Could not save sync state: {e.strerror or e}") from None

    def build_records(self, entries: Sequence[VaultEntry], cipher: VaultCipher) -> List[VaultFileMetadata]:
        """Full local record set for the next exchange.

        New entries start at version 1; an entry that has vanished locally is
        sent as a tombstone with its version bumped once.
        """
        now = utc_now()
        records = []
        present = set()
        for entry in entries:
            present.add(entry.id)
            known = self.records.get(entry.id)
            if known is None:
                version, modified = 1, entry.date_added
            elif known.is_deleted:
                version, modified = known.version + 1, now
            else:
                version, modified = known.version, known.last_modified
            blob = cipher.encrypt_metadata_blob(metadata_fields(entry))
            records.append(VaultFileMetadata(entry.id, blob, version, modified, False))

        for record_id, known in self.records.items():
            if record_id in present:
                continue
            if known.is_deleted:
                version, modified = known.version, known.last_modified
            else:
                version, modified = known.version + 1, now
            records.append(VaultFileMetadata(record_id, "", version, modified, True))
        return records

    def commit(self, pushed: Sequence[VaultFileMetadata], result: SyncResult) -> None:
        for record in pushed:
            self.records[record.id] = LedgerRecord(record.version, record.is_deleted, record.last_modified)
        for remote in result.updated_records:
            local = self.records.get(remote.id)
            if local is not None and remote.version > local.version:
                local.version = remote.version
                local.last_modified = remote.last_modified_at
        self.sync_token = result.sync_token
        self.last_sync_at = result.server_timestamp
        self.save()
