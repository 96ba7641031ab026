"""Wire models for the metadata sync protocol.

Decoding of sync responses is defensive: each field that fails to decode
falls back to a safe default instead of failing the whole exchange.
"""
import datetime as _dt

from dataclasses import dataclass, field
from typing import Any, Dict, List

from privault.utils.errors import DecodingError
from privault.utils.helper import format_rfc3339, parse_rfc3339, utc_now
from privault.utils.logging_config import get_logger

logger = get_logger(__name__)


def _require(obj: Dict[str, Any], key: str, kind):
    value = obj.get(key)
    if isinstance(value, bool) and kind is not bool:
        raise DecodingError(f"Field '{key}' has the wrong type")
    if not isinstance(value, kind):
        raise DecodingError(f"Field '{key}' is missing or has the wrong type")
    return value


@dataclass
class FileMetadata:
    id: str
    encrypted_data: str
    owner_id: int
    version: int
    last_modified_at: _dt.datetime
    is_deleted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "encrypted_data": self.encrypted_data,
            "user_id": self.owner_id,
            "version": self.version,
            "last_modified_at": format_rfc3339(self.last_modified_at),
            "is_deleted": self.is_deleted,
        }

    @staticmethod
    def from_dict(obj: Any) -> "FileMetadata":
        if not isinstance(obj, dict):
            raise DecodingError("Metadata record must be an object")
        try:
            modified = parse_rfc3339(obj.get("last_modified_at"))
        except ValueError:
            raise DecodingError("Field 'last_modified_at' is not a valid timestamp") from None
        owner = obj.get("user_id", 0)
        return FileMetadata(
            id=_require(obj, "id", str),
            encrypted_data=_require(obj, "encrypted_data", str),
            owner_id=owner if isinstance(owner, int) and not isinstance(owner, bool) else 0,
            version=_require(obj, "version", int),
            last_modified_at=modified,
            is_deleted=bool(obj.get("is_deleted", False)),
        )


@dataclass
class VaultFileMetadata:
    """Local pre-wire form of one record, built from a vault entry."""
    id: str
    encrypted_metadata: str
    version: int
    last_modified: _dt.datetime
    is_deleted: bool = False

    def to_wire(self, owner_id: int = 0) -> FileMetadata:
        return FileMetadata(
            id=self.id,
            encrypted_data=self.encrypted_metadata,
            owner_id=owner_id,
            version=self.version,
            last_modified_at=self.last_modified,
            is_deleted=self.is_deleted,
        )


@dataclass
class AuthSession:
    server_url: str
    token: str
    expires_at: int
    user_id: int

    @staticmethod
    def from_dict(obj: Any, server_url: str) -> "AuthSession":
        if not isinstance(obj, dict):
            raise DecodingError("Authentication response must be an object")
        token = _require(obj, "token", str)
        if not token:
            raise DecodingError("Authentication response carried an empty token")
        return AuthSession(
            server_url=server_url,
            token=token,
            expires_at=_require(obj, "expires_at", int),
            user_id=_require(obj, "user_id", int),
        )

    def __repr__(self) -> str:
        return f"AuthSession(server_url={self.server_url!r}, user_id={self.user_id}, expires_at={self.expires_at})"


@dataclass
class SyncResult:
    updated_records: List[FileMetadata] = field(default_factory=list)
    deleted_ids: List[str] = field(default_factory=list)
    sync_token: str = ""
    server_timestamp: _dt.datetime = field(default_factory=utc_now)

    @staticmethod
    def from_payload(obj: Any) -> "SyncResult":
        """Field-by-field decoding; an explicit ``error`` field is raised by the caller first."""
        if not isinstance(obj, dict):
            raise DecodingError("Sync response must be an object")

        result = SyncResult()

        raw_items = obj.get("updated_items")
        if isinstance(raw_items, list):
            for item in raw_items:
                try:
                    result.updated_records.append(FileMetadata.from_dict(item))
                except DecodingError as e:
                    logger.warning("Skipping undecodable updated item: %s", e.user_message)
        elif raw_items is not None:
            logger.warning("Error decoding updated_items: not a list")

        raw_deleted = obj.get("deleted_ids")
        if isinstance(raw_deleted, list) and all(isinstance(i, str) for i in raw_deleted):
            result.deleted_ids = list(raw_deleted)
        elif raw_deleted is not None:
            logger.warning("Error decoding deleted_ids: not a list of strings")

        token = obj.get("sync_token")
        if isinstance(token, str):
            result.sync_token = token
        else:
            logger.warning("Error decoding sync_token")

        try:
            result.server_timestamp = parse_rfc3339(obj.get("timestamp"))
        except ValueError:
            logger.warning("Error decoding timestamp; using current time")

        return result


@dataclass
class SyncStatus:
    last_sync_at: _dt.datetime | None
    device_id: str
    item_count: int
    sync_token: str

    @staticmethod
    def from_dict(obj: Any) -> "SyncStatus":
        if not isinstance(obj, dict):
            raise DecodingError("Sync status response must be an object")
        try:
            last_sync = parse_rfc3339(obj.get("last_sync_at"))
        except ValueError:
            last_sync = None
        count = obj.get("item_count", 0)
        return SyncStatus(
            last_sync_at=last_sync,
            device_id=obj.get("device_id") if isinstance(obj.get("device_id"), str) else "",
            item_count=count if isinstance(count, int) and not isinstance(count, bool) else 0,
            sync_token=obj.get("sync_token") if isinstance(obj.get("sync_token"), str) else "",
        )
