import base64
import datetime as _dt
import struct

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

KEY_SIZE = 32        # AES-256
NONCE_SIZE = 12      # AES-GCM 96-bit nonce
TAG_SIZE = 16
SALT_SIZE = 16
MIN_KDF_ITERATIONS = 100_000

KDF_SHA256_ITERATED = 1
KDF_ARGON2ID = 2
KDF_NAMES = {"sha256-iterated": KDF_SHA256_ITERATED, "argon2id": KDF_ARGON2ID}

HEADER_MAGIC = b"PVK1"
HEADER_VERSION = 1
HEADER_FMT = ">4sBBIII16s"  # magic, ver, kdf id, iterations|t_cost, m_cost KiB, parallelism, salt(16)
HEADER_SIZE = struct.calcsize(HEADER_FMT)

ENCRYPTED_SUFFIX = ".encrypted"

AUDIT_TIME_FMT = "%Y-%m-%d %H:%M:%S"
# Latest epoch second representable by datetime (9999-12-31T23:59:59Z).
MAX_EPOCH_SECONDS = 253402300799


class Category(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    SENSITIVE = "sensitive"


class RiskLevel(str, Enum):
    SAFE = "safe"
    MODERATE = "moderate"
    HIGH = "high"


@dataclass(frozen=True)
class KdfParams:
    kdf_id: int
    salt: bytes
    iterations: int
    memory_kib: int = 0
    parallelism: int = 0


@dataclass(frozen=True)
class Classification:
    """Opaque annotation produced by the external content classifier."""
    risk_score: int
    category: Category
    risk_level: RiskLevel
    keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "riskScore": self.risk_score,
            "category": self.category.value,
            "riskLevel": self.risk_level.value,
            "keywords": list(self.keywords),
        }

    @staticmethod
    def from_dict(obj: Dict[str, Any]) -> "Classification":
        score = obj["riskScore"]
        if isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= 100:
            raise ValueError("riskScore must be an integer in 0..100")
        keywords = obj.get("keywords", [])
        if not isinstance(keywords, list) or not all(isinstance(k, str) for k in keywords):
            raise ValueError("keywords must be a list of strings")
        return Classification(
            risk_score=score,
            category=Category(obj["category"]),
            risk_level=RiskLevel(obj["riskLevel"]),
            keywords=keywords,
        )


@dataclass(frozen=True)
class EncryptedObject:
    nonce: bytes
    ciphertext: bytes  # includes the GCM tag

    @property
    def combined(self) -> bytes:
        return self.nonce + self.ciphertext

    @staticmethod
    def from_combined(blob: bytes) -> "EncryptedObject":
        if len(blob) < NONCE_SIZE + TAG_SIZE:
            raise ValueError("encrypted object is too small or corrupt")
        return EncryptedObject(nonce=blob[:NONCE_SIZE], ciphertext=blob[NONCE_SIZE:])


@dataclass(frozen=True)
class Sidecar:
    original_file_name: str
    date_encrypted: float  # epoch seconds
    nonce_b64: str
    classification: Optional[Classification] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "originalFileName": self.original_file_name,
            "dateEncrypted": self.date_encrypted,
            "nonce": self.nonce_b64,
        }
        if self.classification is not None:
            d["classification"] = self.classification.to_dict()
        return d

    @staticmethod
    def from_dict(obj: Any) -> "Sidecar":
        """Strict on the three required fields; a bad classification is dropped."""
        if not isinstance(obj, dict):
            raise ValueError("sidecar must be a JSON object")
        name = obj.get("originalFileName")
        date = obj.get("dateEncrypted")
        nonce = obj.get("nonce")
        if not isinstance(name, str) or not name:
            raise ValueError("sidecar is missing originalFileName")
        if isinstance(date, bool) or not isinstance(date, (int, float)):
            raise ValueError("sidecar is missing dateEncrypted")
        if not 0 <= date <= MAX_EPOCH_SECONDS:
            raise ValueError("sidecar dateEncrypted is out of range")
        if not isinstance(nonce, str) or len(base64.b64decode(nonce, validate=True)) != NONCE_SIZE:
            raise ValueError("sidecar nonce is malformed")
        classification = None
        raw = obj.get("classification")
        if isinstance(raw, dict):
            try:
                classification = Classification.from_dict(raw)
            except (KeyError, ValueError, TypeError):
                classification = None
        return Sidecar(name, float(date), nonce, classification)


@dataclass(frozen=True)
class VaultEntry:
    id: str
    original_name: str
    location: Path
    date_added: _dt.datetime
    size: int
    classification: Optional[Classification] = None

    @property
    def sidecar_location(self) -> Path:
        return self.location.with_name(self.location.name + ".meta")


class AuditEventType(str, Enum):
    VAULT_UNLOCKED = "VAULT_UNLOCKED"
    VAULT_LOCKED = "VAULT_LOCKED"
    FILE_ENCRYPTED = "FILE_ENCRYPTED"
    FILE_DECRYPTED = "FILE_DECRYPTED"
    FILE_ACCESSED = "FILE_ACCESSED"
    FILE_DELETED = "FILE_DELETED"


@dataclass(frozen=True)
class AuditEvent:
    timestamp: _dt.datetime
    event_type: AuditEventType
    details: str
    filename: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "timestamp": self.timestamp.strftime(AUDIT_TIME_FMT),
            "eventType": self.event_type.value,
            "details": self.details,
        }
        if self.filename is not None:
            d["filename"] = self.filename
        return d

    @staticmethod
    def from_dict(obj: Any) -> "AuditEvent":
        if not isinstance(obj, dict):
            raise ValueError("audit entry must be an object")
        details = obj.get("details")
        if not isinstance(details, str):
            raise ValueError("audit entry is missing details")
        filename = obj.get("filename")
        if filename is not None and not isinstance(filename, str):
            raise ValueError("audit entry filename must be a string")
        return AuditEvent(
            timestamp=_dt.datetime.strptime(obj["timestamp"], AUDIT_TIME_FMT),
            event_type=AuditEventType(obj["eventType"]),
            details=details,
            filename=filename,
        )
