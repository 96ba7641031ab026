import datetime as _dt
import os
import re

from dataclasses import dataclass
from pathlib import Path

CONTAINER_DIRNAME = "SecureVault"
CACHEDIR_TAG = (
    "Signature: 8a477f597d28d172789f06886806bc55\n"
    "# This file is a cache directory tag created by privault.\n"
    "# Encrypted vault objects live here; do not back this directory up.\n"
)


@dataclass(frozen=True)
class VaultPaths:
    home: Path

    @property
    def container(self) -> Path:
        return self.home / CONTAINER_DIRNAME

    @property
    def header(self) -> Path:
        return self.home / "vault.hdr"

    @property
    def audit_log(self) -> Path:
        return self.home / "vault_audit_log.json"

    @property
    def device(self) -> Path:
        return self.home / "device.json"

    @property
    def sync_ledger(self) -> Path:
        return self.home / "sync_state.json"

    @property
    def config(self) -> Path:
        return self.home / "config.json"


def atomic_write(path: Path, data: bytes, mode: int | None = None) -> None:
    """Write to a sibling temp file, then replace, so readers never see a partial file."""
    tmp = path.with_name(path.name + ".tmp")
    with tmp.open("wb") as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())
    if mode is not None:
        os.chmod(tmp, mode)
    os.replace(tmp, path)


def utc_now() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc).replace(microsecond=0)


_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def parse_rfc3339(value: str) -> _dt.datetime:
    """Parse an RFC 3339 timestamp as emitted by the sync server.

    Fractions longer than microseconds are truncated; a naive result is taken as UTC.
    Raises ValueError on anything else.
    """
    if not isinstance(value, str) or not value:
        raise ValueError("timestamp must be a non-empty string")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(r"\1", text)
    parsed = _dt.datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=_dt.timezone.utc)
    return parsed


def format_rfc3339(value: _dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=_dt.timezone.utc)
    return value.astimezone(_dt.timezone.utc).isoformat().replace("+00:00", "Z")


def format_size(size: int) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size} B"
