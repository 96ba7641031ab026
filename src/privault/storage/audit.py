import datetime as _dt
import json
import threading

from pathlib import Path
from typing import List, Optional

from privault.utils.dataModels import AuditEvent, AuditEventType
from privault.utils.helper import atomic_write
from privault.utils.logging_config import get_logger

logger = get_logger(__name__)


class AuditLog:
    """Append-only journal of vault lifecycle and file-access events.

    Persisted as a single JSON array rewritten on each append. Logging is
    best effort: failures are recorded in ``last_error`` and logged, never
    raised, so an audit problem cannot block the vault operation that
    triggered it.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.last_error: Optional[Exception] = None
        self._lock = threading.Lock()

    def _load_raw(self) -> list:
        if not self.path.exists():
            return []
        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            return []
        data = json.loads(text)
        if not isinstance(data, list):
            raise ValueError("audit log root must be a JSON array")
        return data

    def append(self, event: AuditEvent) -> bool:
        with self._lock:
            try:
                entries = self._load_raw()
                entries.append(event.to_dict())
                self.path.parent.mkdir(parents=True, exist_ok=True)
                atomic_write(self.path, json.dumps(entries, indent=2).encode("utf-8"))
            except (OSError, ValueError) as e:
                self.last_error = e
                logger.warning("Failed to update audit log %s: %s", self.path, e)
                return False
        self.last_error = None
        return True

    def record(self, event_type: AuditEventType, details: str, filename: Optional[str] = None) -> bool:
        event = AuditEvent(
            timestamp=_dt.datetime.now().replace(microsecond=0),
            event_type=event_type,
            details=details,
            filename=filename,
        )
        return self.append(event)

    def read_all(self) -> List[AuditEvent]:
        """Events newest first; among equal timestamps the later-appended comes first."""
        with self._lock:
            try:
                raw = self._load_raw()
            except (OSError, ValueError) as e:
                self.last_error = e
                logger.warning("Failed to read audit log %s: %s", self.path, e)
                return []

        indexed = []
        for index, item in enumerate(raw):
            try:
                indexed.append((index, AuditEvent.from_dict(item)))
            except (KeyError, ValueError, TypeError):
                logger.debug("Skipping malformed audit entry at index %d", index)
        indexed.sort(key=lambda pair: (pair[1].timestamp, pair[0]), reverse=True)
        return [event for _, event in indexed]
