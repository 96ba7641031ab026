import json
import uuid

from dataclasses import dataclass
from pathlib import Path

from privault.utils.errors import StoreWriteError
from privault.utils.helper import atomic_write
from privault.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class DeviceIdentity:
    device_id: str

    @staticmethod
    def load_or_create(path: Path) -> "DeviceIdentity":
        """Return the installation's device id, generating and persisting it on first use."""
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            device_id = data.get("device_id") if isinstance(data, dict) else None
            if isinstance(device_id, str) and device_id:
                return DeviceIdentity(device_id)
            logger.warning("Device file %s has no usable id; generating a new one", path)
        except FileNotFoundError:
            pass
        except (OSError, ValueError) as e:
            logger.warning("Could not read device file %s: %s", path, e)

        identity = DeviceIdentity(str(uuid.uuid4()).upper())
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write(path, json.dumps({"device_id": identity.device_id}).encode("utf-8"))
        except OSError as e:
            raise StoreWriteError(f"Could not persist device id: {e.strerror or e}") from None
        return identity
