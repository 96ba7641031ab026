"""Configuration management for privault."""

import json
import os
import shutil
from pathlib import Path
from typing import List, Optional

from privault.utils.helper import VaultPaths
from privault.utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_HOME = Path.home() / ".privault"


def default_home() -> Path:
    env = os.environ.get("PRIVAULT_HOME")
    return Path(env).expanduser() if env else DEFAULT_HOME


def default_keystore_path() -> Path:
    """Key material lives outside the vault home so exporting the home never carries it."""
    base = os.environ.get("XDG_DATA_HOME")
    root = Path(base).expanduser() if base else Path.home() / ".local" / "share"
    return root / "privault-keystore" / "keystore.json"


class Config:
    """Manages privault configuration stored in a JSON file."""

    DEFAULT_CONFIG = {
        "keystore_path": None,
        "kdf": "sha256-iterated",
        "kdf_iterations": 100_000,
        "argon2_time_cost": 4,
        "argon2_memory_kib": 65536,
        "argon2_parallelism": 2,
        "sync_candidates": [
            "http://localhost:8080",
            "http://localhost:3000",
            "http://localhost:5000",
        ],
        "probe_timeout": 3.0,
        "request_timeout": 15.0,
        "sync_timeout": 60.0,
    }

    def __init__(self, home: Optional[Path] = None):
        self.paths = VaultPaths(Path(home) if home else default_home())
        self.config_path = self.paths.config
        self.data = self._load()

    def _load(self) -> dict:
        config = self.DEFAULT_CONFIG.copy()
        if not self.config_path.exists():
            return config
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("config root must be an object")
        except (json.JSONDecodeError, OSError, ValueError) as e:
            logger.warning("Ignoring unreadable config %s: %s", self.config_path, e)
            backup_path = self.config_path.with_suffix(".json.bak")
            try:
                shutil.copy(self.config_path, backup_path)
            except OSError:
                logger.warning("Could not back up config to %s", backup_path)
            return config
        config.update(data)
        return config

    def save(self) -> None:
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, "w", encoding="utf-8") as f:
            json.dump(self.data, f, indent=2)

    @property
    def home(self) -> Path:
        return self.paths.home

    def get_keystore_path(self) -> Path:
        value = self.data.get("keystore_path")
        return Path(value).expanduser() if value else default_keystore_path()

    def get_kdf_params(self) -> dict:
        return {
            "kdf": self.data.get("kdf", "sha256-iterated"),
            "iterations": int(self.data.get("kdf_iterations", 100_000)),
            "time_cost": int(self.data.get("argon2_time_cost", 4)),
            "memory_kib": int(self.data.get("argon2_memory_kib", 65536)),
            "parallelism": int(self.data.get("argon2_parallelism", 2)),
        }

    def get_sync_candidates(self) -> List[str]:
        return list(self.data.get("sync_candidates") or self.DEFAULT_CONFIG["sync_candidates"])

    def get_timeouts(self) -> dict:
        return {
            "probe": float(self.data.get("probe_timeout", 3.0)),
            "request": float(self.data.get("request_timeout", 15.0)),
            "sync": float(self.data.get("sync_timeout", 60.0)),
        }
