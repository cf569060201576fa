import copy
import logging
import os
from pathlib import Path

import yaml

logger = logging.getLogger("replisync.config")

DEFAULT_CONFIG = {
    "server": {
        "port": 8940,
        "host": "0.0.0.0",
        "cors_origins": ["*"],
    },
    "database": {
        "path": str(Path.home() / ".local" / "share" / "replisync" / "replisync.db"),
        # Seconds to wait on a locked database before giving up
        "timeout": 5.0,
    },
    "account": {
        # Placeholder until requests are authenticated
        "id": "default",
    },
    "sync": {
        "compare_and_swap": True,
        "max_conflict_retries": 3,
    },
    "logging": {
        "level": "INFO",
    }
}

CONFIG_DIR = Path(os.environ.get("REPLISYNC_CONFIG_DIR", Path.home() / ".config" / "replisync"))
CONFIG_PATH = CONFIG_DIR / "config.yaml"


class Config:
    def __init__(self, path: Path = CONFIG_PATH):
        self.path = path
        self._config = copy.deepcopy(DEFAULT_CONFIG)
        self.load()

    def load(self):
        if not self.path.exists():
            return
        try:
            with open(self.path, "r") as f:
                user_config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error loading config from {self.path}: {e}")
            return
        if user_config:
            self._update_dict(self._config, user_config)

    def _update_dict(self, base_dict, update_with):
        for key, value in update_with.items():
            if isinstance(value, dict) and key in base_dict and isinstance(base_dict[key], dict):
                self._update_dict(base_dict[key], value)
            else:
                base_dict[key] = value

    @property
    def server_port(self) -> int:
        return int(self._config["server"]["port"])

    @property
    def server_host(self) -> str:
        return self._config["server"]["host"]

    @property
    def cors_origins(self) -> list[str]:
        return list(self._config["server"]["cors_origins"])

    @property
    def db_path(self) -> Path:
        return Path(os.path.expanduser(self._config["database"]["path"]))

    @property
    def db_timeout(self) -> float:
        return float(self._config["database"]["timeout"])

    @property
    def account_id(self) -> str:
        return str(self._config["account"]["id"])

    @property
    def compare_and_swap(self) -> bool:
        return bool(self._config["sync"]["compare_and_swap"])

    @property
    def max_conflict_retries(self) -> int:
        return int(self._config["sync"]["max_conflict_retries"])

    @property
    def log_level(self) -> str:
        return self._config["logging"]["level"]

    def ensure_config_file(self) -> bool:
        """Create a default config file if it doesn't exist."""
        if self.path.exists():
            return False
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            yaml.dump(DEFAULT_CONFIG, f, default_flow_style=False)
        return True


config = Config()
