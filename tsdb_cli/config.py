"""Config file loading for tsdb-cli.

The config is a JSON file, by default ``~/.tsdb-cli/config.json``::

    {
      "host": "localhost",
      "port": 8086,
      "user": "root",
      "password": "root",
      "database": "metrics"
    }

``timeout`` (seconds) and ``scheme`` (http or https) are optional.
"""

import dataclasses
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from tsdb_cli import ConfigError, TSDBClient

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = os.path.expanduser("~/.tsdb-cli")
DEFAULT_CONFIG_FILE = os.path.join(DEFAULT_CONFIG_DIR, "config.json")

# field name -> expected type
REQUIRED_FIELDS = {
    "host": str,
    "port": int,
    "user": str,
    "password": str,
    "database": str,
}
SCHEMES = ("http", "https")
DEFAULT_PORT = TSDBClient.DEFAULT_PORT
DEFAULT_TIMEOUT = TSDBClient.DEFAULT_TIMEOUT


@dataclass(frozen=True)
class Config:
    host: str
    port: int
    user: str
    password: str
    database: str
    timeout: int = DEFAULT_TIMEOUT
    scheme: str = "http"

    def with_overrides(self, **overrides: Any) -> "Config":
        """Returns a validated copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        merged = dataclasses.asdict(self)
        merged.update(changes)
        return config_from_dict(merged, source="command line")

    def make_client(self) -> TSDBClient:
        return TSDBClient(
            host=self.host,
            port=self.port,
            user=self.user or None,
            password=self.password,
            database=self.database,
            timeout=self.timeout,
            scheme=self.scheme,
        )


def default_config() -> Dict[str, Any]:
    return {
        "host": "localhost",
        "port": DEFAULT_PORT,
        "user": "",
        "password": "",
        "database": "mydb",
        "timeout": DEFAULT_TIMEOUT,
        "scheme": "http",
    }


def config_from_dict(data: Any, source: str = "config") -> Config:
    """Validates a decoded config dictionary and builds a Config from it."""
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: expected a JSON object, got {type(data).__name__}")

    for name, expected in REQUIRED_FIELDS.items():
        if name not in data:
            raise ConfigError(f"{source}: missing required field '{name}'")
        value = data[name]
        # bool is an int subclass, reject it for 'port'
        if not isinstance(value, expected) or isinstance(value, bool):
            raise ConfigError(
                f"{source}: field '{name}' must be {expected.__name__}, got {type(value).__name__}"
            )

    for name in ("host", "database"):
        if not data[name]:
            raise ConfigError(f"{source}: field '{name}' cannot be empty")
    if data["port"] <= 0:
        raise ConfigError(f"{source}: field 'port' must be a positive integer")

    timeout = data.get("timeout", DEFAULT_TIMEOUT)
    if not isinstance(timeout, int) or isinstance(timeout, bool) or timeout <= 0:
        raise ConfigError(f"{source}: field 'timeout' must be a positive integer")
    scheme = data.get("scheme", "http")
    if scheme not in SCHEMES:
        raise ConfigError(f"{source}: field 'scheme' must be one of {', '.join(SCHEMES)}")

    return Config(
        host=data["host"],
        port=data["port"],
        user=data["user"],
        password=data["password"],
        database=data["database"],
        timeout=timeout,
        scheme=scheme,
    )


def load_config(path: Optional[str] = None) -> Config:
    """
    Reads and validates the config file.

    Args:
        path: Config file path; defaults to ~/.tsdb-cli/config.json.

    Raises:
        ConfigError: If the file is missing, unreadable, not valid JSON, or
                     lacks a required field.
    """
    config_path = path or DEFAULT_CONFIG_FILE
    logger.debug(f"Loading configuration from {config_path}")
    try:
        with open(config_path, "r", encoding="utf-8") as cf:
            data = json.load(cf)
    except FileNotFoundError as e:
        raise ConfigError(
            f"Config file not found: {config_path} (create one with 'tsdb-cli gen-config')"
        ) from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Error parsing config file {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Error reading config file {config_path}: {e}") from e

    return config_from_dict(data, source=config_path)


def write_default_config(path: Optional[str] = None) -> str:
    """Writes the default config to path (creating its directory) and returns the path."""
    config_path = path or DEFAULT_CONFIG_FILE
    config_dir = os.path.dirname(config_path)
    if config_dir:
        os.makedirs(config_dir, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as cf:
        json.dump(default_config(), cf, indent=2)
        cf.write("\n")
    return config_path
