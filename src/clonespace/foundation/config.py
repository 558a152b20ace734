"""clonespace configuration management.

Loads configuration from .clonespace/config.yaml with sensible defaults.
All settings can be overridden via environment variables (CLONESPACE_*).

Config locations (in priority order):
1. Explicit path passed to load_config()
2. .clonespace/config.yaml (project-local)
3. ~/.clonespace/config.yaml (user-global)
4. Built-in defaults

Example config.yaml:

    home: /var/lib/clonespace
    debug: false
    persist_logs: true
    producer:
      format: zip
      criterion: Not Failed
      complete_mode: true
    consumer:
      criterion: Successful
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from clonespace.foundation.errors import ConfigError
from clonespace.lineage.criteria import Criterion
from clonespace.settings import ProducerSettings

logger = logging.getLogger(__name__)

_ENV_PREFIX = "CLONESPACE_"


@dataclass(frozen=True, slots=True)
class ConsumerDefaults:
    """Defaults applied to consumer checkouts that do not set their own."""

    criterion: Criterion = Criterion.ANY
    """Minimum upstream outcome to clone from."""


@dataclass(frozen=True, slots=True)
class ClonespaceConfig:
    """Root configuration for clonespace."""

    home: Path = field(default_factory=lambda: Path.home() / ".clonespace")
    """Directory holding the local job registry and logs."""

    debug: bool = False
    """Enable DEBUG logging by default."""

    persist_logs: bool = False
    """Write a session log under ``<home>/logs``."""

    producer: ProducerSettings = field(default_factory=ProducerSettings)
    """Defaults for producer settings not given on the command line or in job.yaml."""

    consumer: ConsumerDefaults = field(default_factory=ConsumerDefaults)
    """Defaults for consumer checkouts."""

    @property
    def log_dir(self) -> Path | None:
        return self.home / "logs" if self.persist_logs else None


# Global config instance (lazy-loaded, thread-safe)
_config: ClonespaceConfig | None = None
_config_lock = threading.Lock()


def _deep_update(base: dict, updates: dict) -> dict:
    """Recursively update a dict with another dict."""
    for key, value in updates.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_update(base[key], value)
        else:
            base[key] = value
    return base


def _coerce(value: str) -> Any:
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    if value.isdigit():
        return int(value)
    return value


def _apply_env_overrides(config_dict: dict, environ: dict[str, str] | None = None) -> dict:
    """Apply environment variable overrides.

    Environment variables follow pattern: CLONESPACE_[SECTION_]KEY

    Examples:
        CLONESPACE_HOME=/srv/clonespace
        CLONESPACE_PRODUCER_FORMAT=zip
        CLONESPACE_PRODUCER_COMPLETE_MODE=true
        CLONESPACE_CONSUMER_CRITERION=Successful
    """
    environ = dict(os.environ) if environ is None else environ
    sections = {
        "producer": set(ProducerSettings.__dataclass_fields__),
        "consumer": set(ConsumerDefaults.__dataclass_fields__),
    }
    top_level = {"home", "debug", "persist_logs"}

    for key, value in environ.items():
        if not key.startswith(_ENV_PREFIX):
            continue
        path = key[len(_ENV_PREFIX):].lower()

        if path in top_level:
            config_dict[path] = _coerce(value)
            continue

        for section, keys in sections.items():
            if path.startswith(section + "_") and path[len(section) + 1:] in keys:
                config_dict.setdefault(section, {})[path[len(section) + 1:]] = _coerce(value)
                break

    return config_dict


def _dict_to_config(data: dict) -> ClonespaceConfig:
    """Convert a dict to ClonespaceConfig."""
    try:
        producer = ProducerSettings.from_dict(data.get("producer") or {})
    except (TypeError, ValueError) as e:
        raise ConfigError("producer", str(e)) from e

    consumer_data = data.get("consumer") or {}
    consumer = ConsumerDefaults(
        criterion=Criterion.parse(consumer_data.get("criterion")),
    )

    home = data.get("home")
    return ClonespaceConfig(
        home=Path(str(home)).expanduser() if home else Path.home() / ".clonespace",
        debug=bool(data.get("debug", False)),
        persist_logs=bool(data.get("persist_logs", False)),
        producer=producer,
        consumer=consumer,
    )


def load_config(path: str | Path | None = None) -> ClonespaceConfig:
    """Load configuration from file with defaults and env overrides.

    Priority (highest to lowest):
    1. Environment variables (CLONESPACE_*)
    2. Explicit path if provided
    3. .clonespace/config.yaml (project-local)
    4. ~/.clonespace/config.yaml (user-global)
    5. Built-in defaults

    Args:
        path: Optional explicit config file path.

    Returns:
        Merged ClonespaceConfig instance.

    Raises:
        ConfigError: If the file is not valid YAML or holds invalid values.
    """
    global _config

    config_dict: dict[str, Any] = {"producer": {}, "consumer": {}}

    config_paths = []
    if path:
        config_paths.append(Path(path))
    config_paths.extend([
        Path(".clonespace/config.yaml"),
        Path.home() / ".clonespace" / "config.yaml",
    ])

    for config_path in config_paths:
        if not config_path.exists():
            continue
        try:
            with open(config_path) as f:
                file_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(str(config_path), f"not valid YAML: {e}") from e
        if not isinstance(file_config, dict):
            raise ConfigError(str(config_path), "top level must be a mapping")
        _deep_update(config_dict, file_config)
        logger.debug("Loaded configuration from %s", config_path)
        break  # Use first found config

    config_dict = _apply_env_overrides(config_dict)

    with _config_lock:
        _config = _dict_to_config(config_dict)
        return _config


def get_config() -> ClonespaceConfig:
    """Get the global config instance, loading if needed (thread-safe)."""
    if _config is not None:
        return _config
    with _config_lock:
        if _config is not None:
            return _config
    return load_config()


def reset_config() -> None:
    """Reset global config (for testing)."""
    global _config
    with _config_lock:
        _config = None


def save_default_config(path: Path | None = None) -> Path:
    """Save default configuration to file.

    Args:
        path: Where to write (default: .clonespace/config.yaml).

    Returns:
        Path the configuration was written to.
    """
    path = path or Path(".clonespace/config.yaml")
    path.parent.mkdir(parents=True, exist_ok=True)
    defaults = ClonespaceConfig()
    data = {
        "home": str(defaults.home),
        "debug": defaults.debug,
        "persist_logs": defaults.persist_logs,
        "producer": defaults.producer.to_dict(),
        "consumer": {"criterion": defaults.consumer.criterion.value},
    }
    with open(path, "w") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
    return path
