"""
Configuration management and loading.

Handles tracker settings read from a YAML file.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Union

import yaml

DEFAULT_CONFIG_PATH = "usage-tracker.yaml"
DEFAULT_SETTINGS_PATH = "settings.yaml"
DEFAULT_UNITY_VERSION = "unknown"


@dataclass(frozen=True)
class SchedulerConfig:
    """Delays for the flush timer, in seconds."""
    initial_delay_seconds: float = 180.0
    opt_in_delay_seconds: float = 5.0

    def __post_init__(self):
        """Validate delays are positive."""
        if self.initial_delay_seconds <= 0:
            raise ValueError("initial_delay_seconds must be > 0")
        if self.opt_in_delay_seconds <= 0:
            raise ValueError("opt_in_delay_seconds must be > 0")


@dataclass(frozen=True)
class TrackerConfig:
    """Complete tracker configuration."""
    installation_id: str
    store_path: Path
    settings_path: Path
    unity_version: str = DEFAULT_UNITY_VERSION
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)

    def __post_init__(self):
        """Validate the installation id is set."""
        if not self.installation_id or not self.installation_id.strip():
            raise ValueError("installation_id cannot be empty")


def load_tracker_config(path: Union[str, Path]) -> TrackerConfig:
    """Load and validate tracker configuration from YAML file.

    Relative paths inside the file are resolved against the directory
    holding the file.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated TrackerConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Tracker config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'installation_id', 'store_path', 'settings_path', 'unity_version', 'scheduler'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    installation_id = raw_config.get('installation_id')
    if installation_id is None:
        raise ValueError("Missing required 'installation_id'")
    if not isinstance(installation_id, str) or not installation_id.strip():
        raise ValueError("'installation_id' must be a non-empty string")

    base_dir = config_path.parent
    if 'store_path' not in raw_config:
        raise ValueError("Missing required 'store_path'")
    store_path = _resolve_path(raw_config['store_path'], base_dir, 'store_path')
    settings_path = _resolve_path(
        raw_config.get('settings_path', DEFAULT_SETTINGS_PATH), base_dir, 'settings_path'
    )

    unity_version = raw_config.get('unity_version', DEFAULT_UNITY_VERSION)
    if not isinstance(unity_version, str):
        raise ValueError("'unity_version' must be a string")

    scheduler_data = raw_config.get('scheduler', {})
    if scheduler_data is None:
        scheduler_data = {}
    if not isinstance(scheduler_data, dict):
        raise ValueError("'scheduler' must be a dictionary")

    return TrackerConfig(
        installation_id=installation_id.strip(),
        store_path=store_path,
        settings_path=settings_path,
        unity_version=unity_version,
        scheduler=_parse_scheduler_config(scheduler_data),
    )


def _parse_scheduler_config(data: Dict) -> SchedulerConfig:
    """Parse and validate scheduler configuration.

    Args:
        data: Scheduler configuration data

    Returns:
        Validated SchedulerConfig

    Raises:
        ValueError: If configuration is invalid
    """
    allowed_keys = {'initial_delay_seconds', 'opt_in_delay_seconds'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in scheduler: {unknown_keys}")

    values = {}
    for key in allowed_keys & set(data.keys()):
        value = data[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ValueError(f"'{key}' in scheduler must be > 0")
        values[key] = float(value)

    return SchedulerConfig(**values)


def _resolve_path(value, base_dir: Path, key: str) -> Path:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"'{key}' must be a non-empty string")
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path


def write_default_config(path: Union[str, Path], installation_id: str) -> Path:
    """Write a starter configuration file.

    Args:
        path: Where to write the YAML file
        installation_id: Identifier for this installation

    Returns:
        Path of the written file
    """
    config_path = Path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    data = {
        'installation_id': installation_id,
        'store_path': 'usage.json',
        'settings_path': DEFAULT_SETTINGS_PATH,
        'unity_version': DEFAULT_UNITY_VERSION,
        'scheduler': {
            'initial_delay_seconds': 180,
            'opt_in_delay_seconds': 5,
        },
    }
    with open(config_path, 'w', encoding='utf-8') as f:
        yaml.safe_dump(data, f, sort_keys=False)
    return config_path
