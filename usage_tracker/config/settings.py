"""
YAML-backed user settings.

Stores simple key/value preferences such as the metrics opt-in flag.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Union

import yaml

logger = logging.getLogger(__name__)


class YamlSettings:
    """Key/value settings persisted as a YAML mapping.

    The file is read on every ``get`` and rewritten on every ``set`` so that
    separate processes see each other's changes.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value for ``key``, or ``default`` if unset."""
        return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``."""
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f, sort_keys=True)
        logger.debug("Setting %s=%r saved to %s", key, value, self.path)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Settings file {self.path} must contain a mapping")
        return data
