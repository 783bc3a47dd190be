"""
Collaborator interfaces used by the tracker.

The metrics transport and the user settings store live in the host
application; the tracker only depends on these protocols.
"""

from typing import Any, List, Protocol

from ..storage.models import Usage

# Settings key holding the opt-in flag
METRICS_KEY = "MetricsEnabled"


class MetricsService(Protocol):
    """Remote endpoint accepting daily usage reports."""

    def post_usage(self, reports: List[Usage]) -> None:
        """Send reports; raise on any failure."""
        ...


class Settings(Protocol):
    """Persistent key/value user settings."""

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...
