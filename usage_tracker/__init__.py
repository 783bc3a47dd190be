"""
usage-tracker: local usage counters with deferred, batched upload.
"""

__version__ = "0.1.0"

from .sdk import FlushResult, UsageTracker
from .storage.models import UsageEvent

__all__ = ["FlushResult", "UsageEvent", "UsageTracker", "__version__"]
