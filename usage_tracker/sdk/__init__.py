"""
SDK for usage tracking.

Provides the tracker the host application calls on each user action.
"""

from .interfaces import METRICS_KEY, MetricsService, Settings
from .usage_tracker import FlushResult, UsageTracker

__all__ = ["FlushResult", "METRICS_KEY", "MetricsService", "Settings", "UsageTracker"]
