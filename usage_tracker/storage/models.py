"""
Data models for storage layer.

Defines the daily usage buckets and the store that wraps them.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


# Sentinel for a store that has never been flushed
NEVER = datetime(1, 1, 1, tzinfo=timezone.utc)

# Sentinel for an entry whose date dimension was never populated
NO_DATE = datetime(1, 1, 1, tzinfo=timezone.utc)


class UsageEvent(Enum):
    """Tracked user actions, valued by the counter they increment."""
    STARTUP = "number_of_startups"
    COMMIT = "number_of_commits"
    FETCH = "number_of_fetches"
    PUSH = "number_of_pushes"
    PROJECT_INITIALIZED = "number_of_projects_initialized"
    LOCAL_BRANCH_CREATED = "number_of_local_branch_creations"
    LOCAL_BRANCH_DELETED = "number_of_local_branch_deletion"
    LOCAL_BRANCH_CHECKED_OUT = "number_of_local_branch_checkouts"
    REMOTE_BRANCH_CHECKED_OUT = "number_of_remote_branch_checkouts"
    PULL = "number_of_pulls"
    AUTHENTICATION = "number_of_authentications"


@dataclass
class UsageDimensions:
    """Identity and context of one daily bucket."""
    guid: Optional[str] = None
    app_version: Optional[str] = None
    unity_version: Optional[str] = None
    lang: Optional[str] = None
    current_lang: Optional[str] = None
    date: datetime = NO_DATE


@dataclass
class UsageMeasures:
    """Per-day counters. All values are non-negative."""
    number_of_startups: int = 0
    number_of_commits: int = 0
    number_of_fetches: int = 0
    number_of_pushes: int = 0
    number_of_projects_initialized: int = 0
    number_of_local_branch_creations: int = 0
    number_of_local_branch_deletion: int = 0
    number_of_local_branch_checkouts: int = 0
    number_of_remote_branch_checkouts: int = 0
    number_of_pulls: int = 0
    number_of_authentications: int = 0

    def increment(self, event: UsageEvent) -> int:
        """Add one to the counter for ``event``.

        Args:
            event: The action that happened

        Returns:
            The counter value after incrementing
        """
        value = getattr(self, event.value) + 1
        setattr(self, event.value, value)
        return value

    def get(self, event: UsageEvent) -> int:
        """Current value of the counter for ``event``."""
        return getattr(self, event.value)

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) == 0 for f in fields(self))


@dataclass
class Usage:
    """One day's aggregated counts."""
    dimensions: UsageDimensions = field(default_factory=UsageDimensions)
    measures: UsageMeasures = field(default_factory=UsageMeasures)


@dataclass
class UsageModel:
    """All buckets recorded for one installation."""
    guid: Optional[str] = None
    reports: List[Usage] = field(default_factory=list)


@dataclass
class UsageStore:
    """Unit of persistence: loaded wholesale, saved wholesale.

    ``last_updated`` is the instant of the last successful flush, or
    ``NEVER`` for a store that has not been sent yet.
    """
    model: UsageModel = field(default_factory=UsageModel)
    last_updated: datetime = NEVER
