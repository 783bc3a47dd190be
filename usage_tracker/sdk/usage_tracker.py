"""
Usage tracker facade.

Counts user actions into daily buckets on disk and periodically uploads the
finished days. Counting never fails outward; uploads are retried on the next
scheduled flush.
"""

import logging
import threading
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

from ..core.aggregator import (
    record_event,
    remove_reports_before,
    select_reports_before,
    utc_now,
    utc_today,
)
from ..core.environment import UsageContext, detect_context
from ..core.scheduler import FlushScheduler
from ..storage.models import Usage, UsageEvent
from ..storage.repository import UsageStoreRepository
from .interfaces import METRICS_KEY, MetricsService, Settings

logger = logging.getLogger(__name__)

# Delay before the first flush after start-up, so start-up itself stays quiet
DEFAULT_INITIAL_DELAY = 3 * 60
# Delay after the user opts in
DEFAULT_OPT_IN_DELAY = 5


class FlushResult(Enum):
    """Outcome of a flush attempt."""
    SENT = "sent"
    NO_SERVICE = "no_service"
    ALREADY_SENT = "already_sent"
    NOTHING_TO_SEND = "nothing_to_send"
    DISABLED = "disabled"
    FAILED = "failed"


class UsageTracker:
    """Records usage events and flushes finished days to a metrics service.

    Each increment loads the store, bumps one counter in today's bucket and
    saves it again. A one-shot timer sends every bucket older than today.
    """

    def __init__(
        self,
        metrics_service: Optional[MetricsService],
        settings: Settings,
        store_path: Union[str, Path],
        installation_id: str,
        unity_version: Optional[str],
        *,
        app_version: Optional[str] = None,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        opt_in_delay: float = DEFAULT_OPT_IN_DELAY,
        clock: Callable[[], datetime] = utc_now,
        timer_factory: Callable[..., Any] = threading.Timer,
        context: Optional[UsageContext] = None,
    ):
        """Initialize the tracker and schedule the first flush if enabled.

        Args:
            metrics_service: Upload transport; None disables uploads
            settings: User settings holding the opt-in flag
            store_path: Path to the JSON usage store
            installation_id: Stable identifier of this installation (required)
            unity_version: Version of the host application
            app_version: Version of the tracked application (detected if omitted)
            initial_delay: Seconds before the first flush
            opt_in_delay: Seconds before the flush that follows an opt-in
            clock: Returns the current UTC time
            timer_factory: Timer constructor used by the scheduler
            context: Explicit bucket context (detected if omitted)

        Raises:
            ValueError: If installation_id is missing/empty
        """
        self.metrics_service = metrics_service
        self.settings = settings
        self.repository = UsageStoreRepository(store_path, installation_id)
        self.context = context or detect_context(unity_version, app_version)
        self.opt_in_delay = opt_in_delay
        self._clock = clock
        self._lock = threading.RLock()
        self.scheduler = FlushScheduler(self.flush, timer_factory=timer_factory)

        logger.debug("Usage tracker guid: %s", installation_id)
        if self.enabled:
            self.scheduler.arm(initial_delay)

    def __enter__(self) -> "UsageTracker":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose()

    @property
    def enabled(self) -> bool:
        """Whether usage reporting is on (defaults to True)."""
        return bool(self.settings.get(METRICS_KEY, True))

    @enabled.setter
    def enabled(self, value: bool) -> None:
        value = bool(value)
        if value == self.enabled:
            return

        self.settings.set(METRICS_KEY, value)
        if value:
            self.scheduler.arm(self.opt_in_delay)
        else:
            self.scheduler.cancel()

    def dispose(self) -> None:
        """Cancel any pending flush."""
        self.scheduler.cancel()

    def increment(self, event: UsageEvent) -> None:
        """Count one occurrence of ``event`` in today's bucket."""
        with self._lock:
            store = self.repository.load()
            usage = record_event(store.model, event, self.context, self._clock())
            logger.debug(
                "%s:%d Date:%s",
                event.value,
                usage.measures.get(event),
                usage.dimensions.date.isoformat(),
            )
            self.repository.save(store)

    def increment_number_of_startups(self) -> None:
        self.increment(UsageEvent.STARTUP)

    def increment_number_of_commits(self) -> None:
        self.increment(UsageEvent.COMMIT)

    def increment_number_of_fetches(self) -> None:
        self.increment(UsageEvent.FETCH)

    def increment_number_of_pushes(self) -> None:
        self.increment(UsageEvent.PUSH)

    def increment_number_of_projects_initialized(self) -> None:
        self.increment(UsageEvent.PROJECT_INITIALIZED)

    def increment_number_of_local_branch_creations(self) -> None:
        self.increment(UsageEvent.LOCAL_BRANCH_CREATED)

    def increment_number_of_local_branch_deletions(self) -> None:
        self.increment(UsageEvent.LOCAL_BRANCH_DELETED)

    def increment_number_of_local_branch_checkouts(self) -> None:
        self.increment(UsageEvent.LOCAL_BRANCH_CHECKED_OUT)

    def increment_number_of_remote_branch_checkouts(self) -> None:
        self.increment(UsageEvent.REMOTE_BRANCH_CHECKED_OUT)

    def increment_number_of_pulls(self) -> None:
        self.increment(UsageEvent.PULL)

    def increment_number_of_authentications(self) -> None:
        self.increment(UsageEvent.AUTHENTICATION)

    def pending_reports(self) -> List[Usage]:
        """Buckets the next flush would send (everything before today)."""
        with self._lock:
            store = self.repository.load()
        return select_reports_before(store.model, utc_today(self._clock()))

    def flush(self) -> FlushResult:
        """Send finished daily buckets to the metrics service.

        At most one successful upload happens per UTC day. Buckets are only
        removed, and the last-sent time only advanced, after the service
        accepted them.

        Returns:
            FlushResult describing what happened
        """
        with self._lock:
            store = self.repository.load()

            if self.metrics_service is None:
                logger.warning("No metrics service, not sending usage")
                return FlushResult.NO_SERVICE

            now = self._clock()
            cutoff = utc_today(now)
            if utc_today(store.last_updated) == cutoff:
                logger.debug("Usage already sent today")
                return FlushResult.ALREADY_SENT

            reports = select_reports_before(store.model, cutoff)

        if not reports:
            logger.debug("No usage reports to send")
            return FlushResult.NOTHING_TO_SEND

        if not self.enabled:
            logger.debug("Metrics disabled")
            return FlushResult.DISABLED

        logger.debug("Sending %d usage reports", len(reports))
        try:
            self.metrics_service.post_usage(reports)
        except Exception as e:
            logger.warning(
                'Error sending usage Exception Type:"%s" Message:"%s"', type(e).__name__, e
            )
            return FlushResult.FAILED

        # Increments may have landed while the upload ran; re-read before purging
        with self._lock:
            store = self.repository.load()
            removed = remove_reports_before(store.model, cutoff)
            store.last_updated = now
            self.repository.save(store)

        logger.debug("Removed %d sent usage reports", removed)
        return FlushResult.SENT
