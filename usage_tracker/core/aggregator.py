"""
Daily usage aggregation.

Buckets are keyed by UTC calendar day. All functions operate on a model passed
in by the caller and take the current day explicitly.
"""

from datetime import datetime, timezone
from typing import List, Optional

from usage_tracker.core.environment import UsageContext
from usage_tracker.storage.models import (
    Usage,
    UsageDimensions,
    UsageEvent,
    UsageModel,
)


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_today(now: Optional[datetime] = None) -> datetime:
    """Midnight UTC of the day containing ``now``.

    Args:
        now: Reference instant (defaults to the current time)

    Returns:
        Timezone-aware datetime at 00:00 UTC
    """
    if now is None:
        now = utc_now()
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def _same_utc_day(a: datetime, b: datetime) -> bool:
    return utc_today(a) == utc_today(b)


def get_or_create_today_entry(model: UsageModel, context: UsageContext, today: datetime) -> Usage:
    """Find the bucket for ``today``, creating it if missing.

    The search always runs before creation, so this path never produces a
    second bucket for the same day. Language tags are refreshed from the
    context on every call.

    Args:
        model: Model holding the buckets
        context: Versions and language tags for a new bucket
        today: Any instant on the wanted UTC day

    Returns:
        The bucket for that day
    """
    day = utc_today(today)
    usage = next(
        (report for report in model.reports if _same_utc_day(report.dimensions.date, day)),
        None,
    )
    if usage is None:
        usage = Usage(
            dimensions=UsageDimensions(
                guid=model.guid,
                app_version=context.app_version,
                unity_version=context.unity_version,
                date=day,
            )
        )
        model.reports.append(usage)

    usage.dimensions.lang = context.lang
    usage.dimensions.current_lang = context.current_lang
    return usage


def select_reports_before(model: UsageModel, cutoff: datetime) -> List[Usage]:
    """All buckets dated strictly before ``cutoff``.

    Args:
        model: Model holding the buckets
        cutoff: Exclusive upper bound

    Returns:
        Matching buckets in model order
    """
    return [report for report in model.reports if report.dimensions.date < cutoff]


def remove_reports_before(model: UsageModel, cutoff: datetime) -> int:
    """Remove the buckets ``select_reports_before`` returns for ``cutoff``.

    Returns:
        Number of buckets removed
    """
    kept = [report for report in model.reports if not report.dimensions.date < cutoff]
    removed = len(model.reports) - len(kept)
    model.reports = kept
    return removed


def record_event(
    model: UsageModel,
    event: UsageEvent,
    context: UsageContext,
    today: datetime,
) -> Usage:
    """Count one occurrence of ``event`` in today's bucket.

    Returns:
        The bucket that was incremented
    """
    usage = get_or_create_today_entry(model, context, today)
    usage.measures.increment(event)
    return usage
