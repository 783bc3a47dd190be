"""
JSON codec for the usage store.

Reads the current nested layout and migrates the older flat layout, where
every report carried only a startup count next to its dimensions.
"""

import json
import logging
import re
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .models import (
    NEVER,
    NO_DATE,
    Usage,
    UsageDimensions,
    UsageMeasures,
    UsageModel,
    UsageStore,
)

logger = logging.getLogger(__name__)

_DIMENSION_KEYS = (
    ("guid", "Guid"),
    ("app_version", "AppVersion"),
    ("unity_version", "UnityVersion"),
    ("lang", "Lang"),
    ("current_lang", "CurrentLang"),
)

# fromisoformat before 3.11 only takes exactly three or six fractional digits
_FRACTION_RE = re.compile(r"\.(\d{1,6})\d*")


class StoreCorruptError(ValueError):
    """Raised when a persisted store cannot be parsed or migrated."""


@dataclass(frozen=True)
class DecodedStore:
    """Result of decoding a persisted store.

    ``migrated`` is set when the document used the legacy flat layout; the
    caller should persist ``store`` right away so the migration runs once.
    """
    store: UsageStore
    migrated: bool = False


def _measure_key(name: str) -> str:
    return "".join(part.capitalize() for part in name.split("_"))


_MEASURE_KEYS = tuple((f.name, _measure_key(f.name)) for f in fields(UsageMeasures))


def encode_store(store: UsageStore) -> str:
    """Serialize a store to JSON text in the current layout.

    Args:
        store: Store to serialize

    Returns:
        JSON document
    """
    data = {
        "Model": {
            "Guid": store.model.guid,
            "Reports": [_encode_usage(usage) for usage in store.model.reports],
        },
        "LastUpdated": _format_datetime(store.last_updated),
    }
    return json.dumps(data, indent=2)


def _encode_usage(usage: Usage) -> Dict[str, Any]:
    dimensions = {key: getattr(usage.dimensions, attr) for attr, key in _DIMENSION_KEYS}
    dimensions["Date"] = _format_datetime(usage.dimensions.date)
    measures = {key: getattr(usage.measures, attr) for attr, key in _MEASURE_KEYS}
    return {"Dimensions": dimensions, "Measures": measures}


def decode_store(text: str) -> DecodedStore:
    """Parse a persisted store, migrating the legacy layout if needed.

    A document is legacy as soon as one of its reports has no date
    dimension. In that case every report is rebuilt from the flat legacy
    fields; partial migration never happens.

    Args:
        text: JSON document

    Returns:
        DecodedStore with the parsed store and whether it was migrated

    Raises:
        StoreCorruptError: If the document is invalid or cannot be migrated
    """
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise StoreCorruptError(f"Invalid usage store JSON: {e}") from e

    if not isinstance(raw, dict):
        raise StoreCorruptError("Usage store must be a JSON object")

    store = _decode_current(raw)
    if not any(usage.dimensions.date == NO_DATE for usage in store.model.reports):
        return DecodedStore(store=store)

    logger.debug("Legacy usage data migration")
    store.model.reports = _migrate_legacy_reports(raw)
    return DecodedStore(store=store, migrated=True)


def _decode_current(raw: Dict[str, Any]) -> UsageStore:
    model_data = _mapping(raw.get("Model"), "Model")
    reports_data = model_data.get("Reports") or []
    if not isinstance(reports_data, list):
        raise StoreCorruptError("'Model.Reports' must be a list")

    reports = []
    for i, report in enumerate(reports_data):
        report = _mapping(report, f"Model.Reports[{i}]")
        dimensions_data = _mapping(report.get("Dimensions"), f"Model.Reports[{i}].Dimensions")
        measures_data = _mapping(report.get("Measures"), f"Model.Reports[{i}].Measures")

        dimensions = UsageDimensions(
            **{attr: _optional_str(dimensions_data.get(key)) for attr, key in _DIMENSION_KEYS}
        )
        date = dimensions_data.get("Date")
        if date is not None:
            dimensions.date = _parse_datetime(date)

        measures = UsageMeasures(
            **{attr: _parse_count(measures_data.get(key), key) for attr, key in _MEASURE_KEYS}
        )
        reports.append(Usage(dimensions=dimensions, measures=measures))

    last_updated = raw.get("LastUpdated")
    return UsageStore(
        model=UsageModel(guid=_optional_str(model_data.get("Guid")), reports=reports),
        last_updated=_parse_datetime(last_updated) if last_updated is not None else NEVER,
    )


def _migrate_legacy_reports(raw: Dict[str, Any]) -> List[Usage]:
    model_data = raw.get("Model")
    reports_data = model_data.get("Reports") if isinstance(model_data, dict) else None
    if not isinstance(reports_data, list):
        raise StoreCorruptError("Error migrating usage data")

    reports = []
    for report in reports_data:
        if not isinstance(report, dict) or report.get("Date") is None:
            raise StoreCorruptError("Error migrating usage data")

        # Legacy dates without an offset were written in local time
        dimensions = UsageDimensions(
            guid=_optional_str(report.get("Guid")),
            app_version=_optional_str(report.get("AppVersion")),
            unity_version=_optional_str(report.get("UnityVersion")),
            lang=_optional_str(report.get("Lang")),
            date=_parse_datetime(report["Date"], naive_is_local=True),
        )
        measures = UsageMeasures(
            number_of_startups=_parse_count(report.get("NumberOfStartups"), "NumberOfStartups")
        )
        reports.append(Usage(dimensions=dimensions, measures=measures))
    return reports


def _mapping(value: Any, path: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise StoreCorruptError(f"'{path}' must be an object")
    return value


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _parse_count(value: Any, key: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise StoreCorruptError(f"'{key}' must be an integer")
    try:
        count = value if isinstance(value, int) else int(str(value).strip())
    except ValueError as e:
        raise StoreCorruptError(f"'{key}' must be an integer") from e
    if count < 0:
        raise StoreCorruptError(f"'{key}' cannot be negative")
    return count


def _parse_datetime(value: Any, naive_is_local: bool = False) -> datetime:
    if not isinstance(value, str):
        raise StoreCorruptError(f"Invalid date value: {value!r}")

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1).ljust(6, "0"), text)

    try:
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None and not naive_is_local:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError) as e:
        raise StoreCorruptError(f"Invalid date value: {value!r}") from e


def _format_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()
