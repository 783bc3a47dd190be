"""
Environment context attached to new usage buckets.

Collects the application version, host version and language tags once so the
aggregator itself never reads global state.
"""

import locale
import os
from dataclasses import dataclass
from importlib import metadata
from typing import Optional

DISTRIBUTION_NAME = "usage-tracker"


@dataclass(frozen=True)
class UsageContext:
    """Versions and language tags recorded on each bucket."""
    app_version: Optional[str] = None
    unity_version: Optional[str] = None
    lang: Optional[str] = None
    current_lang: Optional[str] = None


def to_language_tag(locale_name: Optional[str]) -> Optional[str]:
    """Convert a POSIX locale name to an IETF language tag.

    ``en_US.UTF-8`` becomes ``en-US``; ``C`` and ``POSIX`` have no language
    and map to ``None``.
    """
    if not locale_name:
        return None
    name = locale_name.split(".", 1)[0].split("@", 1)[0]
    if not name or name in ("C", "POSIX"):
        return None
    return name.replace("_", "-")


def installed_language() -> Optional[str]:
    """Language the host environment was installed with."""
    for var in ("LC_ALL", "LC_MESSAGES", "LANG"):
        tag = to_language_tag(os.environ.get(var))
        if tag:
            return tag
    return None


def current_language() -> Optional[str]:
    """Language of the locale active in this process."""
    try:
        name = locale.getlocale()[0]
    except ValueError:
        return None
    return to_language_tag(name)


def application_version() -> str:
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        from usage_tracker import __version__
        return __version__


def detect_context(unity_version: Optional[str], app_version: Optional[str] = None) -> UsageContext:
    """Build a context from the running process.

    Args:
        unity_version: Version of the host application
        app_version: Override for the tracked application's version

    Returns:
        UsageContext for new buckets
    """
    return UsageContext(
        app_version=app_version or application_version(),
        unity_version=unity_version,
        lang=installed_language(),
        current_lang=current_language(),
    )
