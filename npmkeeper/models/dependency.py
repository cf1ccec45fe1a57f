"""
Dependency data models for npmkeeper.

This module defines the value records that flow through the evaluation
engine: the registry snapshot for one package, the per-dependency input
record, and the per-dependency evaluation result. All records are frozen
and created fresh per invocation.
"""

from __future__ import annotations

from enum import Enum
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from npmkeeper.constants import (
    OVERRIDE_PATH_SEPARATOR,
    UNKNOWN_VERSION,
)


class UpgradeType(str, Enum):
    """Coarse classification of the gap between installed and latest."""

    NONE = "none"
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"
    UNKNOWN = "unknown"


def key_segments(key: str) -> List[str]:
    """Split a flattened declaration key into package names.

    Nested override keys are ``/``-joined paths (``parent/child``). Scoped
    package names carry their own slash (``@scope/name``), so a scope
    segment is re-joined with the segment that follows it.

    Example::

        >>> key_segments("webpack/@babel/core")
        ['webpack', '@babel/core']
    """
    segments: List[str] = []
    parts = iter(key.split(OVERRIDE_PATH_SEPARATOR))
    for part in parts:
        if part.startswith("@"):
            scoped_name = next(parts, None)
            if scoped_name is not None:
                part = f"{part}{OVERRIDE_PATH_SEPARATOR}{scoped_name}"
        segments.append(part)
    return segments


def registry_name(key: str) -> str:
    """Return the registry package name for a flattened declaration key.

    Example::

        >>> registry_name("react")
        'react'
        >>> registry_name("@babel/core")
        '@babel/core'
        >>> registry_name("webpack/@babel/core")
        '@babel/core'
        >>> registry_name("foo/bar")
        'bar'
    """
    return key_segments(key)[-1]


@dataclass(frozen=True)
class RegistryInfo:
    """Version metadata for one package as published on the registry.

    Attributes:
        available_versions: Every published version string.
        latest_version: Version tagged ``latest``, if any.
        latest_version_date: Publish time of ``latest_version``, if known.
    """

    available_versions: Tuple[str, ...] = ()
    latest_version: Optional[str] = None
    latest_version_date: Optional[datetime] = None


@dataclass(frozen=True)
class DependencyRecord:
    """One declared dependency joined with its installed and registry state.

    Attributes:
        name: Flattened declaration key (``/``-joined for nested overrides).
        declared_range: Version range from the manifest.
        installed_version: Installed version or ``"unknown"``.
        latest_version: Latest published version, if known.
        latest_version_date: Publish time of the latest version, if known.
        available_versions: All published versions (possibly empty).
    """

    name: str
    declared_range: str
    installed_version: str = UNKNOWN_VERSION
    latest_version: Optional[str] = None
    latest_version_date: Optional[datetime] = None
    available_versions: Tuple[str, ...] = ()

    @property
    def package_name(self) -> str:
        """Registry name of the package this record refers to."""
        return registry_name(self.name)

    @classmethod
    def from_registry(
        cls,
        name: str,
        declared_range: str,
        installed_version: Optional[str],
        info: Optional[RegistryInfo],
    ) -> "DependencyRecord":
        """Build a record, degrading to absent registry fields when *info* is ``None``."""
        info = info or RegistryInfo()
        return cls(
            name=name,
            declared_range=declared_range,
            installed_version=installed_version or UNKNOWN_VERSION,
            latest_version=info.latest_version,
            latest_version_date=info.latest_version_date,
            available_versions=tuple(info.available_versions),
        )


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of evaluating one dependency.

    Attributes:
        name: Flattened declaration key.
        declared_range: Version range from the manifest.
        highest_satisfying_version: Highest published version matching
            ``declared_range``, or ``None``.
        installed_version: Installed version or ``"unknown"``.
        latest_version: Latest published version, or ``None``.
        latest_version_date: Publish time of the latest version, or ``None``.
        upgrade_type: Gap between installed and latest.
        will_self_upgrade: Re-resolving the range would install a newer
            version than the installed one.
    """

    name: str
    declared_range: str
    highest_satisfying_version: Optional[str] = None
    installed_version: str = UNKNOWN_VERSION
    latest_version: Optional[str] = None
    latest_version_date: Optional[datetime] = None
    upgrade_type: UpgradeType = UpgradeType.UNKNOWN
    will_self_upgrade: bool = False

    @property
    def package_name(self) -> str:
        """Registry name of the package this result refers to."""
        return registry_name(self.name)

    @property
    def is_installed_known(self) -> bool:
        """Whether the installed version could be resolved."""
        return self.installed_version != UNKNOWN_VERSION

    def needs_upgrade(self) -> bool:
        """Return ``True`` when the latest release is ahead of the installed one."""
        return self.upgrade_type in (
            UpgradeType.MAJOR,
            UpgradeType.MINOR,
            UpgradeType.PATCH,
        )

    def is_recently_published(self, now: datetime, days: int) -> bool:
        """Return ``True`` if the latest release is at most *days* old at *now*.

        Naive datetimes are treated as UTC. Publish dates in the future
        relative to *now* are not considered recent.
        """
        if self.latest_version_date is None:
            return False

        published = _as_utc(self.latest_version_date)
        age = _as_utc(now) - published
        return age.total_seconds() >= 0 and age.days <= days

    def get_status_summary(self) -> Tuple[str, str, str, str]:
        """
        Compute a high-level status summary.

        Returns:
            Tuple of (status, installed, highest, latest).
        """
        installed = self.installed_version
        highest = self.highest_satisfying_version or "none"
        latest = self.latest_version or "error"

        if not self.latest_version:
            status = "unavailable"
        elif self.will_self_upgrade:
            status = "self-upgrade"
        elif self.needs_upgrade():
            status = "outdated"
        elif self.upgrade_type is UpgradeType.UNKNOWN:
            status = "unknown"
        else:
            status = "latest"

        return status, installed, highest, latest

    def to_json(self) -> Dict[str, Any]:
        """
        Serialize the result to a JSON-compatible dictionary.

        Returns:
            JSON-safe representation.
        """
        status = self.get_status_summary()[0]

        entry: Dict[str, Any] = {
            "name": self.name,
            "status": status,
            "declared_range": self.declared_range,
            "installed_version": self.installed_version,
            "highest_satisfying_version": self.highest_satisfying_version,
            "latest_version": self.latest_version,
            "latest_version_date": (
                self.latest_version_date.isoformat()
                if self.latest_version_date
                else None
            ),
            "upgrade_type": self.upgrade_type.value,
            "will_self_upgrade": self.will_self_upgrade,
        }

        if self.package_name != self.name:
            entry["package"] = self.package_name

        if status == "unavailable":
            entry["error"] = "Package information unavailable"

        return entry

    def __str__(self) -> str:
        """Return a human-readable summary."""
        verdict = "self-upgrades" if self.will_self_upgrade else "pinned"
        return (
            f"{self.name} {self.declared_range} "
            f"(installed: {self.installed_version}, "
            f"latest: {self.latest_version or 'N/A'}, {verdict})"
        )


def _as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes so they compare with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
