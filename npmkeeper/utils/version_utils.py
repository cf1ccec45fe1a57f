"""
Version comparison utilities for npmkeeper.

This module provides semantic-version parsing and the classification of the
gap between an installed version and the latest published one.
"""

from __future__ import annotations

from typing import Optional, Tuple

import semantic_version

from npmkeeper.constants import UNKNOWN_VERSION
from npmkeeper.exceptions import MalformedVersionError
from npmkeeper.models.dependency import UpgradeType


def parse_version(value: str) -> semantic_version.Version:
    """Parse a strict semantic version string.

    Raises:
        MalformedVersionError: *value* is not a valid ``MAJOR.MINOR.PATCH``
            version (optionally with pre-release and build metadata).
    """
    try:
        return semantic_version.Version(str(value).strip())
    except ValueError as exc:
        raise MalformedVersionError(value) from exc


def try_parse_version(value: Optional[str]) -> Optional[semantic_version.Version]:
    """Parse *value*, returning ``None`` for absent, unknown or malformed input."""
    if value is None or value == UNKNOWN_VERSION:
        return None
    try:
        return parse_version(value)
    except MalformedVersionError:
        return None


def get_update_type(
    installed_version: Optional[str],
    latest_version: Optional[str],
) -> UpgradeType:
    """Classify the upgrade needed to move from *installed* to *latest*.

    Args:
        installed_version: Installed version, ``None`` or ``"unknown"``.
        latest_version: Latest published version, or ``None``.

    Returns:
        One of:
            - ``UpgradeType.UNKNOWN`` : Either side is absent or malformed
            - ``UpgradeType.NONE``    : Versions are equal, or latest is not ahead
            - ``UpgradeType.MAJOR``   : Latest has a higher major
            - ``UpgradeType.MINOR``   : Latest has a higher minor
            - ``UpgradeType.PATCH``   : Latest has a higher patch

    Examples:
        >>> get_update_type("1.0.0", "2.0.0")
        <UpgradeType.MAJOR: 'major'>
        >>> get_update_type("unknown", "1.0.0")
        <UpgradeType.UNKNOWN: 'unknown'>
        >>> get_update_type("1.2.3", "1.2.3")
        <UpgradeType.NONE: 'none'>
    """
    installed = try_parse_version(installed_version)
    latest = try_parse_version(latest_version)

    if installed is None or latest is None:
        return UpgradeType.UNKNOWN

    if _identity(installed) == _identity(latest):
        return UpgradeType.NONE

    return _classify_upgrade(installed, latest)


def _identity(
    version: semantic_version.Version,
) -> Tuple[int, int, int, Tuple[str, ...]]:
    """Return the fields that decide equality (build metadata excluded)."""
    return (
        version.major,
        version.minor,
        version.patch,
        tuple(version.prerelease or ()),
    )


def _classify_upgrade(
    installed: semantic_version.Version,
    latest: semantic_version.Version,
) -> UpgradeType:
    """Classify by the most significant differing field.

    The first differing field decides: if *latest* is ahead there, that
    field names the upgrade; if it is behind, the pair is a downgrade and
    falls through to ``none``.
    """
    fields = (
        (installed.major, latest.major, UpgradeType.MAJOR),
        (installed.minor, latest.minor, UpgradeType.MINOR),
        (installed.patch, latest.patch, UpgradeType.PATCH),
    )

    for installed_part, latest_part, upgrade_type in fields:
        if latest_part > installed_part:
            return upgrade_type
        if latest_part < installed_part:
            break

    # Downgrades and pre-release-only differences
    return UpgradeType.NONE
