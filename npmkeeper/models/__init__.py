"""
Unified data model exports for npmkeeper.

This module re-exports all core data models to provide a stable and
convenient public API. Users can import models directly from
``npmkeeper.models`` instead of individual submodules.

Example:
    >>> from npmkeeper.models import DependencyRecord, EvaluationResult
"""

from __future__ import annotations

from npmkeeper.models.dependency import (
    DependencyRecord,
    EvaluationResult,
    RegistryInfo,
    UpgradeType,
    key_segments,
    registry_name,
)

__all__ = [
    "DependencyRecord",
    "EvaluationResult",
    "RegistryInfo",
    "UpgradeType",
    "key_segments",
    "registry_name",
]
