"""
Core functionality exports for npmkeeper.

This module provides convenient access to the core subsystems of npmkeeper.
Importing from here keeps user-facing imports clean and stable:

    from npmkeeper.core import DependencyChecker, RangeMatcher
"""

from __future__ import annotations

from npmkeeper.core.range_matcher import RangeMatcher
from npmkeeper.core.evaluator import SelfUpgradeEvaluator
from npmkeeper.core.checker import DependencyChecker
from npmkeeper.core.data_store import NpmDataStore, NpmPackageData
from npmkeeper.core.lockfile import load_installed_versions
from npmkeeper.core.manifest import Manifest, flatten_declarations, load_manifest

__all__ = [
    "RangeMatcher",
    "SelfUpgradeEvaluator",
    "DependencyChecker",
    "NpmDataStore",
    "NpmPackageData",
    "Manifest",
    "flatten_declarations",
    "load_manifest",
    "load_installed_versions",
]
