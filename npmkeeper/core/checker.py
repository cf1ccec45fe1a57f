"""Dependency evaluation and report assembly for npmkeeper.

For every declared dependency the checker joins three inputs (the
declared range, the installed version and the registry's version
metadata) and runs them through the engine:

1. :class:`~npmkeeper.core.range_matcher.RangeMatcher` picks the highest
   published version satisfying the declared range.
2. :func:`~npmkeeper.utils.version_utils.get_update_type` classifies the
   gap between the installed and the latest version.
3. :class:`~npmkeeper.core.evaluator.SelfUpgradeEvaluator` decides whether
   re-resolving the range would move past the installed version.

The synchronous :meth:`DependencyChecker.evaluate` is pure. The async
:meth:`DependencyChecker.check_dependencies` adds the registry fan-out:
one lookup per dependency, all issued concurrently and joined before
assembly. A failed lookup degrades only its own result.

Typical usage::

    async with HTTPClient() as http:
        store   = NpmDataStore(http)
        checker = DependencyChecker()
        results = await checker.check_dependencies(declared, installed, store)

        for result in results:
            print(result.name, result.will_self_upgrade)
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional

from npmkeeper.core.data_store import NpmDataStore
from npmkeeper.core.evaluator import SelfUpgradeEvaluator
from npmkeeper.core.range_matcher import RangeMatcher
from npmkeeper.exceptions import FilterNotDeclaredError
from npmkeeper.models.dependency import (
    DependencyRecord,
    EvaluationResult,
    RegistryInfo,
    registry_name,
)
from npmkeeper.utils.logger import get_logger
from npmkeeper.utils.version_utils import get_update_type

logger = get_logger("checker")


class DependencyChecker:
    """Evaluate declared dependencies against registry metadata.

    The checker holds no per-run state; every call builds fresh
    :class:`EvaluationResult` records, so evaluating the same snapshot
    twice yields identical results.

    Args:
        matcher: Range matcher shared by selection and re-validation.
            A private one is created when omitted.

    Example::

        >>> checker = DependencyChecker()
        >>> [r] = checker.evaluate(
        ...     {"lodash": "^4.17.0"},
        ...     {"lodash": "4.17.0"},
        ...     {"lodash": RegistryInfo(("4.17.0", "4.17.21"), "4.17.21")},
        ... )
        >>> r.highest_satisfying_version, r.upgrade_type.value, r.will_self_upgrade
        ('4.17.21', 'patch', True)
    """

    def __init__(self, matcher: Optional[RangeMatcher] = None) -> None:
        self.matcher: RangeMatcher = matcher or RangeMatcher()
        self.evaluator = SelfUpgradeEvaluator(self.matcher)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @staticmethod
    def select_dependencies(
        declared: Mapping[str, str],
        package: Optional[str] = None,
    ) -> Dict[str, str]:
        """Restrict *declared* to *package* when a filter is given.

        Raises:
            FilterNotDeclaredError: *package* is not a declared key.
        """
        if package is None:
            return dict(declared)

        if package not in declared:
            raise FilterNotDeclaredError(package)

        return {package: declared[package]}

    def evaluate_record(self, record: DependencyRecord) -> EvaluationResult:
        """Run the engine over a single :class:`DependencyRecord`."""
        highest = self.matcher.highest_satisfying(
            record.declared_range,
            record.available_versions,
        )

        upgrade_type = get_update_type(
            record.installed_version,
            record.latest_version,
        )

        will_self_upgrade = self.evaluator.will_self_upgrade(
            record.declared_range,
            highest,
            record.installed_version,
            record.latest_version,
        )

        return EvaluationResult(
            name=record.name,
            declared_range=record.declared_range,
            highest_satisfying_version=str(highest) if highest is not None else None,
            installed_version=record.installed_version,
            latest_version=record.latest_version,
            latest_version_date=record.latest_version_date,
            upgrade_type=upgrade_type,
            will_self_upgrade=will_self_upgrade,
        )

    def evaluate(
        self,
        declared: Mapping[str, str],
        installed: Mapping[str, str],
        registry: Mapping[str, RegistryInfo],
        package: Optional[str] = None,
    ) -> List[EvaluationResult]:
        """Evaluate every selected dependency.

        Args:
            declared: Flattened dependency key → declared range.
            installed: Dependency key → installed version. Missing keys
                resolve to ``"unknown"``.
            registry: Registry package name → :class:`RegistryInfo`.
                Missing names degrade to absent registry fields.
            package: Optional single dependency key to evaluate.

        Returns:
            One :class:`EvaluationResult` per evaluated dependency, in
            declaration order.

        Raises:
            FilterNotDeclaredError: *package* is not a declared key.
        """
        selected = self.select_dependencies(declared, package)
        results: List[EvaluationResult] = []

        for key, declared_range in selected.items():
            record = DependencyRecord.from_registry(
                key,
                declared_range,
                installed.get(key),
                registry.get(registry_name(key)),
            )
            results.append(self.evaluate_record(record))

        return results

    async def check_dependencies(
        self,
        declared: Mapping[str, str],
        installed: Mapping[str, str],
        data_store: NpmDataStore,
        package: Optional[str] = None,
    ) -> List[EvaluationResult]:
        """Fetch registry metadata concurrently, then evaluate.

        The filter is validated before any lookup is issued. Each lookup
        runs as its own task; a failure is logged as a warning and leaves
        that dependency without registry data, without affecting siblings.

        Raises:
            FilterNotDeclaredError: *package* is not a declared key.
        """
        selected = self.select_dependencies(declared, package)
        names = list(dict.fromkeys(registry_name(key) for key in selected))

        tasks = [
            asyncio.create_task(data_store.get_registry_info(name))
            for name in names
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)
        registry = self._collect_registry_info(names, results)

        return self.evaluate(selected, installed, registry)

    # ------------------------------------------------------------------
    # Helpers (private)
    # ------------------------------------------------------------------

    @staticmethod
    def _collect_registry_info(
        names: List[str],
        results: List[Any],
    ) -> Dict[str, RegistryInfo]:
        """Convert :func:`asyncio.gather` output into a name → info mapping."""
        registry: Dict[str, RegistryInfo] = {}

        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.warning("Failed to fetch data for %s: %s", name, result)
                continue
            registry[name] = result

        return registry
