"""npm version-range matching for npmkeeper.

Ranges follow npm's semantics and are compiled with
:class:`semantic_version.NpmSpec`:

* ``1.2.3`` / ``=1.2.3``: exact match
* ``^1.2.3``: changes that keep the leftmost non-zero component
* ``~1.2.3`` / ``~1.2``: patch-level changes (minor-level for ``~1``)
* ``>=1.2.3 <2``: space-separated comparators combine with AND
* ``^1.0.0 || ^2.0.0``: ``||`` alternates range sets
* ``1.2.3 - 2.0.0``, ``1.x``, ``*``: hyphen and x-ranges

Whitespace between an operator and its version (``>= 1.0.0``, ``^ 2``) is
trimmed before compiling, as npm does.

Pre-release candidates only match a ``||`` alternative that both accepts
them and names a pre-release on the same ``major.minor.patch``, so
``<3`` never selects ``3.0.0-rc.1`` while ``>=3.0.0-rc.0`` does.

A malformed range never raises out of :meth:`RangeMatcher.highest_satisfying`
or :meth:`RangeMatcher.satisfies`; it simply matches nothing, so one bad
declaration cannot abort the evaluation of its siblings.

Typical usage::

    matcher = RangeMatcher()
    best = matcher.highest_satisfying("^4.17.0", ["4.17.0", "4.17.21", "5.0.0"])
    print(best)  # 4.17.21
"""

from __future__ import annotations

import re
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

import semantic_version

from npmkeeper.exceptions import MalformedRangeError, MalformedVersionError
from npmkeeper.utils.logger import get_logger
from npmkeeper.utils.version_utils import parse_version

logger = get_logger("range_matcher")

VersionLike = Union[str, semantic_version.Version]
ReleaseTuple = Tuple[int, int, int]

_OPERATOR_SPACE = re.compile(r"(~|\^|[<>]=?|=)\s+")
_PRERELEASE_VERSION = re.compile(r"(\d+)\.(\d+)\.(\d+)-[0-9A-Za-z.-]+")


def normalize_range(version_range: str) -> str:
    """Strip *version_range* and drop spaces after comparison operators.

    Example::

        >>> normalize_range(" >= 1.0.0 < 2 ")
        '>=1.0.0 <2'
    """
    return _OPERATOR_SPACE.sub(r"\1", version_range.strip())


def prerelease_releases(version_range: str) -> FrozenSet[ReleaseTuple]:
    """Return the ``major.minor.patch`` of every pre-release named in a range."""
    return frozenset(
        (int(major), int(minor), int(patch))
        for major, minor, patch in _PRERELEASE_VERSION.findall(version_range)
    )


class RangeMatcher:
    """Select versions that satisfy npm version ranges.

    Compiled ranges are cached per instance under their normalized text;
    the matcher holds no other state and is safe to share across
    evaluations.

    Example::

        >>> matcher = RangeMatcher()
        >>> matcher.satisfies("1.4.0", "^1.2.0")
        True
        >>> str(matcher.highest_satisfying("~1.1.0", ["1.1.0", "1.1.9", "1.2.0"]))
        '1.1.9'
    """

    def __init__(self) -> None:
        self._specs: Dict[str, Optional[semantic_version.NpmSpec]] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse_range(self, version_range: str) -> semantic_version.NpmSpec:
        """Compile *version_range* into an :class:`~semantic_version.NpmSpec`.

        The empty string is treated as ``*``, matching npm.

        Raises:
            MalformedRangeError: The range cannot be compiled.
        """
        if not isinstance(version_range, str):
            raise MalformedRangeError(str(version_range))

        key = normalize_range(version_range)
        if key not in self._specs:
            try:
                self._specs[key] = semantic_version.NpmSpec(key or "*")
            except ValueError:
                self._specs[key] = None

        spec = self._specs[key]
        if spec is None:
            raise MalformedRangeError(version_range)
        return spec

    def is_valid_range(self, version_range: str) -> bool:
        """Return ``True`` if *version_range* compiles."""
        try:
            self.parse_range(version_range)
        except MalformedRangeError:
            return False
        return True

    def satisfies(self, version: VersionLike, version_range: str) -> bool:
        """Return ``True`` if *version* satisfies *version_range*.

        Malformed versions and malformed ranges both yield ``False``.
        """
        try:
            spec = self.parse_range(version_range)
            parsed = _coerce(version)
        except (MalformedRangeError, MalformedVersionError) as exc:
            logger.debug("No match for %r in %r: %s", version, version_range, exc)
            return False

        return self._accepts(spec, version_range, parsed)

    def matching_versions(
        self,
        version_range: str,
        candidates: Iterable[VersionLike],
    ) -> List[semantic_version.Version]:
        """Return candidates satisfying *version_range*, highest first.

        Candidates that are not valid semantic versions are skipped.
        """
        try:
            spec = self.parse_range(version_range)
        except MalformedRangeError:
            logger.debug("Ignoring malformed range %r", version_range)
            return []

        matches: List[semantic_version.Version] = []
        for candidate in candidates:
            try:
                parsed = _coerce(candidate)
            except MalformedVersionError:
                logger.debug("Skipping invalid candidate version %r", candidate)
                continue
            if self._accepts(spec, version_range, parsed):
                matches.append(parsed)

        matches.sort(reverse=True)
        return matches

    def highest_satisfying(
        self,
        version_range: str,
        candidates: Iterable[VersionLike],
    ) -> Optional[semantic_version.Version]:
        """Return the highest candidate satisfying *version_range*.

        Returns ``None`` when *candidates* is empty, nothing matches, or
        the range is malformed. Absence is a valid outcome, not an error.
        """
        matches = self.matching_versions(version_range, candidates)
        return matches[0] if matches else None

    # ------------------------------------------------------------------
    # Helpers (private)
    # ------------------------------------------------------------------

    def _accepts(
        self,
        spec: semantic_version.NpmSpec,
        version_range: str,
        version: semantic_version.Version,
    ) -> bool:
        if not spec.match(version):
            return False
        if not version.prerelease:
            return True

        release = (version.major, version.minor, version.patch)
        for alternative in normalize_range(version_range).split("||"):
            if release not in prerelease_releases(alternative):
                continue
            try:
                if self.parse_range(alternative).match(version):
                    return True
            except MalformedRangeError:
                continue

        logger.debug("Excluding pre-release %s from %r", version, version_range)
        return False


def _coerce(version: VersionLike) -> semantic_version.Version:
    """Return *version* as a :class:`semantic_version.Version`."""
    if isinstance(version, semantic_version.Version):
        return version
    return parse_version(version)
