"""Self-upgrade verdict for npmkeeper.

A dependency *self-upgrades* when re-resolving its declared range (for
example with a fresh ``npm install``) would pull a newer version than the
one installed. The newer version does not have to be the registry's
latest: the range may cap below it.
"""

from __future__ import annotations

from typing import Optional, Union

import semantic_version

from npmkeeper.core.range_matcher import RangeMatcher
from npmkeeper.utils.logger import get_logger
from npmkeeper.utils.version_utils import try_parse_version

logger = get_logger("evaluator")


class SelfUpgradeEvaluator:
    """Decide whether a declared range will self-upgrade.

    Args:
        matcher: Range matcher used to re-validate the highest satisfying
            version. A private one is created when omitted.
    """

    def __init__(self, matcher: Optional[RangeMatcher] = None) -> None:
        self.matcher: RangeMatcher = matcher or RangeMatcher()

    def will_self_upgrade(
        self,
        version_range: Optional[str],
        highest_satisfying: Union[str, semantic_version.Version, None],
        installed_version: Optional[str],
        latest_version: Optional[str],
    ) -> bool:
        """Return the self-upgrade verdict.

        ``False`` when the range, the highest satisfying version or the
        latest version is absent, or when the installed version is unknown
        or malformed. Otherwise ``True`` iff *highest_satisfying* satisfies
        *version_range* and is strictly greater than *installed_version*.

        Example::

            >>> evaluator = SelfUpgradeEvaluator()
            >>> evaluator.will_self_upgrade("^4.17.0", "4.17.21", "4.17.0", "4.17.21")
            True
            >>> evaluator.will_self_upgrade("^4.1.2", "4.1.2", "4.1.2", "5.3.0")
            False
        """
        if version_range is None or highest_satisfying is None or not latest_version:
            return False

        installed = try_parse_version(installed_version)
        if installed is None:
            return False

        if isinstance(highest_satisfying, semantic_version.Version):
            highest: Optional[semantic_version.Version] = highest_satisfying
        else:
            highest = try_parse_version(highest_satisfying)
        if highest is None:
            return False

        if not self.matcher.satisfies(highest, version_range):
            logger.debug(
                "%s does not satisfy %r; no self-upgrade",
                highest,
                version_range,
            )
            return False

        return highest > installed
