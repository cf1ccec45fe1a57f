"""
npmkeeper: self-upgrade checker for npm projects.

npmkeeper reads the dependency ranges declared in a ``package.json``,
looks up the latest published version of each dependency on the npm
registry, and reports whether simply re-resolving the declared range
would pull a newer version than the one installed.

Features include:
    • npm range matching (caret, tilde, comparators, ``||``, x-ranges)
    • Upgrade classification (major / minor / patch) against the latest release
    • Installed versions from package-lock.json, npm-shrinkwrap.json or node_modules
    • Concurrent registry lookups with retries and timeouts
    • Table, simple and JSON output
"""

from __future__ import annotations

from npmkeeper.__version__ import __version__

# ---------------------------------------------------------------------------
# Package Metadata
# ---------------------------------------------------------------------------

__author__ = "npmkeeper Contributors"
__license__ = "Apache-2.0"
__description__ = "Check whether declared npm ranges will self-upgrade to newer releases."

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    "__version__",
]
