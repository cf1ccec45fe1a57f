"""
Centralized constants for npmkeeper.

This module defines immutable configuration values used across npmkeeper,
including network settings, manifest and lock file names, display defaults,
and logging formats. All values are intended to be treated as read-only.
"""

from typing import Final, Sequence

# ---------------------------------------------------------------------------
# Project metadata
# ---------------------------------------------------------------------------

#: HTTP User-Agent template used for outbound requests.
USER_AGENT_TEMPLATE: Final[str] = (
    "npmkeeper/{version} (https://github.com/rahulkaushal04/npmkeeper)"
)

# ---------------------------------------------------------------------------
# npm registry endpoints
# ---------------------------------------------------------------------------

#: Base URL of the public npm registry.
NPM_REGISTRY_URL: Final[str] = "https://registry.npmjs.org"

#: Public package page, used for terminal hyperlinks.
NPM_PACKAGE_URL: Final[str] = "https://www.npmjs.com/package/{package}"

#: Public page for one published version of a package.
NPM_PACKAGE_VERSION_URL: Final[str] = (
    "https://www.npmjs.com/package/{package}/v/{version}"
)

# ---------------------------------------------------------------------------
# HTTP configuration
# ---------------------------------------------------------------------------

#: Default network timeout in seconds.
DEFAULT_TIMEOUT: Final[int] = 30

#: Maximum number of retries for failed HTTP requests.
DEFAULT_MAX_RETRIES: Final[int] = 3

#: Number of 429 responses tolerated per request before giving up.
DEFAULT_RATE_LIMIT_RETRIES: Final[int] = 5

#: Upper bound (seconds) on a server supplied ``Retry-After`` wait.
DEFAULT_MAX_RETRY_AFTER: Final[int] = 60

#: Maximum number of registry requests in flight at once.
DEFAULT_MAX_CONCURRENCY: Final[int] = 10

# ---------------------------------------------------------------------------
# Manifest and lock files
# ---------------------------------------------------------------------------

#: Default manifest file name.
MANIFEST_FILE: Final[str] = "package.json"

#: Lock files consulted for installed versions, in priority order.
LOCK_FILES: Final[Sequence[str]] = (
    "npm-shrinkwrap.json",
    "package-lock.json",
)

#: Directory holding installed packages.
NODE_MODULES_DIR: Final[str] = "node_modules"

#: Manifest sections merged into the declared dependency set, in merge order.
DEPENDENCIES_SECTION: Final[str] = "dependencies"
DEV_DEPENDENCIES_SECTION: Final[str] = "devDependencies"
OVERRIDES_SECTION: Final[str] = "overrides"

#: Separator used to build composite keys for nested overrides.
OVERRIDE_PATH_SEPARATOR: Final[str] = "/"

#: npm override key that targets the enclosing package itself.
OVERRIDE_SELF_KEY: Final[str] = "."

#: Prefix of an override value referencing a declared dependency's range.
OVERRIDE_REFERENCE_PREFIX: Final[str] = "$"

#: Sentinel for a dependency whose installed version cannot be resolved.
UNKNOWN_VERSION: Final[str] = "unknown"

# ---------------------------------------------------------------------------
# Configuration defaults
# ---------------------------------------------------------------------------

#: Evaluate ``devDependencies`` in addition to ``dependencies``.
DEFAULT_INCLUDE_DEV_DEPENDENCIES: Final[bool] = True

#: Evaluate entries of the ``overrides`` section.
DEFAULT_INCLUDE_OVERRIDES: Final[bool] = True

#: Window (days) in which a latest release is highlighted as fresh.
DEFAULT_RECENT_DAYS: Final[int] = 10

#: Supported result orderings.
SORT_CHOICES: Final[Sequence[str]] = ("date", "name", "declaration")

#: Default result ordering (newest publish date first).
DEFAULT_SORT: Final[str] = "date"

# ---------------------------------------------------------------------------
# Security constraints
# ---------------------------------------------------------------------------

#: Maximum allowed file size (in bytes) when reading manifests and lock files.
MAX_FILE_SIZE: Final[int] = 50 * 1024 * 1024  # 50 MB

# ---------------------------------------------------------------------------
# Logging configuration
# ---------------------------------------------------------------------------

#: Timestamp format for verbose logging.
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

#: Default log format (non-verbose).
LOG_DEFAULT_FORMAT: Final[str] = "%(levelname)s: %(message)s"

#: Verbose log format including timestamp and logger name.
LOG_VERBOSE_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
