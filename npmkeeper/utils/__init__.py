"""
Utility helpers for npmkeeper.

This package provides reusable utilities used across npmkeeper, including:

- Console output helpers (Rich-based)
- Logging configuration and retrieval
- Filesystem safety helpers
- Async HTTP client utilities
- Version parsing and upgrade classification

Only symbols listed in ``__all__`` are considered part of the public API.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Filesystem utilities
# ---------------------------------------------------------------------------

from npmkeeper.utils.filesystem import (
    find_manifest_file,
    safe_read_file,
    validate_path,
)

# ---------------------------------------------------------------------------
# Logging utilities
# ---------------------------------------------------------------------------

from npmkeeper.utils.logger import (
    get_logger,
    is_logging_configured,
    level_for_verbosity,
    setup_logging,
)

# ---------------------------------------------------------------------------
# Console utilities
# ---------------------------------------------------------------------------

from npmkeeper.utils.console import (
    TableColumn,
    colorize_update_type,
    colorize_verdict,
    create_hyperlink,
    get_raw_console,
    print_error,
    print_success,
    print_table,
    print_warning,
    progress_status,
    reconfigure_console,
    styled,
)

# ---------------------------------------------------------------------------
# HTTP utilities
# ---------------------------------------------------------------------------

from npmkeeper.utils.http import HTTPClient, RetryPolicy

# ---------------------------------------------------------------------------
# Version utilities
# ---------------------------------------------------------------------------

from npmkeeper.utils.version_utils import (
    get_update_type,
    parse_version,
    try_parse_version,
)

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    # Console
    "print_error",
    "print_table",
    "print_success",
    "print_warning",
    "progress_status",
    "styled",
    "TableColumn",
    "get_raw_console",
    "create_hyperlink",
    "colorize_verdict",
    "reconfigure_console",
    "colorize_update_type",
    # Logging
    "get_logger",
    "setup_logging",
    "level_for_verbosity",
    "is_logging_configured",
    # Filesystem
    "safe_read_file",
    "validate_path",
    "find_manifest_file",
    # HTTP
    "HTTPClient",
    "RetryPolicy",
    # Version utilities
    "parse_version",
    "get_update_type",
    "try_parse_version",
]
