"""Configuration file loader for npmkeeper.

Handles discovery, loading, parsing, and validation of configuration files.
Supports two formats:

- ``npmkeeper.toml``: settings under the ``[npmkeeper]`` table
- ``pyproject.toml``: settings under the ``[tool.npmkeeper]`` table

Discovery order:

1. Explicit path from ``--config`` or ``NPMKEEPER_CONFIG``
2. ``npmkeeper.toml`` in current directory
3. ``pyproject.toml`` with ``[tool.npmkeeper]`` section

Configuration precedence: defaults < config file < environment < CLI args.

Typical usage::

    config = load_config()  # Auto-discover
    config = load_config(Path("custom.toml"))  # Explicit path

Example (``npmkeeper.toml``)::

    [npmkeeper]
    registry_url = "https://registry.npmjs.org"
    include_dev_dependencies = false
    recent_days = 7
    sort = "name"
"""

from __future__ import annotations


import tomli as tomllib
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type
from dataclasses import dataclass, field

from npmkeeper.exceptions import ConfigError
from npmkeeper.utils.logger import get_logger
from npmkeeper.constants import (
    DEFAULT_INCLUDE_DEV_DEPENDENCIES,
    DEFAULT_INCLUDE_OVERRIDES,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_RETRY_AFTER,
    DEFAULT_RATE_LIMIT_RETRIES,
    DEFAULT_RECENT_DAYS,
    DEFAULT_SORT,
    DEFAULT_TIMEOUT,
    NPM_REGISTRY_URL,
    SORT_CHOICES,
)

logger = get_logger("config")

CONFIG_FILE_NAME = "npmkeeper.toml"
CONFIG_SECTION = "npmkeeper"


@dataclass
class NpmKeeperConfig:
    """Parsed and validated npmkeeper configuration.

    Contains settings from ``npmkeeper.toml`` or ``pyproject.toml``.
    All fields have defaults, so empty config files are valid.

    Attributes:
        registry_url: Base URL of the npm registry to query.
        timeout: Per-request timeout in seconds.
        max_concurrency: Maximum number of registry requests in flight.
        max_retries: Retries after a timeout, transport error or 5xx.
        rate_limit_retries: 429 responses tolerated per request.
        max_retry_after: Cap (seconds) on a server requested
            ``Retry-After`` wait.
        include_dev_dependencies: Evaluate ``devDependencies`` as well.
        include_overrides: Evaluate flattened ``overrides`` entries.
        recent_days: Age window (days) in which a latest release is
            highlighted as freshly published.
        sort: Result ordering, one of ``date``, ``name`` or ``declaration``.
        source_path: Path to loaded config file, or ``None`` if using defaults.
    """

    registry_url: str = NPM_REGISTRY_URL
    timeout: int = DEFAULT_TIMEOUT
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    max_retries: int = DEFAULT_MAX_RETRIES
    rate_limit_retries: int = DEFAULT_RATE_LIMIT_RETRIES
    max_retry_after: int = DEFAULT_MAX_RETRY_AFTER
    include_dev_dependencies: bool = DEFAULT_INCLUDE_DEV_DEPENDENCIES
    include_overrides: bool = DEFAULT_INCLUDE_OVERRIDES
    recent_days: int = DEFAULT_RECENT_DAYS
    sort: str = DEFAULT_SORT

    # Metadata (not a user-facing option)
    source_path: Optional[Path] = field(default=None, repr=False)

    def to_log_dict(self) -> Dict[str, Any]:
        """Return configuration as dictionary for debug logging.

        Excludes ``source_path`` metadata.
        """
        return {name: getattr(self, name) for name in _OPTION_TYPES}


# Option name -> (accepted types, human readable type name)
_OPTION_TYPES: Dict[str, Tuple[Tuple[Type[Any], ...], str]] = {
    "registry_url": ((str,), "a string"),
    "timeout": ((int,), "an integer"),
    "max_concurrency": ((int,), "an integer"),
    "max_retries": ((int,), "an integer"),
    "rate_limit_retries": ((int,), "an integer"),
    "max_retry_after": ((int,), "an integer"),
    "include_dev_dependencies": ((bool,), "a boolean"),
    "include_overrides": ((bool,), "a boolean"),
    "recent_days": ((int,), "an integer"),
    "sort": ((str,), "a string"),
}


def discover_config_file(explicit_path: Optional[Path] = None) -> Optional[Path]:
    """Find the configuration file to load.

    Search order:

    1. ``explicit_path`` (from ``--config`` or ``NPMKEEPER_CONFIG``)
    2. ``npmkeeper.toml`` in current directory
    3. ``pyproject.toml`` with ``[tool.npmkeeper]`` section in current directory

    Args:
        explicit_path: Explicit config path. If provided, must exist.

    Returns:
        Resolved path to config file, or ``None`` if not found.

    Raises:
        ConfigError: Explicit path provided but does not exist.
    """
    if explicit_path is not None:
        resolved = explicit_path.resolve()
        if not resolved.is_file():
            raise ConfigError(
                f"Configuration file not found: {explicit_path}",
                config_path=str(explicit_path),
            )
        logger.debug("Using explicit config: %s", resolved)
        return resolved

    cwd = Path.cwd()

    npmkeeper_toml = cwd / CONFIG_FILE_NAME
    if npmkeeper_toml.is_file():
        logger.debug("Found %s: %s", CONFIG_FILE_NAME, npmkeeper_toml)
        return npmkeeper_toml

    pyproject_toml = cwd / "pyproject.toml"
    if pyproject_toml.is_file():
        if _pyproject_has_npmkeeper_section(pyproject_toml):
            logger.debug("Found [tool.npmkeeper] in pyproject.toml: %s", pyproject_toml)
            return pyproject_toml

    logger.debug("No configuration file found")
    return None


def _pyproject_has_npmkeeper_section(path: Path) -> bool:
    """Check if pyproject.toml contains a ``[tool.npmkeeper]`` section.

    An unreadable or invalid pyproject.toml is treated as having none.
    """
    try:
        raw = _read_toml(path)
    except ConfigError as exc:
        logger.debug("Ignoring unreadable pyproject.toml: %s", exc)
        return False
    tool = raw.get("tool", {})
    return isinstance(tool, dict) and CONFIG_SECTION in tool


def load_config(config_path: Optional[Path] = None) -> NpmKeeperConfig:
    """Load and validate npmkeeper configuration.

    Args:
        config_path: Explicit path to config file. If ``None``, uses
            auto-discovery (see :func:`discover_config_file`).

    Returns:
        Validated :class:`NpmKeeperConfig` with values from file or defaults.

    Raises:
        ConfigError: File cannot be parsed, has unknown keys, or invalid values.
    """
    resolved = discover_config_file(config_path)

    if resolved is None:
        logger.debug("No config file found, using defaults")
        return NpmKeeperConfig()

    logger.info("Loading configuration from %s", resolved)
    raw = _read_toml(resolved)

    if resolved.name == "pyproject.toml":
        section = raw.get("tool", {}).get(CONFIG_SECTION, {})
    else:
        section = raw.get(CONFIG_SECTION, {})

    if not isinstance(section, dict):
        raise ConfigError(
            f"[{CONFIG_SECTION}] must be a table",
            config_path=str(resolved),
        )

    if not section:
        logger.debug("Config file found but no npmkeeper section, using defaults")
        return NpmKeeperConfig(source_path=resolved)

    config = _parse_section(section, config_path=str(resolved))
    config.source_path = resolved

    logger.debug("Loaded configuration: %s", config.to_log_dict())
    return config


def _read_toml(path: Path) -> Dict[str, Any]:
    """Read and parse a TOML file.

    Raises:
        ConfigError: File cannot be read or is not valid TOML.
    """
    try:
        with open(path, "rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(
            f"Invalid TOML in {path.name}: {exc}",
            config_path=str(path),
        ) from exc
    except OSError as exc:
        raise ConfigError(
            f"Cannot read configuration file {path}: {exc}",
            config_path=str(path),
        ) from exc


def _parse_section(
    section: Dict[str, Any],
    *,
    config_path: str,
) -> NpmKeeperConfig:
    """Parse and validate the ``[npmkeeper]`` or ``[tool.npmkeeper]`` table.

    Rejects unknown keys, type mismatches and out-of-range values.

    Raises:
        ConfigError: Unknown keys or invalid values.
    """
    config = NpmKeeperConfig()

    unknown = set(section.keys()) - set(_OPTION_TYPES)
    if unknown:
        raise ConfigError(
            f"Unknown configuration keys: {', '.join(sorted(unknown))}",
            config_path=config_path,
        )

    for name, value in section.items():
        types, type_name = _OPTION_TYPES[name]
        # bool is a subclass of int; reject it for numeric options
        if not isinstance(value, types) or (
            isinstance(value, bool) and bool not in types
        ):
            raise ConfigError(
                f"{name} must be {type_name}, got {type(value).__name__}",
                config_path=config_path,
                option=name,
            )
        setattr(config, name, value)

    _validate_values(config, config_path=config_path)
    return config


def _validate_values(config: NpmKeeperConfig, *, config_path: str) -> None:
    """Check value ranges that the type check alone cannot express."""
    for name in ("timeout", "max_concurrency"):
        if getattr(config, name) < 1:
            raise ConfigError(
                f"{name} must be at least 1",
                config_path=config_path,
                option=name,
            )

    for name in ("max_retries", "rate_limit_retries", "max_retry_after", "recent_days"):
        if getattr(config, name) < 0:
            raise ConfigError(
                f"{name} must not be negative",
                config_path=config_path,
                option=name,
            )

    if config.sort not in SORT_CHOICES:
        raise ConfigError(
            f"sort must be one of {', '.join(SORT_CHOICES)}, got '{config.sort}'",
            config_path=config_path,
            option="sort",
        )

    if not config.registry_url.startswith(("http://", "https://")):
        raise ConfigError(
            f"registry_url must be an http(s) URL, got '{config.registry_url}'",
            config_path=config_path,
            option="registry_url",
        )
