"""
Custom exception hierarchy for npmkeeper.

This module defines structured exception types used across npmkeeper.
All exceptions inherit from :class:`NpmKeeperError` and support optional
structured metadata via the ``details`` attribute to improve diagnostics
and logging.

Only :class:`ManifestError`, :class:`FilterNotDeclaredError` and
:class:`ConfigError` abort a run. Registry, range and version errors are
recovered per dependency.
"""

from __future__ import annotations

from typing import Any, Mapping, MutableMapping, Optional


class NpmKeeperError(Exception):
    """Base exception for all npmkeeper errors.

    All npmkeeper-specific exceptions should inherit from this class.
    It supports structured metadata via ``details`` for richer error
    reporting and debugging.

    Args:
        message: Human-readable error message.
        details: Optional structured metadata describing the error.
    """

    __slots__ = ("message", "details")

    def __init__(
        self,
        message: str,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.message: str = message
        # Internally normalize to a mutable dict
        self.details: MutableMapping[str, Any] = dict(details) if details else {}
        super().__init__(message)

    def __str__(self) -> str:
        if not self.details:
            return self.message
        formatted = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"{self.message} ({formatted})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, details={dict(self.details)!r})"
        )


def _add_if(details: MutableMapping[str, Any], key: str, value: Any) -> None:
    """Add a key to ``details`` only if ``value`` is not ``None``."""
    if value is not None:
        details[key] = value


def _truncate(text: str, max_length: int = 200) -> str:
    """Truncate long text for safe logging or error reporting."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


class ManifestError(NpmKeeperError):
    """Raised when ``package.json`` cannot be read or has an invalid shape.

    Args:
        message: Error description.
        file_path: Path to the manifest.
        section: Manifest section that failed validation, if any.
    """

    __slots__ = ("file_path", "section")

    def __init__(
        self,
        message: str,
        *,
        file_path: Optional[str] = None,
        section: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "file", file_path)
        _add_if(details, "section", section)

        super().__init__(message, details)

        self.file_path = file_path
        self.section = section


class FilterNotDeclaredError(NpmKeeperError):
    """Raised when a single-package filter names an undeclared dependency.

    Args:
        package_name: The requested package.
    """

    __slots__ = ("package_name",)

    def __init__(self, package_name: str) -> None:
        super().__init__(
            f"Package '{package_name}' not found in dependencies",
            {"package": package_name},
        )
        self.package_name = package_name


class MalformedVersionError(NpmKeeperError):
    """Raised when a string is not a valid semantic version.

    Args:
        version: The offending version string.
    """

    __slots__ = ("version",)

    def __init__(self, version: str) -> None:
        super().__init__(
            f"Invalid semantic version: {version!r}",
            {"version": _truncate(str(version))},
        )
        self.version = version


class MalformedRangeError(NpmKeeperError):
    """Raised when a string is not a valid npm version range.

    Args:
        version_range: The offending range string.
    """

    __slots__ = ("version_range",)

    def __init__(self, version_range: str) -> None:
        super().__init__(
            f"Invalid version range: {version_range!r}",
            {"range": _truncate(str(version_range))},
        )
        self.version_range = version_range


class NetworkError(NpmKeeperError):
    """Raised when HTTP or network operations fail.

    Args:
        message: Error description.
        url: URL being accessed.
        status_code: HTTP status code, if available.
        response_body: Raw response body, truncated for safety.
    """

    __slots__ = ("url", "status_code", "response_body")

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "url", url)
        _add_if(details, "status_code", status_code)

        if response_body is not None:
            details["response"] = _truncate(response_body)

        super().__init__(message, details)

        self.url = url
        self.status_code = status_code
        self.response_body = response_body


class RegistryError(NetworkError):
    """Raised for failures related to the npm registry.

    Args:
        message: Error description.
        package_name: Name of the package involved.
        **kwargs: Additional arguments forwarded to ``NetworkError``.
    """

    __slots__ = ("package_name",)

    def __init__(
        self,
        message: str,
        *,
        package_name: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)

        self.package_name = package_name
        if package_name is not None:
            self.details["package"] = package_name


class FileOperationError(NpmKeeperError):
    """Raised when file system operations fail.

    Args:
        message: Error description.
        file_path: Path to the file involved.
        operation: Operation being performed (read/validate).
        original_error: Original exception that triggered this error.
    """

    __slots__ = ("file_path", "operation", "original_error")

    def __init__(
        self,
        message: str,
        *,
        file_path: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "path", file_path)
        _add_if(details, "operation", operation)
        _add_if(
            details,
            "original_error",
            str(original_error) if original_error else None,
        )

        super().__init__(message, details)

        self.file_path = file_path
        self.operation = operation
        self.original_error = original_error


class ConfigError(NpmKeeperError):
    """Raised when a configuration file is missing, unreadable or invalid.

    Args:
        message: Error description.
        config_path: Path to the configuration file.
        option: Name of the offending option, if any.
    """

    __slots__ = ("config_path", "option")

    def __init__(
        self,
        message: str,
        *,
        config_path: Optional[str] = None,
        option: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "path", config_path)
        _add_if(details, "option", option)

        super().__init__(message, details)

        self.config_path = config_path
        self.option = option
