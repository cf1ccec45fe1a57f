"""Centralized npm registry data store for npmkeeper.

Provides an async-safe cache of npm registry metadata ("packuments") so
that each package is fetched at most once per invocation, however many
declaration keys refer to it.

Typical usage::

    from npmkeeper.utils.http import HTTPClient
    from npmkeeper.core.data_store import NpmDataStore

    async with HTTPClient() as client:
        store = NpmDataStore(client)
        info  = await store.get_registry_info("react")
        print(info.latest_version)          # e.g. "18.2.0"
"""

from __future__ import annotations

import asyncio
from urllib.parse import quote
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from npmkeeper.exceptions import NetworkError, RegistryError
from npmkeeper.models.dependency import RegistryInfo
from npmkeeper.utils.http import HTTPClient
from npmkeeper.utils.logger import get_logger
from npmkeeper.constants import DEFAULT_MAX_CONCURRENCY, NPM_REGISTRY_URL

logger = get_logger("data_store")

# Public API
__all__ = ["NpmDataStore", "NpmPackageData", "parse_timestamp"]


# ---------------------------------------------------------------------------
# Data container
# ---------------------------------------------------------------------------


@dataclass
class NpmPackageData:
    """Immutable-by-convention snapshot of one registry packument.

    Attributes:
        name: Package name as published.
        versions: Every published version string, in registry order.
        dist_tags: Raw ``dist-tags`` mapping (``latest``, ``next``, ...).
        times: Publish timestamps keyed by version.
    """

    name: str
    versions: List[str] = field(default_factory=list)
    dist_tags: Dict[str, str] = field(default_factory=dict)
    times: Dict[str, datetime] = field(default_factory=dict)

    @property
    def latest_version(self) -> Optional[str]:
        """Version carrying the ``latest`` dist-tag."""
        return self.dist_tags.get("latest")

    @property
    def latest_version_date(self) -> Optional[datetime]:
        """Publish time of :attr:`latest_version`, if recorded."""
        latest = self.latest_version
        return self.times.get(latest) if latest else None

    def to_registry_info(self) -> RegistryInfo:
        """Return the engine-facing :class:`RegistryInfo` view."""
        return RegistryInfo(
            available_versions=tuple(self.versions),
            latest_version=self.latest_version,
            latest_version_date=self.latest_version_date,
        )


# ---------------------------------------------------------------------------
# Async data-store with double-checked locking
# ---------------------------------------------------------------------------


class NpmDataStore:
    """Async-safe, per-process cache for npm registry metadata.

    Each unique package name triggers **at most one** request to
    ``{registry}/{name}``. A :class:`asyncio.Semaphore` limits concurrent
    outbound fetches, and a double-checked lock inside the semaphore
    prevents duplicate fetches when several coroutines ask for the same
    package at once.

    Args:
        http_client: A pre-configured :class:`HTTPClient` instance.
        registry_url: Registry base URL.
        concurrent_limit: Maximum number of fetches in flight at once.

    Example::

        async with HTTPClient() as client:
            store = NpmDataStore(client, concurrent_limit=5)
            await store.prefetch_packages(["react", "lodash"])
            react = await store.get_package_data("react")
    """

    def __init__(
        self,
        http_client: HTTPClient,
        registry_url: str = NPM_REGISTRY_URL,
        concurrent_limit: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        self.http_client = http_client
        self.registry_url = registry_url.rstrip("/")
        self._semaphore = asyncio.Semaphore(concurrent_limit)
        self._package_data: Dict[str, NpmPackageData] = {}

    # ------------------------------------------------------------------
    # Public async accessors
    # ------------------------------------------------------------------

    async def get_package_data(self, name: str) -> NpmPackageData:
        """Fetch (or return cached) metadata for *name*.

        Raises:
            RegistryError: The package does not exist, the registry could
                not be reached, or the response is not a packument.
        """
        if name in self._package_data:
            return self._package_data[name]

        async with self._semaphore:
            # Another coroutine may have populated while we waited
            if name in self._package_data:
                return self._package_data[name]

            data = await self._fetch_packument(name)
            pkg_data = self._parse_package_data(name, data)
            self._package_data[name] = pkg_data
            return pkg_data

    async def get_registry_info(self, name: str) -> RegistryInfo:
        """Return the :class:`RegistryInfo` for *name*.

        Raises:
            RegistryError: See :meth:`get_package_data`.
        """
        pkg_data = await self.get_package_data(name)
        return pkg_data.to_registry_info()

    async def prefetch_packages(self, names: List[str]) -> None:
        """Concurrently warm the cache for a batch of packages.

        Failures are not raised here; they surface again when the same
        package is requested through :meth:`get_package_data`.
        """
        results = await asyncio.gather(
            *(self.get_package_data(name) for name in dict.fromkeys(names)),
            return_exceptions=True,
        )
        failed = sum(1 for result in results if isinstance(result, Exception))
        if failed:
            logger.debug("Prefetch finished with %d failure(s)", failed)

    def get_cached_package(self, name: str) -> Optional[NpmPackageData]:
        """Return cached data for *name* without triggering a fetch."""
        return self._package_data.get(name)

    # ------------------------------------------------------------------
    # Network helpers (private)
    # ------------------------------------------------------------------

    def package_url(self, name: str) -> str:
        """Return the packument URL for *name*.

        Scoped names keep their ``@`` and encode the slash, as the
        registry expects.

        Example::

            >>> store.package_url("@babel/core")
            'https://registry.npmjs.org/@babel%2Fcore'
        """
        return f"{self.registry_url}/{quote(name, safe='@')}"

    async def _fetch_packument(self, name: str) -> Dict[str, Any]:
        """GET the packument for *name*, normalizing failures to :class:`RegistryError`."""
        url = self.package_url(name)

        try:
            return await self.http_client.get_json(url)
        except RegistryError as exc:
            if exc.status_code == 404:
                raise RegistryError(
                    f"Package '{name}' not found on the registry",
                    package_name=name,
                    url=url,
                    status_code=404,
                ) from exc
            raise
        except NetworkError as exc:
            raise RegistryError(
                f"Failed to fetch data for '{name}': {exc.message}",
                package_name=name,
                url=url,
                status_code=exc.status_code,
            ) from exc

    # ------------------------------------------------------------------
    # Parsing helpers (private, synchronous)
    # ------------------------------------------------------------------

    def _parse_package_data(
        self,
        name: str,
        data: Dict[str, Any],
    ) -> NpmPackageData:
        """Transform a raw packument into :class:`NpmPackageData`.

        Raises:
            RegistryError: The payload's ``versions`` field is not an object.
        """
        versions = data.get("versions") or {}
        if not isinstance(versions, dict):
            raise RegistryError(
                f"Malformed registry payload for '{name}': 'versions' is not an object",
                package_name=name,
            )

        raw_tags = data.get("dist-tags") or {}
        dist_tags = {
            tag: version
            for tag, version in (raw_tags.items() if isinstance(raw_tags, dict) else ())
            if isinstance(version, str)
        }

        if "latest" not in dist_tags:
            logger.warning("No 'latest' version found for package: %s", name)

        raw_times = data.get("time") or {}
        times: Dict[str, datetime] = {}
        if isinstance(raw_times, dict):
            for version, stamp in raw_times.items():
                parsed = parse_timestamp(stamp)
                if parsed is not None:
                    times[version] = parsed

        return NpmPackageData(
            name=data.get("name") or name,
            versions=list(versions.keys()),
            dist_tags=dist_tags,
            times=times,
        )


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a registry ISO-8601 timestamp into an aware UTC datetime.

    Example::

        >>> parse_timestamp("2023-01-05T12:30:00.123Z")
        datetime.datetime(2023, 1, 5, 12, 30, 0, 123000, tzinfo=datetime.timezone.utc)
    """
    if not isinstance(value, str) or not value:
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparseable timestamp: %r", value)
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
