"""Check command implementation for npmkeeper.

Reads a project's ``package.json`` and reports, for every declared
dependency, whether a fresh install would move it past the version that
is installed today.

The command wires together four pieces:

1. **Manifest reader**: loads ``package.json`` and flattens
   ``dependencies``, ``devDependencies`` and ``overrides`` into one
   key to range mapping.
2. **Installed-state reader**: resolves installed versions from the lock
   file or ``node_modules``.
3. **NpmDataStore**: fetches registry metadata concurrently, each package
   at most once.
4. **DependencyChecker**: picks the highest satisfying version, classifies
   the upgrade and decides whether the range self-upgrades.

Typical usage::

    # Check every dependency of the nearest package.json
    $ npmkeeper check

    # A single dependency, machine-readable
    $ npmkeeper check --package react --format json

    # Alphabetical, only what would move
    $ npmkeeper check --sort name --outdated-only
"""

from __future__ import annotations

import sys
import json
import click
import asyncio
from pathlib import Path
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from rich.markup import escape

from npmkeeper.config import NpmKeeperConfig
from npmkeeper.models import EvaluationResult
from npmkeeper.exceptions import ManifestError, NpmKeeperError
from npmkeeper.context import pass_context, NpmKeeperContext
from npmkeeper.constants import (
    MANIFEST_FILE,
    NPM_PACKAGE_URL,
    NPM_PACKAGE_VERSION_URL,
    SORT_CHOICES,
)
from npmkeeper.core import (
    DependencyChecker,
    NpmDataStore,
    flatten_declarations,
    load_installed_versions,
    load_manifest,
)
from npmkeeper.utils import (
    HTTPClient,
    colorize_update_type,
    colorize_verdict,
    create_hyperlink,
    find_manifest_file,
    get_logger,
    get_raw_console,
    print_error,
    print_success,
    print_table,
    print_warning,
    progress_status,
    styled,
    TableColumn,
)

logger = get_logger("commands.check")

RECENT_ICON = "⚡"
STATUS_ICONS = {
    "self-upgrade": "⬆",
    "outdated": "•",
    "latest": "✓",
    "unknown": "?",
    "unavailable": "✗",
}

TABLE_COLUMNS = (
    TableColumn("Status", justify="center", no_wrap=True),
    TableColumn("Package", style="bold cyan", no_wrap=True),
    TableColumn("Range"),
    TableColumn("Installed", justify="center"),
    TableColumn("Highest", justify="center", style="bold"),
    TableColumn("Latest", justify="center", style="bold green"),
    TableColumn("Published", justify="center", no_wrap=True),
    TableColumn("Update Type", justify="center"),
    TableColumn("Self-Upgrade", justify="center"),
)


@click.command()
@click.argument(
    "manifest",
    type=click.Path(dir_okay=False, path_type=Path),
    required=False,
)
@click.option(
    "--package",
    "--check",
    "-p",
    "package",
    default=None,
    metavar="NAME",
    help="Evaluate only this declared dependency.",
)
@click.option(
    "--format",
    "-f",
    type=click.Choice(["table", "simple", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.option(
    "--sort",
    "-s",
    type=click.Choice(list(SORT_CHOICES), case_sensitive=False),
    default=None,
    help="Result ordering (default from configuration: date).",
)
@click.option(
    "--outdated-only",
    is_flag=True,
    help="Show only dependencies behind latest or that would self-upgrade.",
)
@click.option(
    "--registry",
    default=None,
    metavar="URL",
    envvar="NPMKEEPER_REGISTRY",
    help="npm registry base URL.",
)
@pass_context
def check(
    ctx: NpmKeeperContext,
    manifest: Optional[Path],
    package: Optional[str],
    format: str,
    sort: Optional[str],
    outdated_only: bool,
    registry: Optional[str],
) -> None:
    """Check which dependencies a fresh install would upgrade.

    For each dependency declared in MANIFEST (default: the nearest
    ``package.json``) the report shows the declared range, the installed
    version, the highest published version the range accepts, the latest
    release and whether re-resolving the range would install something
    newer than what is installed now.

    Exits:
        0 on success, 1 if the manifest cannot be read, the ``--package``
        filter names an undeclared dependency or another fatal error occurs.
    """
    config = ctx.settings

    try:
        asyncio.run(
            _check_async(
                ctx,
                config,
                manifest,
                package=package,
                format=format.lower(),
                sort=(sort or config.sort).lower(),
                outdated_only=outdated_only,
                registry_url=registry or config.registry_url,
            )
        )

    except NpmKeeperError as e:
        print_error(escape(str(e)))
        sys.exit(1)
    except Exception as e:
        print_error(f"Unexpected error: {escape(str(e))}")
        logger.exception("Error in check command")
        sys.exit(1)


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


async def _check_async(
    ctx: NpmKeeperContext,
    config: NpmKeeperConfig,
    manifest_path: Optional[Path],
    *,
    package: Optional[str],
    format: str,
    sort: str,
    outdated_only: bool,
    registry_url: str,
) -> List[EvaluationResult]:
    """Async implementation of the check command.

    Returns:
        The rendered results, after sorting and filtering.

    Raises:
        ManifestError: No manifest found, or it cannot be read.
        FilterNotDeclaredError: *package* is not declared. Raised before
            any registry request is made.
    """
    show_progress: bool = format == "table" or (format == "simple" and ctx.verbose > 0)

    path = _resolve_manifest_path(manifest_path)
    logger.info("Checking %s...", path)

    manifest = load_manifest(path)
    declared = flatten_declarations(
        manifest,
        include_dev=config.include_dev_dependencies,
        include_overrides=config.include_overrides,
    )
    selected = DependencyChecker.select_dependencies(declared, package)

    if not selected:
        if format == "json":
            _display_json([])
        elif show_progress:
            print_warning(f"No dependencies declared in {path}")
        return []

    logger.info("Found %d dependency declaration(s)", len(selected))

    installed = load_installed_versions(path.parent, selected.keys())

    async with HTTPClient.from_config(config) as http:
        data_store = NpmDataStore(
            http,
            registry_url=registry_url,
            concurrent_limit=config.max_concurrency,
        )
        checker = DependencyChecker()
        with progress_status("Fetching package information...", enabled=show_progress):
            results = await checker.check_dependencies(selected, installed, data_store)

    results = sort_results(results, sort)
    if outdated_only:
        results = [r for r in results if r.will_self_upgrade or r.needs_upgrade()]

    if not results and format != "json":
        if show_progress:
            print_success("All dependencies are up to date!")
        return results

    now = datetime.now(timezone.utc)

    if format == "table":
        _display_table(results, now=now, recent_days=config.recent_days)
    elif format == "simple":
        _display_simple(results, now=now, recent_days=config.recent_days)
    else:  # json
        _display_json(results)

    if show_progress:
        moving = sum(1 for r in results if r.will_self_upgrade)
        if moving:
            print_warning(
                f"\n{moving} dependency(ies) will self-upgrade on a fresh install"
            )
        else:
            print_success("\nNo dependency will move past its installed version")

    return results


def _resolve_manifest_path(manifest_path: Optional[Path]) -> Path:
    """Return the manifest to read, searching upwards when none was given."""
    if manifest_path is not None:
        return manifest_path

    found = find_manifest_file(Path.cwd())
    if found is None:
        raise ManifestError(
            f"No {MANIFEST_FILE} found in the current directory or its parents",
            file_path=MANIFEST_FILE,
        )
    return found


def sort_results(results: List[EvaluationResult], order: str) -> List[EvaluationResult]:
    """Order results for display.

    ``date`` puts the most recently published latest release first, with
    undated results last. ``name`` sorts case-insensitively by key.
    ``declaration`` keeps manifest order.
    """
    if order == "name":
        return sorted(results, key=lambda r: r.name.lower())

    if order == "date":
        dated = [r for r in results if r.latest_version_date is not None]
        undated = [r for r in results if r.latest_version_date is None]
        dated.sort(key=lambda r: r.latest_version_date.timestamp(), reverse=True)
        return dated + undated

    return list(results)


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def _format_date(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d") if value else "-"


def _package_link(result: EvaluationResult) -> str:
    return create_hyperlink(
        result.name,
        NPM_PACKAGE_URL.format(package=result.package_name),
    )


def _latest_link(result: EvaluationResult) -> str:
    if not result.latest_version:
        return "[red]error[/red]"
    return create_hyperlink(
        result.latest_version,
        NPM_PACKAGE_VERSION_URL.format(
            package=result.package_name,
            version=result.latest_version,
        ),
    )


def _status_icon(result: EvaluationResult, now: datetime, recent_days: int) -> str:
    if result.is_recently_published(now, recent_days):
        return RECENT_ICON
    status = result.get_status_summary()[0]
    return STATUS_ICONS.get(status, "?")


def _display_table(
    results: List[EvaluationResult],
    *,
    now: datetime,
    recent_days: int,
) -> None:
    """Render results as a Rich table, one row per dependency."""
    rows = [_create_table_row(r, now, recent_days) for r in results]

    print_table(
        rows,
        TABLE_COLUMNS,
        title="Dependency Status",
        caption=f"{RECENT_ICON} latest published within {recent_days} day(s)",
    )


def _create_table_row(
    result: EvaluationResult,
    now: datetime,
    recent_days: int,
) -> Dict[str, Any]:
    _, installed, highest, _ = result.get_status_summary()

    return {
        "Status": _status_icon(result, now, recent_days),
        "Package": _package_link(result),
        "Range": escape(result.declared_range),
        "Installed": (
            escape(installed) if result.is_installed_known else styled("unknown", "dim")
        ),
        "Highest": (
            escape(highest) if result.highest_satisfying_version else styled("none", "dim")
        ),
        "Latest": _latest_link(result),
        "Published": _format_date(result.latest_version_date),
        "Update Type": colorize_update_type(result.upgrade_type.value),
        "Self-Upgrade": colorize_verdict(result.will_self_upgrade),
    }


def _display_simple(
    results: List[EvaluationResult],
    *,
    now: datetime,
    recent_days: int,
) -> None:
    """Render one indented block per dependency.

    Example::

        ⚡ react
           Declared Range:    ^18.0.0
           Installed:         18.0.0
           Highest Matching:  18.2.0
           Latest:            18.2.0
           Published:         2023-06-14
           Update Type:       minor
           Will Self-Upgrade: Yes
    """
    console = get_raw_console()

    for index, result in enumerate(results):
        if index:
            console.print()

        _, installed, highest, _ = result.get_status_summary()
        console.print(
            f"{_status_icon(result, now, recent_days)} [bold]{_package_link(result)}[/bold]"
        )
        console.print(f"   Declared Range:    {escape(result.declared_range)}")
        console.print(f"   Installed:         {escape(installed)}")
        console.print(f"   Highest Matching:  {escape(highest)}")
        console.print(f"   Latest:            {_latest_link(result)}")
        console.print(f"   Published:         {_format_date(result.latest_version_date)}")
        console.print(
            f"   Update Type:       {colorize_update_type(result.upgrade_type.value)}"
        )
        console.print(
            f"   Will Self-Upgrade: {colorize_verdict(result.will_self_upgrade)}"
        )


def _display_json(results: List[EvaluationResult]) -> None:
    """Render results as a JSON array of :meth:`EvaluationResult.to_json` records."""
    data = [r.to_json() for r in results]
    print(json.dumps(data, indent=2))
