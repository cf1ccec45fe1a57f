"""Tests for the ``npmkeeper check`` command.

The registry is replaced by a data store double, so these tests exercise
manifest loading, installed-state resolution, evaluation, sorting and
rendering without touching the network.
"""

from __future__ import annotations

import json
import asyncio
import logging
from contextlib import nullcontext
from pathlib import Path
from datetime import datetime, timezone
from typing import Any, Dict, Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from npmkeeper.cli import cli
from npmkeeper.commands.check import _resolve_manifest_path, sort_results
from npmkeeper.core.data_store import NpmDataStore
from npmkeeper.exceptions import ManifestError, RegistryError
from npmkeeper.models import EvaluationResult, RegistryInfo


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_env(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[None, None, None]:
    """Run from an empty directory with colors off and logging reset."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("NO_COLOR", "1")
    monkeypatch.delenv("NPMKEEPER_CONFIG", raising=False)
    monkeypatch.delenv("NPMKEEPER_REGISTRY", raising=False)
    yield
    logging.getLogger("npmkeeper").handlers.clear()


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project with a manifest and a matching lock file."""
    project_dir = tmp_path / "app"
    project_dir.mkdir()
    (project_dir / "package.json").write_text(
        json.dumps(
            {
                "name": "app",
                "dependencies": {
                    "@babel/core": "^7.6.3",
                    "lodash": "^4.17.0",
                    "express": "^4.1.2",
                },
            }
        ),
        encoding="utf-8",
    )
    (project_dir / "package-lock.json").write_text(
        json.dumps(
            {
                "lockfileVersion": 3,
                "packages": {
                    "": {"name": "app"},
                    "node_modules/@babel/core": {"version": "7.6.3"},
                    "node_modules/lodash": {"version": "4.17.0"},
                    "node_modules/express": {"version": "4.1.2"},
                },
            }
        ),
        encoding="utf-8",
    )
    return project_dir / "package.json"


@pytest.fixture
def store() -> MagicMock:
    """A data store double serving three packages."""
    registry: Dict[str, RegistryInfo] = {
        "@babel/core": RegistryInfo(
            ("7.6.0", "7.6.3"), "7.6.3", datetime(2019, 10, 5, tzinfo=timezone.utc)
        ),
        "lodash": RegistryInfo(
            ("4.17.0", "4.17.21"), "4.17.21", datetime(2021, 2, 20, tzinfo=timezone.utc)
        ),
        "express": RegistryInfo(
            ("4.1.2", "5.0.0"), "5.0.0", datetime(2024, 9, 10, tzinfo=timezone.utc)
        ),
    }

    async def lookup(name: str) -> RegistryInfo:
        await asyncio.sleep(0)
        if name not in registry:
            raise RegistryError(f"Package '{name}' not found on the registry", package_name=name)
        return registry[name]

    double = MagicMock(spec=NpmDataStore)
    double.get_registry_info = AsyncMock(side_effect=lookup)
    return double


def _invoke(runner: CliRunner, store: MagicMock, *args: str) -> Any:
    with patch("npmkeeper.commands.check.NpmDataStore", return_value=store):
        return runner.invoke(cli, ["check", *args])


# ============================================================================
# Test: command behaviour
# ============================================================================


@pytest.mark.integration
class TestCheckCommand:
    """End-to-end runs of the check command against a fake registry."""

    def test_json_output(self, runner: CliRunner, store: MagicMock, project: Path) -> None:
        """Test the JSON report for the three reference dependencies."""
        result = _invoke(
            runner, store, str(project), "--format", "json", "--sort", "declaration"
        )

        assert result.exit_code == 0, result.output
        data = {entry["name"]: entry for entry in json.loads(result.stdout)}
        assert list(data) == ["@babel/core", "lodash", "express"]

        assert data["@babel/core"]["will_self_upgrade"] is False
        assert data["@babel/core"]["upgrade_type"] == "none"

        assert data["lodash"]["highest_satisfying_version"] == "4.17.21"
        assert data["lodash"]["will_self_upgrade"] is True
        assert data["lodash"]["upgrade_type"] == "patch"

        assert data["express"]["highest_satisfying_version"] == "4.1.2"
        assert data["express"]["upgrade_type"] == "major"
        assert data["express"]["will_self_upgrade"] is False

    def test_default_sort_is_by_date(
        self, runner: CliRunner, store: MagicMock, project: Path
    ) -> None:
        """Test the most recently published latest release comes first."""
        result = _invoke(runner, store, str(project), "--format", "json")

        names = [entry["name"] for entry in json.loads(result.stdout)]
        assert names == ["express", "lodash", "@babel/core"]

    def test_single_package(self, runner: CliRunner, store: MagicMock, project: Path) -> None:
        """Test --package limits the report and the lookups to one dependency."""
        result = _invoke(runner, store, str(project), "--format", "json", "-p", "lodash")

        assert result.exit_code == 0
        assert [e["name"] for e in json.loads(result.stdout)] == ["lodash"]
        store.get_registry_info.assert_awaited_once_with("lodash")

    def test_undeclared_package_is_fatal(
        self, runner: CliRunner, store: MagicMock, project: Path
    ) -> None:
        """Test an undeclared filter exits 1 before any registry lookup."""
        result = _invoke(runner, store, str(project), "--package", "react")

        assert result.exit_code == 1
        assert "not found in dependencies" in result.output
        store.get_registry_info.assert_not_called()

    def test_unreadable_manifest_is_fatal(
        self, runner: CliRunner, store: MagicMock, tmp_path: Path
    ) -> None:
        """Test a missing manifest exits 1."""
        result = _invoke(runner, store, str(tmp_path / "missing" / "package.json"))

        assert result.exit_code == 1
        assert "Could not read" in result.output

    def test_outdated_only(self, runner: CliRunner, store: MagicMock, project: Path) -> None:
        """Test dependencies already at latest are hidden."""
        result = _invoke(
            runner, store, str(project), "--format", "json", "--outdated-only"
        )

        names = {entry["name"] for entry in json.loads(result.stdout)}
        assert names == {"lodash", "express"}

    def test_registry_failure_is_not_fatal(
        self, runner: CliRunner, store: MagicMock, tmp_path: Path
    ) -> None:
        """Test an unknown package degrades its own row and the run succeeds."""
        manifest = tmp_path / "package.json"
        manifest.write_text(
            json.dumps({"dependencies": {"lodash": "^4.17.0", "no-such-pkg": "^1.0.0"}}),
            encoding="utf-8",
        )

        with patch("npmkeeper.core.checker.logger") as mock_logger:
            result = _invoke(runner, store, str(manifest), "--format", "json")

        assert result.exit_code == 0
        mock_logger.warning.assert_called_once()
        data = {entry["name"]: entry for entry in json.loads(result.stdout)}
        assert data["no-such-pkg"]["status"] == "unavailable"
        assert data["no-such-pkg"]["installed_version"] == "unknown"
        assert data["lodash"]["latest_version"] == "4.17.21"

    def test_empty_manifest_json(
        self, runner: CliRunner, store: MagicMock, tmp_path: Path
    ) -> None:
        """Test a manifest without dependencies prints an empty JSON array."""
        manifest = tmp_path / "package.json"
        manifest.write_text(json.dumps({"name": "empty"}), encoding="utf-8")

        result = _invoke(runner, store, str(manifest), "--format", "json")

        assert result.exit_code == 0
        assert json.loads(result.stdout) == []

    def test_table_output(self, runner: CliRunner, store: MagicMock, project: Path) -> None:
        """Test the table view renders and reports the self-upgrade count."""
        result = _invoke(runner, store, str(project))

        assert result.exit_code == 0, result.output
        assert "Dependency Status" in result.output
        assert "1 dependency(ies) will self-upgrade" in result.output

    def test_simple_output(self, runner: CliRunner, store: MagicMock, project: Path) -> None:
        """Test the simple view prints one block per dependency."""
        result = _invoke(runner, store, str(project), "--format", "simple", "-p", "lodash")

        assert result.exit_code == 0
        assert "Declared Range:    ^4.17.0" in result.output
        assert "Highest Matching:  4.17.21" in result.output
        assert "Will Self-Upgrade: Yes" in result.output

    def test_manifest_discovered_from_cwd(
        self,
        runner: CliRunner,
        store: MagicMock,
        project: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test the nearest package.json is used when none is given."""
        monkeypatch.chdir(project.parent)

        result = _invoke(runner, store, "--format", "json")

        assert result.exit_code == 0
        assert len(json.loads(result.stdout)) == 3

    def test_registry_option_passed_to_store(
        self, runner: CliRunner, store: MagicMock, project: Path
    ) -> None:
        """Test --registry reaches the data store."""
        with patch("npmkeeper.commands.check.NpmDataStore", return_value=store) as factory:
            runner.invoke(
                cli,
                ["check", str(project), "-f", "json", "--registry", "https://npm.example.com"],
            )

        assert factory.call_args.kwargs["registry_url"] == "https://npm.example.com"


# ============================================================================
# Test: helpers
# ============================================================================


def _dated(name: str, day: int = 0) -> EvaluationResult:
    date = datetime(2024, 1, day, tzinfo=timezone.utc) if day else None
    return EvaluationResult(name=name, declared_range="*", latest_version_date=date)


@pytest.mark.unit
class TestSortResults:
    """Tests for result ordering."""

    def test_by_date(self) -> None:
        """Test newest first and undated last, in declaration order."""
        results = [_dated("a"), _dated("b", 3), _dated("c", 9), _dated("d")]

        assert [r.name for r in sort_results(results, "date")] == ["c", "b", "a", "d"]

    def test_by_name(self) -> None:
        results = [_dated("react"), _dated("Lodash"), _dated("@babel/core")]

        assert [r.name for r in sort_results(results, "name")] == [
            "@babel/core",
            "Lodash",
            "react",
        ]

    def test_declaration_keeps_order(self) -> None:
        results = [_dated("b", 1), _dated("a", 2)]

        assert sort_results(results, "declaration") == results


@pytest.mark.unit
class TestResolveManifestPath:
    """Tests for manifest path resolution."""

    def test_explicit_path_used(self, tmp_path: Path) -> None:
        path = tmp_path / "package.json"

        assert _resolve_manifest_path(path) == path

    def test_no_manifest_found(self) -> None:
        """Test a failed upward search raises ManifestError."""
        with patch("npmkeeper.commands.check.find_manifest_file", return_value=None):
            with pytest.raises(ManifestError) as exc_info:
                _resolve_manifest_path(None)

        assert "No package.json found" in str(exc_info.value)


# ============================================================================
# Test: rendering details
# ============================================================================


@pytest.mark.integration
class TestRendering:
    """Markup safety and the fetch spinner."""

    @pytest.fixture
    def bracketed(self, tmp_path: Path) -> Path:
        """A manifest whose range text looks like Rich markup."""
        manifest = tmp_path / "package.json"
        manifest.write_text(
            json.dumps({"dependencies": {"lodash": "[bold]^4.17.0"}}),
            encoding="utf-8",
        )
        return manifest

    @pytest.mark.parametrize("output_format", ["table", "simple"])
    def test_range_is_printed_literally(
        self,
        runner: CliRunner,
        store: MagicMock,
        bracketed: Path,
        output_format: str,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test a declared range containing brackets is not parsed as markup."""
        monkeypatch.setenv("COLUMNS", "200")

        result = _invoke(runner, store, str(bracketed), "--format", output_format)

        assert result.exit_code == 0, result.output
        assert "[bold]^4.17.0" in result.output

    @pytest.mark.parametrize(
        "output_format, verbose, shown",
        [
            ("table", [], True),
            ("simple", ["-v"], True),
            ("simple", [], False),
            ("json", [], False),
        ],
    )
    def test_fetch_spinner(
        self,
        runner: CliRunner,
        store: MagicMock,
        project: Path,
        output_format: str,
        verbose: list,
        shown: bool,
    ) -> None:
        """Test the spinner wraps the registry fetch only for human output."""
        with patch(
            "npmkeeper.commands.check.progress_status", return_value=nullcontext()
        ) as spinner:
            with patch("npmkeeper.commands.check.NpmDataStore", return_value=store):
                result = runner.invoke(
                    cli, [*verbose, "check", str(project), "--format", output_format]
                )

        assert result.exit_code == 0, result.output
        spinner.assert_called_once_with("Fetching package information...", enabled=shown)
