"""Unit tests for npmkeeper.core.lockfile module.

Test Coverage:
- Installed versions from the ``packages`` map and the v1 ``dependencies`` tree
- Lock file selection and unreadable lock files
- The node_modules fallback and the unknown sentinel
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

import pytest

from npmkeeper.core.lockfile import (
    installed_from_lock,
    load_installed_versions,
    load_lock_data,
)


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


@pytest.fixture
def lock_v3() -> Dict[str, Any]:
    """A lockfileVersion 3 document with a nested copy of bar."""
    return {
        "lockfileVersion": 3,
        "packages": {
            "": {"name": "my-app"},
            "node_modules/react": {"version": "18.2.0"},
            "node_modules/@babel/core": {"version": "7.6.3"},
            "node_modules/bar": {"version": "1.0.0"},
            "node_modules/foo/node_modules/bar": {"version": "2.0.0"},
        },
    }


@pytest.fixture
def lock_v1() -> Dict[str, Any]:
    """A lockfileVersion 1 document with a nested dependency tree."""
    return {
        "lockfileVersion": 1,
        "dependencies": {
            "react": {"version": "16.14.0"},
            "bar": {"version": "1.0.0"},
            "foo": {
                "version": "3.0.0",
                "dependencies": {"bar": {"version": "2.5.0"}},
            },
        },
    }


@pytest.mark.unit
class TestInstalledFromLock:
    """Tests for looking up keys in decoded lock data."""

    def test_top_level_package(self, lock_v3: Dict[str, Any]) -> None:
        """Test a plain key resolves through node_modules/<name>."""
        assert installed_from_lock(lock_v3, "react") == "18.2.0"

    def test_scoped_package(self, lock_v3: Dict[str, Any]) -> None:
        """Test a scoped key keeps its slash."""
        assert installed_from_lock(lock_v3, "@babel/core") == "7.6.3"

    def test_nested_key_prefers_nested_copy(self, lock_v3: Dict[str, Any]) -> None:
        """Test an override key resolves the nested install first."""
        assert installed_from_lock(lock_v3, "foo/bar") == "2.0.0"

    def test_nested_key_falls_back_to_hoisted(self, lock_v3: Dict[str, Any]) -> None:
        """Test an override key uses the hoisted copy when not nested."""
        assert installed_from_lock(lock_v3, "baz/bar") == "1.0.0"

    def test_missing_package(self, lock_v3: Dict[str, Any]) -> None:
        """Test an absent package yields None."""
        assert installed_from_lock(lock_v3, "vue") is None

    def test_v1_tree(self, lock_v1: Dict[str, Any]) -> None:
        """Test the legacy dependencies tree is walked."""
        assert installed_from_lock(lock_v1, "react") == "16.14.0"
        assert installed_from_lock(lock_v1, "foo/bar") == "2.5.0"
        assert installed_from_lock(lock_v1, "qux/bar") == "1.0.0"
        assert installed_from_lock(lock_v1, "vue") is None


@pytest.mark.unit
class TestLoadLockData:
    """Tests for locating and reading the lock file."""

    def test_no_lock_file(self, tmp_path: Path) -> None:
        """Test None when the project has no lock file."""
        assert load_lock_data(tmp_path) is None

    def test_shrinkwrap_preferred(self, tmp_path: Path) -> None:
        """Test npm-shrinkwrap.json wins over package-lock.json."""
        _write_json(tmp_path / "npm-shrinkwrap.json", {"lockfileVersion": 3, "packages": {}})
        _write_json(tmp_path / "package-lock.json", {"lockfileVersion": 2})

        data = load_lock_data(tmp_path)

        assert data is not None
        assert data["lockfileVersion"] == 3

    def test_corrupt_lock_file_skipped(self, tmp_path: Path) -> None:
        """Test an unparseable lock file is ignored, not fatal."""
        (tmp_path / "package-lock.json").write_text("{oops", encoding="utf-8")

        assert load_lock_data(tmp_path) is None

    def test_non_object_lock_file_skipped(self, tmp_path: Path) -> None:
        """Test a lock file that is not an object is ignored."""
        _write_json(tmp_path / "package-lock.json", ["not", "an", "object"])

        assert load_lock_data(tmp_path) is None


@pytest.mark.unit
class TestLoadInstalledVersions:
    """Tests for resolving installed versions for declared keys."""

    def test_lock_file_versions(self, tmp_path: Path, lock_v3: Dict[str, Any]) -> None:
        """Test keys found in the lock file resolve; others are omitted."""
        _write_json(tmp_path / "package-lock.json", lock_v3)

        installed = load_installed_versions(tmp_path, ["react", "foo/bar", "vue"])

        assert installed == {"react": "18.2.0", "foo/bar": "2.0.0"}

    def test_node_modules_fallback(self, tmp_path: Path) -> None:
        """Test installed package.json files are used without a lock file."""
        _write_json(tmp_path / "node_modules" / "react" / "package.json", {"version": "17.0.2"})
        _write_json(
            tmp_path / "node_modules" / "@types" / "node" / "package.json",
            {"version": "20.1.0"},
        )

        installed = load_installed_versions(tmp_path, ["react", "@types/node", "vue"])

        assert installed == {"react": "17.0.2", "@types/node": "20.1.0"}

    def test_lock_file_wins_over_node_modules(
        self, tmp_path: Path, lock_v3: Dict[str, Any]
    ) -> None:
        """Test the lock file is consulted before node_modules."""
        _write_json(tmp_path / "package-lock.json", lock_v3)
        _write_json(tmp_path / "node_modules" / "react" / "package.json", {"version": "1.0.0"})

        assert load_installed_versions(tmp_path, ["react"]) == {"react": "18.2.0"}
