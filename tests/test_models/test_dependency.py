"""Unit tests for npmkeeper.models.dependency module.

Test Coverage:
- Splitting flattened keys into package names, including scoped names
- DependencyRecord construction from registry snapshots
- EvaluationResult status, recency and JSON serialization
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from npmkeeper.models import (
    DependencyRecord,
    EvaluationResult,
    RegistryInfo,
    UpgradeType,
    key_segments,
    registry_name,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _result(**overrides) -> EvaluationResult:
    values = dict(
        name="lodash",
        declared_range="^4.17.0",
        highest_satisfying_version="4.17.21",
        installed_version="4.17.0",
        latest_version="4.17.21",
        latest_version_date=datetime(2024, 5, 30, tzinfo=timezone.utc),
        upgrade_type=UpgradeType.PATCH,
        will_self_upgrade=True,
    )
    values.update(overrides)
    return EvaluationResult(**values)


# ============================================================================
# Test: key helpers
# ============================================================================


@pytest.mark.unit
class TestKeySegments:
    """Tests for key_segments and registry_name."""

    @pytest.mark.parametrize(
        "key, segments",
        [
            ("react", ["react"]),
            ("@babel/core", ["@babel/core"]),
            ("foo/bar", ["foo", "bar"]),
            ("webpack/@babel/core", ["webpack", "@babel/core"]),
            ("@scope/a/@scope/b/c", ["@scope/a", "@scope/b", "c"]),
        ],
    )
    def test_segments(self, key: str, segments: list) -> None:
        """Test scope segments are re-joined with the following name."""
        assert key_segments(key) == segments

    def test_dangling_scope_kept(self) -> None:
        """Test a trailing scope without a name is kept as its own segment."""
        assert key_segments("foo/@scope") == ["foo", "@scope"]

    @pytest.mark.parametrize(
        "key, name",
        [
            ("react", "react"),
            ("@babel/core", "@babel/core"),
            ("webpack/@babel/core", "@babel/core"),
            ("foo/bar", "bar"),
        ],
    )
    def test_registry_name(self, key: str, name: str) -> None:
        """Test the registry name is the last package in the key."""
        assert registry_name(key) == name


# ============================================================================
# Test: DependencyRecord
# ============================================================================


@pytest.mark.unit
class TestDependencyRecord:
    """Tests for DependencyRecord.from_registry."""

    def test_from_registry(self) -> None:
        """Test registry fields are copied onto the record."""
        published = datetime(2021, 2, 20, tzinfo=timezone.utc)
        info = RegistryInfo(("4.17.0", "4.17.21"), "4.17.21", published)

        record = DependencyRecord.from_registry("lodash", "^4.17.0", "4.17.0", info)

        assert record.installed_version == "4.17.0"
        assert record.latest_version == "4.17.21"
        assert record.latest_version_date == published
        assert record.available_versions == ("4.17.0", "4.17.21")

    def test_missing_registry_info(self) -> None:
        """Test a missing snapshot leaves registry fields absent."""
        record = DependencyRecord.from_registry("lodash", "^4.17.0", None, None)

        assert record.installed_version == "unknown"
        assert record.latest_version is None
        assert record.available_versions == ()

    def test_package_name(self) -> None:
        record = DependencyRecord(name="webpack/@babel/core", declared_range="7.5.0")

        assert record.package_name == "@babel/core"


# ============================================================================
# Test: EvaluationResult
# ============================================================================


@pytest.mark.unit
class TestEvaluationResult:
    """Tests for EvaluationResult helpers."""

    @pytest.mark.parametrize(
        "upgrade_type, expected",
        [
            (UpgradeType.MAJOR, True),
            (UpgradeType.MINOR, True),
            (UpgradeType.PATCH, True),
            (UpgradeType.NONE, False),
            (UpgradeType.UNKNOWN, False),
        ],
    )
    def test_needs_upgrade(self, upgrade_type: UpgradeType, expected: bool) -> None:
        assert _result(upgrade_type=upgrade_type).needs_upgrade() is expected

    def test_is_installed_known(self) -> None:
        assert _result().is_installed_known is True
        assert _result(installed_version="unknown").is_installed_known is False

    def test_recently_published(self) -> None:
        """Test a release two days old counts as recent within a week."""
        assert _result().is_recently_published(NOW, 7) is True

    def test_not_recent(self) -> None:
        """Test a release older than the window is not recent."""
        old = NOW - timedelta(days=30)

        assert _result(latest_version_date=old).is_recently_published(NOW, 7) is False

    def test_window_boundary_inclusive(self) -> None:
        """Test a release exactly at the window edge is recent."""
        edge = NOW - timedelta(days=7)

        assert _result(latest_version_date=edge).is_recently_published(NOW, 7) is True

    def test_future_date_not_recent(self) -> None:
        """Test a publish time after now is never recent."""
        future = NOW + timedelta(hours=1)

        assert _result(latest_version_date=future).is_recently_published(NOW, 7) is False

    def test_naive_dates_treated_as_utc(self) -> None:
        naive = datetime(2024, 5, 31)

        assert _result(latest_version_date=naive).is_recently_published(NOW, 7) is True

    def test_no_date_not_recent(self) -> None:
        assert _result(latest_version_date=None).is_recently_published(NOW, 7) is False

    @pytest.mark.parametrize(
        "overrides, status",
        [
            ({}, "self-upgrade"),
            ({"will_self_upgrade": False, "upgrade_type": UpgradeType.MAJOR}, "outdated"),
            ({"will_self_upgrade": False, "upgrade_type": UpgradeType.NONE}, "latest"),
            (
                {
                    "will_self_upgrade": False,
                    "installed_version": "unknown",
                    "upgrade_type": UpgradeType.UNKNOWN,
                },
                "unknown",
            ),
            ({"latest_version": None, "will_self_upgrade": False}, "unavailable"),
        ],
    )
    def test_status_summary(self, overrides: dict, status: str) -> None:
        """Test the headline status for each kind of result."""
        assert _result(**overrides).get_status_summary()[0] == status

    def test_status_summary_placeholders(self) -> None:
        """Test missing versions are shown as placeholders."""
        result = _result(
            highest_satisfying_version=None,
            latest_version=None,
            will_self_upgrade=False,
        )

        assert result.get_status_summary() == ("unavailable", "4.17.0", "none", "error")

    def test_to_json(self) -> None:
        """Test the JSON view of a complete result."""
        data = _result().to_json()

        assert data == {
            "name": "lodash",
            "status": "self-upgrade",
            "declared_range": "^4.17.0",
            "installed_version": "4.17.0",
            "highest_satisfying_version": "4.17.21",
            "latest_version": "4.17.21",
            "latest_version_date": "2024-05-30T00:00:00+00:00",
            "upgrade_type": "patch",
            "will_self_upgrade": True,
        }

    def test_to_json_nested_key_names_package(self) -> None:
        """Test override keys report the registry package separately."""
        data = _result(name="webpack/lodash").to_json()

        assert data["name"] == "webpack/lodash"
        assert data["package"] == "lodash"

    def test_to_json_unavailable(self) -> None:
        """Test a result without registry data carries an error entry."""
        data = _result(
            latest_version=None,
            latest_version_date=None,
            highest_satisfying_version=None,
            upgrade_type=UpgradeType.UNKNOWN,
            will_self_upgrade=False,
        ).to_json()

        assert data["status"] == "unavailable"
        assert data["error"] == "Package information unavailable"
        assert data["latest_version_date"] is None

    def test_str(self) -> None:
        assert str(_result()) == (
            "lodash ^4.17.0 (installed: 4.17.0, latest: 4.17.21, self-upgrades)"
        )
