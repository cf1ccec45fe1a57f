"""Tests for npmkeeper.context.

Test Coverage:
- Keyword construction and defaults of NpmKeeperContext
- The settings fallback to built-in configuration defaults
- Injection through pass_context, with and without the CLI group
"""

from __future__ import annotations

import logging
from pathlib import Path

import click
import pytest
from click.testing import CliRunner

from npmkeeper.cli import cli
from npmkeeper.config import NpmKeeperConfig
from npmkeeper.constants import DEFAULT_RATE_LIMIT_RETRIES, DEFAULT_SORT
from npmkeeper.context import NpmKeeperContext, pass_context


@click.command()
@pass_context
def _show_context(ctx: NpmKeeperContext) -> None:
    """Echo what a subcommand sees, one field per line."""
    click.echo(f"verbose={ctx.verbose}")
    click.echo(f"color={ctx.color}")
    click.echo(f"loaded={ctx.config is not None}")
    click.echo(f"sort={ctx.settings.sort}")
    click.echo(f"recent_days={ctx.settings.recent_days}")


@pytest.fixture
def group_with_echo_command():
    """Temporarily register the context-echo command on the real group."""
    cli.add_command(_show_context, name="show-context")
    yield cli
    cli.commands.pop("show-context", None)
    logging.getLogger("npmkeeper").handlers.clear()


@pytest.mark.unit
class TestNpmKeeperContext:
    """Tests for NpmKeeperContext construction."""

    def test_defaults(self) -> None:
        ctx = NpmKeeperContext()

        assert ctx.config is None
        assert ctx.config_path is None
        assert ctx.verbose == 0
        assert ctx.color is True

    def test_keyword_construction(self) -> None:
        config = NpmKeeperConfig(sort="name")
        ctx = NpmKeeperContext(
            config=config,
            config_path=Path("npmkeeper.toml"),
            verbose=2,
            color=False,
        )

        assert ctx.config is config
        assert ctx.config_path == Path("npmkeeper.toml")
        assert ctx.verbose == 2
        assert ctx.color is False

    def test_positional_arguments_rejected(self) -> None:
        with pytest.raises(TypeError):
            NpmKeeperContext(NpmKeeperConfig())  # type: ignore[misc]

    def test_slots_prevent_new_attributes(self) -> None:
        with pytest.raises(AttributeError):
            NpmKeeperContext().registry = "https://npm.example.com"  # type: ignore[attr-defined]


@pytest.mark.unit
class TestSettings:
    """Tests for the settings accessor."""

    def test_loaded_config_is_returned(self) -> None:
        config = NpmKeeperConfig(recent_days=3)

        assert NpmKeeperContext(config=config).settings is config

    def test_defaults_without_config(self) -> None:
        """Test a context built outside the group still has usable settings."""
        settings = NpmKeeperContext().settings

        assert settings.sort == DEFAULT_SORT
        assert settings.rate_limit_retries == DEFAULT_RATE_LIMIT_RETRIES
        assert settings.source_path is None


@pytest.mark.unit
class TestPassContext:
    """Tests for pass_context injection."""

    def test_injects_existing_context(self) -> None:
        @click.command()
        @pass_context
        def command(ctx: NpmKeeperContext) -> NpmKeeperContext:
            return ctx

        click_ctx = click.Context(click.Command("test"))
        existing = NpmKeeperContext(verbose=1)
        click_ctx.obj = existing

        assert click_ctx.invoke(command) is existing

    def test_creates_default_when_missing(self) -> None:
        @click.command()
        @pass_context
        def command(ctx: NpmKeeperContext) -> NpmKeeperContext:
            return ctx

        result = click.Context(click.Command("test")).invoke(command)

        assert isinstance(result, NpmKeeperContext)
        assert result.config is None

    def test_group_passes_loaded_config(
        self,
        group_with_echo_command: click.Group,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test options and the config file flow from the group to a command."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("NPMKEEPER_CONFIG", raising=False)
        monkeypatch.setenv("NO_COLOR", "1")
        (tmp_path / "npmkeeper.toml").write_text(
            "[npmkeeper]\nsort = \"declaration\"\nrecent_days = 2\n", encoding="utf-8"
        )

        result = CliRunner().invoke(
            group_with_echo_command, ["--no-color", "show-context"]
        )

        assert result.exit_code == 0, result.output
        assert result.output.splitlines() == [
            "verbose=0",
            "color=False",
            "loaded=True",
            "sort=declaration",
            "recent_days=2",
        ]
