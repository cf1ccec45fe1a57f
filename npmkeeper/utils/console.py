"""
Terminal output for npmkeeper, built on Rich.

Everything the user is meant to read goes through the shared console
returned by :func:`get_raw_console`; diagnostics go through
:mod:`npmkeeper.utils.logger` instead.

Report cells are Rich markup strings. Helpers here build that markup from
theme style names (``upgrade.major``, ``verdict.yes``...) so the check
command never hard codes colors, and :func:`print_table` renders rows
against a fixed list of :class:`TableColumn` definitions.
"""

from __future__ import annotations

import os
import sys
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Any, ContextManager, Dict, Mapping, Optional, Sequence

from rich.table import Table
from rich.theme import Theme
from rich.markup import escape
from rich.console import Console, JustifyMethod

NPMKEEPER_THEME = Theme(
    {
        "success": "bold green",
        "error": "bold red",
        "warning": "bold yellow",
        "info": "bold cyan",
        "dim": "dim",
        "highlight": "bold magenta",
        "upgrade.major": "red",
        "upgrade.minor": "yellow",
        "upgrade.patch": "green",
        "upgrade.none": "dim",
        "upgrade.unknown": "dim",
        "verdict.yes": "green",
        "verdict.no": "red",
    }
)

_STATUS_PREFIXES: Dict[str, str] = {
    "success": "[OK]",
    "error": "[ERROR]",
    "warning": "[WARNING]",
}

_console: Optional[Console] = None


def _should_use_color() -> bool:
    """Colors are off under ``NO_COLOR``, under ``CI``, and off a TTY."""
    if os.environ.get("NO_COLOR") or os.environ.get("CI"):
        return False
    try:
        return sys.stdout.isatty()
    except (AttributeError, OSError):
        return False


def _get_console() -> Console:
    global _console

    if _console is None:
        use_color = _should_use_color()
        _console = Console(
            theme=NPMKEEPER_THEME,
            no_color=not use_color,
            highlight=use_color,
        )
    return _console


def reconfigure_console() -> None:
    """Drop the shared console so the next use re-reads ``NO_COLOR``."""
    global _console
    _console = None


def get_raw_console() -> Console:
    """Return the shared Rich console."""
    return _get_console()


# ---------------------------------------------------------------------------
# Status lines
# ---------------------------------------------------------------------------


def _print_status(kind: str, message: str, prefix: Optional[str]) -> None:
    label = _STATUS_PREFIXES[kind] if prefix is None else prefix
    _get_console().print(f"{escape(label)} {message}", style=kind)


def print_success(message: str, *, prefix: Optional[str] = None) -> None:
    _print_status("success", message, prefix)


def print_error(message: str, *, prefix: Optional[str] = None) -> None:
    _print_status("error", message, prefix)


def print_warning(message: str, *, prefix: Optional[str] = None) -> None:
    _print_status("warning", message, prefix)


def progress_status(message: str, *, enabled: bool = True) -> ContextManager[Any]:
    """Return a spinner showing *message* while a slow step runs.

    With *enabled* false a no-op context is returned, so machine-readable
    output is never interleaved with spinner frames.
    """
    if not enabled:
        return nullcontext()
    return _get_console().status(f"[info]{escape(message)}[/info]", spinner="dots")


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TableColumn:
    """One column of a report table.

    Attributes:
        header: Column title.
        key: Row key holding the cell markup; defaults to *header*.
        style: Rich style applied to the whole column.
        justify: Horizontal alignment of the cells.
        no_wrap: Keep cells on one line.
    """

    header: str
    key: Optional[str] = None
    style: Optional[str] = None
    justify: JustifyMethod = "left"
    no_wrap: bool = False

    @property
    def row_key(self) -> str:
        return self.key or self.header


def print_table(
    rows: Sequence[Mapping[str, Any]],
    columns: Optional[Sequence[TableColumn]] = None,
    *,
    title: Optional[str] = None,
    caption: Optional[str] = None,
) -> None:
    """Render *rows* as a Rich table.

    Cells are looked up by each column's :attr:`TableColumn.row_key`;
    missing cells render empty. Without *columns* every key of the first
    row becomes a plain column. Nothing is printed for an empty *rows*.
    """
    if not rows:
        return

    if columns is None:
        columns = [TableColumn(header=key) for key in rows[0]]

    table = Table(title=title, caption=caption, header_style="bold")
    for column in columns:
        table.add_column(
            column.header,
            style=column.style,
            justify=column.justify,
            no_wrap=column.no_wrap,
            overflow="fold",
        )

    for row in rows:
        table.add_row(*(str(row.get(column.row_key, "")) for column in columns))

    _get_console().print(table)


# ---------------------------------------------------------------------------
# Markup helpers
# ---------------------------------------------------------------------------


def styled(text: str, style: str) -> str:
    """Wrap escaped *text* in a Rich style tag."""
    return f"[{style}]{escape(text)}[/{style}]"


def colorize_update_type(update_type: str) -> str:
    """Markup an upgrade classification with its ``upgrade.*`` theme style.

    Labels outside the known classifications are returned escaped and
    unstyled.
    """
    style = f"upgrade.{update_type.lower()}"
    if style not in NPMKEEPER_THEME.styles:
        return escape(update_type)
    return styled(update_type, style)


def colorize_verdict(value: bool) -> str:
    """Markup a self-upgrade verdict as ``Yes`` or ``No``."""
    return styled("Yes", "verdict.yes") if value else styled("No", "verdict.no")


def create_hyperlink(label: str, url: Optional[str]) -> str:
    """Markup *label* as a terminal hyperlink to *url*.

    Terminals without OSC 8 support show the plain label.
    """
    if not url:
        return escape(label)
    return f"[link={url}]{escape(label)}[/link]"
