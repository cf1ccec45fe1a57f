"""
Per-invocation state shared by the npmkeeper CLI group and its commands.

The ``npmkeeper`` group builds one :class:`NpmKeeperContext` from the global
options and the loaded configuration file, stores it as ``ctx.obj``, and
commands receive it through :data:`pass_context`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from npmkeeper.config import NpmKeeperConfig


class NpmKeeperContext:
    """Global options and configuration for one CLI invocation.

    Attributes:
        config: Configuration loaded by the group, or ``None`` when a command
            runs without it (for example when invoked directly in tests).
        config_path: File the configuration came from, if any.
        verbose: Number of ``-v`` flags (0=WARNING, 1=INFO, 2+=DEBUG).
        color: Whether colored terminal output is enabled.
    """

    __slots__ = ("config", "config_path", "verbose", "color")

    def __init__(
        self,
        *,
        config: Optional[NpmKeeperConfig] = None,
        config_path: Optional[Path] = None,
        verbose: int = 0,
        color: bool = True,
    ) -> None:
        self.config = config
        self.config_path = config_path
        self.verbose = verbose
        self.color = color

    @property
    def settings(self) -> NpmKeeperConfig:
        """The loaded configuration, falling back to built-in defaults."""
        return self.config if self.config is not None else NpmKeeperConfig()


#: Inject the invocation's :class:`NpmKeeperContext`, creating a default one
#: when the group did not run.
pass_context = click.make_pass_decorator(NpmKeeperContext, ensure=True)
