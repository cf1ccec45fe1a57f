"""
CLI subcommands for npmkeeper.

Each module defines one Click command that :mod:`npmkeeper.cli` registers on
the ``npmkeeper`` group.
"""
