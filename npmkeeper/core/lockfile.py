"""Installed-version lookup for npmkeeper.

Resolves the version actually installed for each declared dependency key.
Sources are consulted in order:

1. ``npm-shrinkwrap.json`` or ``package-lock.json`` (first one present).
   ``lockfileVersion`` 2 and 3 use the flat ``packages`` map keyed by
   ``node_modules/...`` paths; version 1 uses the nested ``dependencies``
   tree.
2. ``node_modules/<name>/package.json`` ``version`` field.

For a nested override key such as ``foo/bar`` the copy nested under ``foo``
is preferred, then the hoisted top-level copy. Keys that cannot be resolved
are left out of the result; callers treat them as ``"unknown"``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from npmkeeper.constants import LOCK_FILES, NODE_MODULES_DIR
from npmkeeper.exceptions import FileOperationError
from npmkeeper.models.dependency import key_segments
from npmkeeper.utils.filesystem import safe_read_file, validate_path
from npmkeeper.utils.logger import get_logger

logger = get_logger("lockfile")

__all__ = ["load_installed_versions", "load_lock_data", "installed_from_lock"]


def load_installed_versions(
    project_dir: Path,
    keys: Iterable[str],
) -> Dict[str, str]:
    """Return the installed version for each resolvable key.

    Args:
        project_dir: Directory containing ``package.json``.
        keys: Flattened dependency keys.

    Returns:
        Mapping from key to installed version string. Keys with no
        installed version are omitted.

    Example::

        >>> load_installed_versions(Path("."), ["react", "foo/bar"])
        {'react': '18.2.0'}
    """
    lock_data = load_lock_data(project_dir)
    installed: Dict[str, str] = {}

    for key in keys:
        version: Optional[str] = None
        if lock_data is not None:
            version = installed_from_lock(lock_data, key)
        if version is None:
            version = _installed_from_node_modules(project_dir, key)

        if version is not None:
            installed[key] = version
        else:
            logger.debug("No installed version found for %s", key)

    return installed


def load_lock_data(project_dir: Path) -> Optional[Dict[str, Any]]:
    """Read the first lock file present in *project_dir*.

    A lock file that cannot be read or parsed is logged and skipped.
    """
    for filename in LOCK_FILES:
        path = project_dir / filename
        if not path.is_file():
            continue

        try:
            data = json.loads(safe_read_file(path))
        except (FileOperationError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable lock file %s: %s", path, exc)
            continue

        if not isinstance(data, dict):
            logger.warning("Ignoring lock file %s: expected a JSON object", path)
            continue

        logger.debug(
            "Using %s (lockfileVersion %s)",
            path,
            data.get("lockfileVersion", 1),
        )
        return data

    return None


def installed_from_lock(lock_data: Mapping[str, Any], key: str) -> Optional[str]:
    """Look up the installed version of *key* in decoded lock data."""
    segments = key_segments(key)

    packages = lock_data.get("packages")
    if isinstance(packages, dict):
        for path in _node_modules_paths(segments):
            version = _version_of(packages.get(path))
            if version is not None:
                return version

    dependencies = lock_data.get("dependencies")
    if isinstance(dependencies, dict):
        return _installed_from_tree(dependencies, segments)

    return None


def _installed_from_tree(
    dependencies: Mapping[str, Any],
    segments: List[str],
) -> Optional[str]:
    """Walk a ``lockfileVersion`` 1 ``dependencies`` tree."""
    node: Any = {"dependencies": dependencies}
    for segment in segments:
        children = node.get("dependencies") if isinstance(node, dict) else None
        if not isinstance(children, dict) or segment not in children:
            node = None
            break
        node = children[segment]

    version = _version_of(node)
    if version is not None or len(segments) == 1:
        return version

    # Fall back to the hoisted copy
    return _version_of(dependencies.get(segments[-1]))


def _installed_from_node_modules(project_dir: Path, key: str) -> Optional[str]:
    """Read the ``version`` of an installed package's own ``package.json``."""
    for relative in _node_modules_paths(key_segments(key)):
        try:
            manifest_path = validate_path(
                project_dir / relative / "package.json",
                base_dir=project_dir,
            )
        except FileOperationError:
            logger.debug("Skipping %s: path escapes the project", relative)
            continue

        if not manifest_path.is_file():
            continue

        try:
            data = json.loads(safe_read_file(manifest_path))
        except (FileOperationError, json.JSONDecodeError) as exc:
            logger.debug("Cannot read %s: %s", manifest_path, exc)
            continue

        version = _version_of(data)
        if version is not None:
            return version

    return None


def _node_modules_paths(segments: List[str]) -> List[str]:
    """Return lock-file package paths for *segments*, most specific first.

    Example::

        >>> _node_modules_paths(["foo", "bar"])
        ['node_modules/foo/node_modules/bar', 'node_modules/bar']
    """
    nested = "/".join(f"{NODE_MODULES_DIR}/{segment}" for segment in segments)
    hoisted = f"{NODE_MODULES_DIR}/{segments[-1]}"
    return [nested] if nested == hoisted else [nested, hoisted]


def _version_of(entry: Any) -> Optional[str]:
    """Return the string ``version`` of a lock or manifest entry."""
    if isinstance(entry, dict):
        version = entry.get("version")
        if isinstance(version, str) and version:
            return version
    return None
