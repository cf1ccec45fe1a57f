"""Manifest reading and declaration flattening for npmkeeper.

Reads a project's ``package.json`` and turns its ``dependencies``,
``devDependencies`` and ``overrides`` sections into one flat mapping from
dependency key to version range.

``overrides`` may nest. Its raw JSON is first parsed into a small tagged
union, :class:`OverrideLeaf` (a range string) or :class:`OverrideBranch`
(a mapping of child nodes), then walked recursively. Nested entries
get ``/``-joined keys so that an override of ``bar`` under ``foo`` cannot
collide with a top-level ``bar``::

    "overrides": {
        "foo": {
            ".": "1.0.0",       -> "foo":     "1.0.0"
            "bar": "2.0.0"      -> "foo/bar": "2.0.0"
        },
        "baz": "$baz"           -> "baz": range declared for baz
    }

Typical usage::

    manifest = load_manifest(Path("package.json"))
    declared = flatten_declarations(manifest)
"""

from __future__ import annotations

import json
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple, Union

from npmkeeper.exceptions import FileOperationError, ManifestError
from npmkeeper.utils.filesystem import safe_read_file
from npmkeeper.utils.logger import get_logger
from npmkeeper.constants import (
    DEPENDENCIES_SECTION,
    DEV_DEPENDENCIES_SECTION,
    OVERRIDE_PATH_SEPARATOR,
    OVERRIDE_REFERENCE_PREFIX,
    OVERRIDE_SELF_KEY,
    OVERRIDES_SECTION,
)

logger = get_logger("manifest")

__all__ = [
    "Manifest",
    "OverrideBranch",
    "OverrideLeaf",
    "OverrideNode",
    "flatten_declarations",
    "flatten_overrides",
    "load_manifest",
    "parse_manifest",
    "parse_override_node",
]


# ---------------------------------------------------------------------------
# Override tree
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OverrideLeaf:
    """A version range pinned by an override."""

    version_range: str


@dataclass(frozen=True)
class OverrideBranch:
    """Overrides scoped under a parent package.

    Attributes:
        children: Child nodes keyed by package name; the ``"."`` key
            targets the parent package itself.
    """

    children: Mapping[str, "OverrideNode"] = field(default_factory=dict)


OverrideNode = Union[OverrideLeaf, OverrideBranch]


# ---------------------------------------------------------------------------
# Manifest container
# ---------------------------------------------------------------------------


@dataclass
class Manifest:
    """Dependency declarations read from ``package.json``.

    Attributes:
        dependencies: Runtime dependency ranges, in file order.
        dev_dependencies: Development dependency ranges, in file order.
        overrides: Parsed override tree keyed by top-level package.
        name: The project's own ``name`` field, if any.
        source_path: File the manifest was read from.
    """

    dependencies: Dict[str, str] = field(default_factory=dict)
    dev_dependencies: Dict[str, str] = field(default_factory=dict)
    overrides: Dict[str, OverrideNode] = field(default_factory=dict)
    name: Optional[str] = None
    source_path: Optional[Path] = field(default=None, repr=False)


def load_manifest(path: Path) -> Manifest:
    """Read and parse a ``package.json`` file.

    Args:
        path: Path to the manifest.

    Returns:
        The parsed :class:`Manifest`.

    Raises:
        ManifestError: The file cannot be read, is not valid JSON, or has
            an invalid shape. This is fatal for the whole run.
    """
    try:
        text = safe_read_file(path)
    except FileOperationError as exc:
        raise ManifestError(
            f"Could not read '{path}'. Ensure the file exists and is readable",
            file_path=str(path),
        ) from exc

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ManifestError(
            f"Could not parse '{path}': {exc.msg} at line {exc.lineno}",
            file_path=str(path),
        ) from exc

    manifest = parse_manifest(raw, file_path=str(path))
    manifest.source_path = Path(path)

    logger.debug(
        "Loaded %s: %d dependencies, %d devDependencies, %d overrides",
        path,
        len(manifest.dependencies),
        len(manifest.dev_dependencies),
        len(manifest.overrides),
    )
    return manifest


def parse_manifest(raw: Any, *, file_path: Optional[str] = None) -> Manifest:
    """Build a :class:`Manifest` from decoded ``package.json`` data.

    Raises:
        ManifestError: *raw* is not an object, or a dependency section is
            not an object.
    """
    if not isinstance(raw, dict):
        raise ManifestError(
            "Manifest must be a JSON object",
            file_path=file_path,
        )

    dependencies = _parse_range_section(raw, DEPENDENCIES_SECTION, file_path)
    dev_dependencies = _parse_range_section(raw, DEV_DEPENDENCIES_SECTION, file_path)

    overrides_raw = _get_section(raw, OVERRIDES_SECTION, file_path)
    overrides: Dict[str, OverrideNode] = {}
    for name, value in overrides_raw.items():
        node = parse_override_node(value, path=name)
        if node is not None:
            overrides[name] = node

    project_name = raw.get("name")

    return Manifest(
        dependencies=dependencies,
        dev_dependencies=dev_dependencies,
        overrides=overrides,
        name=project_name if isinstance(project_name, str) else None,
    )


def parse_override_node(value: Any, *, path: str = "") -> Optional[OverrideNode]:
    """Convert raw override JSON into the tagged override tree.

    Strings become :class:`OverrideLeaf`, objects become
    :class:`OverrideBranch`. Anything else is skipped with a warning and
    yields ``None``.
    """
    if isinstance(value, str):
        return OverrideLeaf(value)

    if isinstance(value, dict):
        children: Dict[str, OverrideNode] = {}
        for key, child_value in value.items():
            child_path = f"{path}{OVERRIDE_PATH_SEPARATOR}{key}" if path else key
            child = parse_override_node(child_value, path=child_path)
            if child is not None:
                children[key] = child
        return OverrideBranch(children)

    logger.warning(
        "Ignoring override '%s': expected a string or object, got %s",
        path,
        type(value).__name__,
    )
    return None


# ---------------------------------------------------------------------------
# Flattening
# ---------------------------------------------------------------------------


def flatten_declarations(
    manifest: Manifest,
    *,
    include_dev: bool = True,
    include_overrides: bool = True,
) -> Dict[str, str]:
    """Merge the manifest's sections into one flat key → range mapping.

    Sections merge in the order ``dependencies``, ``devDependencies``,
    ``overrides``; a later section replaces the range of an earlier key
    while the key keeps its first position.

    Args:
        manifest: Parsed manifest.
        include_dev: Merge ``devDependencies``.
        include_overrides: Merge flattened ``overrides``.

    Returns:
        Ordered mapping from dependency key to version range.

    Example::

        >>> m = parse_manifest({
        ...     "dependencies": {"a": "^1.0.0"},
        ...     "overrides": {"b": {"c": "2.0.0"}},
        ... })
        >>> flatten_declarations(m)
        {'a': '^1.0.0', 'b/c': '2.0.0'}
    """
    declared: Dict[str, str] = dict(manifest.dependencies)

    if include_dev:
        declared.update(manifest.dev_dependencies)

    if include_overrides:
        references = {**manifest.dependencies, **manifest.dev_dependencies}
        declared.update(flatten_overrides(manifest.overrides, references))

    return declared


def flatten_overrides(
    overrides: Mapping[str, OverrideNode],
    references: Mapping[str, str],
) -> Dict[str, str]:
    """Flatten an override tree into ``/``-joined keys.

    Args:
        overrides: Top-level override nodes.
        references: Declared ranges used to resolve ``$name`` values.
    """
    flat: Dict[str, str] = {}
    for name, node in overrides.items():
        for key, version_range in _walk(name, node):
            flat[key] = _resolve_reference(key, version_range, references)
    return flat


def _walk(prefix: str, node: OverrideNode) -> Iterator[Tuple[str, str]]:
    """Yield ``(key, range)`` pairs for *node* rooted at *prefix*."""
    if isinstance(node, OverrideLeaf):
        yield prefix, node.version_range
        return

    for key, child in node.children.items():
        if key == OVERRIDE_SELF_KEY:
            yield from _walk(prefix, child)
        else:
            yield from _walk(f"{prefix}{OVERRIDE_PATH_SEPARATOR}{key}", child)


def _resolve_reference(
    key: str,
    version_range: str,
    references: Mapping[str, str],
) -> str:
    """Replace a ``$name`` override value with the range declared for *name*."""
    if not version_range.startswith(OVERRIDE_REFERENCE_PREFIX):
        return version_range

    target = version_range[len(OVERRIDE_REFERENCE_PREFIX):]
    if target in references:
        return references[target]

    logger.warning(
        "Override '%s' references '%s', which is not a declared dependency",
        key,
        target,
    )
    return version_range


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_section(
    raw: Mapping[str, Any],
    section: str,
    file_path: Optional[str],
) -> Mapping[str, Any]:
    """Return a manifest section as a mapping (empty when absent)."""
    value = raw.get(section)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ManifestError(
            f"'{section}' must be an object, got {type(value).__name__}",
            file_path=file_path,
            section=section,
        )
    return value


def _parse_range_section(
    raw: Mapping[str, Any],
    section: str,
    file_path: Optional[str],
) -> Dict[str, str]:
    """Return the string-valued entries of a dependency section."""
    ranges: Dict[str, str] = {}
    for name, value in _get_section(raw, section, file_path).items():
        if not isinstance(value, str):
            logger.warning(
                "Ignoring %s entry '%s': expected a version string, got %s",
                section,
                name,
                type(value).__name__,
            )
            continue
        ranges[name] = value
    return ranges
