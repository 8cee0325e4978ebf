"""TOML reading utilities.

Uses tomlkit to read pyproject.toml files: the root manifest (workspace
members, [tool.lazy-select] settings) and one manifest per workspace.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomlkit
from packaging.utils import canonicalize_name
from tomlkit.exceptions import TOMLKitError

from .errors import ManifestParseError

TOOL_NAME = "lazy-select"


def load_pyproject(path: Path) -> tomlkit.TOMLDocument:
    """Load and parse a pyproject.toml file.

    Raises:
        ManifestParseError: If the file cannot be read or is not valid TOML.
    """
    try:
        return tomlkit.parse(path.read_text())
    except (OSError, UnicodeDecodeError, TOMLKitError) as exc:
        raise ManifestParseError(str(path), str(exc)) from exc


def _table(parent: Any, *keys: str) -> dict[str, Any]:
    """Walk nested tables, treating missing ones as empty.

    Raises:
        TypeError: If a value on the way is present but not a table.
    """
    table = parent
    for depth, key in enumerate(keys):
        table = table.get(key, {})
        if not isinstance(table, dict):
            where = ".".join(keys[: depth + 1])
            raise TypeError(f"[{where}] must be a table, got {type(table).__name__}")
    return table


def _string_list(table: dict[str, Any], key: str, where: str) -> list[str]:
    value = table.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise TypeError(f"{where}.{key} must be an array of strings, got {value!r}")
    return [str(v) for v in value]


def get_project_name(doc: tomlkit.TOMLDocument, fallback: str) -> str:
    """Extract the canonical package name from [project].name.

    Names are normalized per PEP 503 (lowercase, hyphens instead of
    underscores) for consistent comparison.

    Args:
        doc: Parsed pyproject.toml document.
        fallback: Value to use if name is not specified.

    Raises:
        TypeError: If [project] is not a table or its name is not a string.
    """
    name = _table(doc, "project").get("name", fallback)
    if not isinstance(name, str):
        raise TypeError(
            f"[project].name must be a string, got {type(name).__name__}"
        )
    return canonicalize_name(name)


def get_project_version(doc: tomlkit.TOMLDocument) -> str:
    """Extract version from [project].version, defaulting to '0.0.0'."""
    return str(_table(doc, "project").get("version", "0.0.0"))


def get_all_dependency_strings(doc: tomlkit.TOMLDocument) -> list[str]:
    """Collect all dependency strings from a pyproject.toml.

    Gathers dependencies from three locations:
    - [project].dependencies (main runtime deps)
    - [project].optional-dependencies.* (extras like [dev], [test])
    - [dependency-groups].* (PEP 735 dependency groups)

    Returns raw PEP 508 strings like "requests>=2.0" or "pkg[extra]~=1.0".
    PEP 735 group includes ({include-group = "..."}) are skipped.

    Raises:
        TypeError: If a dependency list is not a list, or a table holding
            them is not a table.
    """
    project = _table(doc, "project")
    groups: list[Any] = [project.get("dependencies", [])]
    groups.extend(_table(project, "optional-dependencies").values())
    groups.extend(_table(doc, "dependency-groups").values())

    deps: list[str] = []
    for group in groups:
        if not isinstance(group, list):
            raise TypeError(f"dependency list must be an array, got {group!r}")
        deps.extend(str(dep) for dep in group if not isinstance(dep, dict))
    return deps


def get_workspace_member_globs(doc: tomlkit.TOMLDocument) -> list[str]:
    """Extract workspace member glob patterns from [tool.uv.workspace].

    These patterns (e.g., "packages/*", "libs/*") define which directories
    contain workspace packages. Returns an empty list when the root does not
    declare a uv workspace.

    Raises:
        TypeError: If members is not an array of strings.
    """
    workspace = _table(doc, "tool", "uv", "workspace")
    return _string_list(workspace, "members", "[tool.uv.workspace]")


def get_workspace_exclude_globs(doc: tomlkit.TOMLDocument) -> list[str]:
    """Extract [tool.uv.workspace].exclude glob patterns."""
    workspace = _table(doc, "tool", "uv", "workspace")
    return _string_list(workspace, "exclude", "[tool.uv.workspace]")


def get_workspace_sources(doc: tomlkit.TOMLDocument) -> list[str]:
    """Names declared as `{ workspace = true }` in [tool.uv.sources].

    These must resolve to another workspace; anything else is a dangling
    reference.
    """
    sources = _table(doc, "tool", "uv", "sources")
    return [
        canonicalize_name(name)
        for name, source in sources.items()
        if isinstance(source, dict) and bool(source.get("workspace", False))
    ]


def get_tool_table(doc: tomlkit.TOMLDocument) -> dict[str, Any]:
    """Return the [tool.lazy-select] table as plain Python values.

    Raises:
        TypeError: If [tool] or [tool.lazy-select] is not a table.
    """
    table = _table(doc, "tool", TOOL_NAME)
    return table.unwrap() if hasattr(table, "unwrap") else dict(table)
