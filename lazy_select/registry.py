"""Workspace registry: find every workspace and its internal dependencies.

Workspaces are the directories listed by [tool.uv.workspace].members in the
root pyproject.toml. Repositories without a uv workspace table are walked
instead, and every nested pyproject.toml becomes a workspace. Directories in
the configured ignore list are skipped in both modes.

Discovery is fail-fast: a malformed manifest, a duplicate name or a dangling
workspace reference aborts the whole run, because a missing workspace would
silently drop dependency edges later on.
"""

from __future__ import annotations

import fnmatch
import glob
import logging
import os
import shlex
from pathlib import Path
from typing import Any

from packaging.requirements import InvalidRequirement

from .config import RepoContext
from .deps import internal_deps
from .errors import (
    DanglingDependencyError,
    DuplicateWorkspaceError,
    ManifestParseError,
    WorkspaceOverlapError,
)
from .models import Workspace, WorkspaceKind
from .toml import (
    get_all_dependency_strings,
    get_project_name,
    get_project_version,
    get_tool_table,
    get_workspace_exclude_globs,
    get_workspace_member_globs,
    get_workspace_sources,
    load_pyproject,
)

logger = logging.getLogger(__name__)

MANIFEST = "pyproject.toml"


def _is_ignored(rel: Path, ignore: list[str]) -> bool:
    return any(part in ignore for part in rel.parts)


def find_member_dirs(ctx: RepoContext) -> list[Path]:
    """List workspace directories below ctx.root, sorted by path.

    Uses [tool.uv.workspace].members/exclude when the root declares them,
    otherwise every directory holding a pyproject.toml.
    """
    root = ctx.root
    ignore = ctx.settings.ignore
    root_manifest = root / MANIFEST
    member_globs: list[str] = []
    exclude_globs: list[str] = []
    if root_manifest.exists():
        root_doc = load_pyproject(root_manifest)
        try:
            member_globs = get_workspace_member_globs(root_doc)
            exclude_globs = get_workspace_exclude_globs(root_doc)
        except TypeError as exc:
            raise ManifestParseError(str(root_manifest), str(exc)) from exc

    found: set[Path] = set()
    if member_globs:
        # Expand globs to find all package directories
        for pattern in member_globs:
            for match in glob.glob(str(root / pattern)):
                p = Path(match)
                rel = p.relative_to(root)
                if p == root or _is_ignored(rel, ignore):
                    continue
                if any(fnmatch.fnmatch(rel.as_posix(), ex) for ex in exclude_globs):
                    continue
                if (p / MANIFEST).is_file():
                    found.add(p)
    else:
        for dirpath, dirnames, filenames in os.walk(root):
            # Prune ignored directories in place so os.walk skips them
            dirnames[:] = sorted(d for d in dirnames if d not in ignore)
            p = Path(dirpath)
            if p != root and MANIFEST in filenames:
                found.add(p)

    return sorted(found)


def _read_kind(tool: dict[str, Any], manifest: Path) -> WorkspaceKind:
    try:
        return WorkspaceKind(tool.get("type", WorkspaceKind.PACKAGE.value))
    except ValueError as exc:
        valid = ", ".join(k.value for k in WorkspaceKind)
        raise ManifestParseError(
            str(manifest), f"unknown workspace type {tool['type']!r} (valid: {valid})"
        ) from exc


def _read_start(tool: dict[str, Any], manifest: Path) -> tuple[str, ...] | None:
    start = tool.get("start")
    if start is None:
        return None
    if isinstance(start, str):
        return tuple(shlex.split(start))
    if isinstance(start, list) and all(isinstance(a, str) for a in start):
        return tuple(start)
    raise ManifestParseError(
        str(manifest), "[tool.lazy-select].start must be a string or list of strings"
    )


def discover(ctx: RepoContext) -> dict[str, Workspace]:
    """Scan the repository and discover all workspaces.

    Args:
        ctx: Invocation context; only the root and settings are used.

    Returns:
        Map of canonical workspace name to Workspace.

    Raises:
        ManifestParseError: If any manifest is malformed.
        DuplicateWorkspaceError: If two manifests declare the same name.
        WorkspaceOverlapError: If two members resolve to the same directory.
        DanglingDependencyError: If a [tool.uv.sources] workspace entry names
            no workspace.
    """
    root = ctx.root

    # First pass: collect basic info from each workspace
    fields: dict[str, dict[str, Any]] = {}
    raw_deps: dict[str, list[str]] = {}
    sources: dict[str, list[str]] = {}
    real_paths: dict[Path, str] = {}

    for d in find_member_dirs(ctx):
        manifest = d / MANIFEST
        rel = d.relative_to(root).as_posix()
        doc = load_pyproject(manifest)
        try:
            name = get_project_name(doc, d.name)
            version = get_project_version(doc)
            dep_strs = get_all_dependency_strings(doc)
            tool = get_tool_table(doc)
            ws_sources = get_workspace_sources(doc)
        except TypeError as exc:
            raise ManifestParseError(str(manifest), str(exc)) from exc

        if name in fields:
            raise DuplicateWorkspaceError(name, fields[name]["path"], rel)

        real = d.resolve()
        if real in real_paths:
            raise WorkspaceOverlapError(
                f"Workspaces {real_paths[real]!r} and {name!r} share directory {real}"
            )
        real_paths[real] = name

        raw_deps[name] = dep_strs
        sources[name] = ws_sources
        fields[name] = {
            "name": name,
            "path": rel,
            "version": version,
            "kind": _read_kind(tool, manifest),
            "start": _read_start(tool, manifest),
        }

    # Second pass: identify which deps are internal (within the workspace)
    workspace_names = set(fields)
    workspaces: dict[str, Workspace] = {}
    for name, info in fields.items():
        for source in sources[name]:
            if source not in workspace_names:
                raise DanglingDependencyError(name, source)
        try:
            deps = internal_deps(raw_deps[name], workspace_names)
        except InvalidRequirement as exc:
            raise ManifestParseError(f"{info['path']}/{MANIFEST}", str(exc)) from exc
        workspaces[name] = Workspace(deps=tuple(deps), **info)
        logger.debug(
            "Discovered %s (%s, %s) -> %s", name, info["path"], info["kind"].value, deps
        )

    return workspaces
