"""Dependency string handling.

Parses PEP 508 dependency strings and keeps only the ones that point at
other workspaces of the same repository.
"""

from __future__ import annotations

from collections.abc import Iterable

from packaging.requirements import Requirement
from packaging.utils import canonicalize_name


def dep_canonical_name(dep_str: str) -> str:
    """Extract the canonical package name from a PEP 508 dependency string.

    Handles version specifiers, extras, and normalizes the name per PEP 503
    (lowercase, hyphens instead of underscores).

    Examples:
        "requests>=2.0" → "requests"
        "My_Package[extra]~=1.0" → "my-package"

    Raises:
        packaging.requirements.InvalidRequirement: If the string is not PEP 508.
    """
    return canonicalize_name(Requirement(dep_str).name)


def internal_deps(dep_strs: Iterable[str], workspace_names: set[str]) -> list[str]:
    """Filter dependency strings down to internal workspace names.

    Keeps declaration order and drops duplicates (a package often lists the
    same internal dependency in several groups).
    """
    seen: set[str] = set()
    deps: list[str] = []
    for dep_str in dep_strs:
        dep_name = dep_canonical_name(dep_str)
        # Only track internal deps, ignore external packages
        if dep_name in workspace_names and dep_name not in seen:
            deps.append(dep_name)
            seen.add(dep_name)
    return deps
