"""Exception hierarchy for lazy-select.

Every fatal condition raised by the core derives from LazySelectError so the
CLI can turn it into a single error message and exit code 1. Cycles in the
dependency graph are not fatal and are reported as CycleDetectedWarning.
"""

from __future__ import annotations


class LazySelectError(Exception):
    """Base class for all fatal lazy-select errors."""


class ConfigError(LazySelectError):
    """Invalid option combination or invalid [tool.lazy-select] settings."""


class DiscoveryError(LazySelectError):
    """Workspace discovery failed; nothing downstream can run."""


class DuplicateWorkspaceError(DiscoveryError):
    """Two manifests declare the same workspace name."""

    def __init__(self, name: str, first: str, second: str) -> None:
        super().__init__(
            f"Workspace name {name!r} is declared by both {first} and {second}"
        )
        self.name = name
        self.paths = (first, second)


class ManifestParseError(DiscoveryError):
    """A pyproject.toml could not be parsed or has malformed fields."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Could not parse {path}: {reason}")
        self.path = path


class DanglingDependencyError(DiscoveryError):
    """A declared workspace dependency names no discovered workspace."""

    def __init__(self, workspace: str, dependency: str) -> None:
        super().__init__(
            f"Workspace {workspace!r} depends on workspace {dependency!r}, "
            "which does not exist"
        )
        self.workspace = workspace
        self.dependency = dependency


class WorkspaceOverlapError(DiscoveryError):
    """Two workspaces live in the same directory."""


class VcsError(LazySelectError):
    """The git call behind change detection failed."""


class UnknownWorkspaceError(LazySelectError):
    """A query named a workspace that is not in the registry."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Workspace {name!r} does not exist")
        self.name = name


class RunnerExecutionError(LazySelectError):
    """The external runner process could not be started."""


class CycleDetectedWarning(UserWarning):
    """The dependency graph contains a cycle; traversal still completes."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__("Dependency cycle detected: " + " -> ".join(cycle))
        self.cycle = cycle
