"""Data models for lazy-select.

These Pydantic models represent the values passed between the registry,
change detector, selector and dispatcher. None of them are persisted; every
invocation rebuilds them from the repository tree and git history.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class WorkspaceKind(str, Enum):
    """Workspace type from [tool.lazy-select].type.

    Only gates which commands apply to a workspace (e.g. which ones can be
    started). Dependency traversal ignores it.
    """

    APP = "app"
    VIEW = "view"
    ESM_VIEW = "esm-view"
    PACKAGE = "package"
    SOURCE = "source"

    @property
    def startable(self) -> bool:
        return self in (WorkspaceKind.APP, WorkspaceKind.VIEW, WorkspaceKind.ESM_VIEW)


class Workspace(BaseModel):
    """A single package in the monorepo.

    Attributes:
        name: Canonical (PEP 503) workspace name.
        path: Posix path of the workspace directory, relative to the root.
        version: Version string from [project].version.
        kind: Workspace type; see WorkspaceKind.
        deps: Internal dependency names, in declaration order. External
              packages never appear here.
        start: Command used by `lazy-select start`, if the workspace has one.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    version: str = "0.0.0"
    kind: WorkspaceKind = WorkspaceKind.PACKAGE
    deps: tuple[str, ...] = ()
    start: tuple[str, ...] | None = None


class ChangeSet(BaseModel):
    """Files that differ from the baseline and the workspaces that own them.

    Attributes:
        baseline: Ref the diff was taken against, or None for the working
                  tree vs. HEAD.
        files: Changed paths relative to the repository root, sorted.
        workspaces: Names of workspaces owning at least one changed file.
        root_files: Changed files that are root configuration files.
    """

    baseline: str | None = None
    files: list[str] = Field(default_factory=list)
    workspaces: set[str] = Field(default_factory=set)
    root_files: list[str] = Field(default_factory=list)


class Reason(str, Enum):
    """Why a workspace ended up in a selection."""

    EXPLICIT = "explicit"
    CHANGED = "changed"
    ALL = "all"
    ANCESTOR = "ancestor"
    DESCENDANT = "descendant"


class SelectionResult(BaseModel):
    """The workspaces chosen for one invocation.

    Behaves like a set of names; each name carries the reason it was first
    included. Two selections built from identical inputs compare equal.

    Attributes:
        workspaces: Map of workspace name to inclusion reason.
        missing: Explicit targets that matched no workspace.
    """

    workspaces: dict[str, Reason] = Field(default_factory=dict)
    missing: list[str] = Field(default_factory=list)

    @property
    def names(self) -> list[str]:
        return sorted(self.workspaces)

    @property
    def is_empty(self) -> bool:
        return not self.workspaces

    def __contains__(self, name: object) -> bool:
        return name in self.workspaces

    def __len__(self) -> int:
        return len(self.workspaces)


class RunnerInvocation(BaseModel):
    """Everything needed to spawn the external runner once.

    Attributes:
        command: Program and leading arguments (the runner or a start command).
        workspaces: Selected workspace names.
        paths: Selected workspace paths, dependencies first.
        filter_pattern: Regex the file filter was built from, if any.
        extra_files: Files matched by the filter that lie outside the
                     selected workspaces.
        passthrough: Flags forwarded verbatim, in their original order.
        cwd: Working directory for the child process.
        env: Variables layered on top of the current environment.
    """

    command: list[str]
    workspaces: list[str] = Field(default_factory=list)
    paths: list[str] = Field(default_factory=list)
    filter_pattern: str | None = None
    extra_files: list[str] = Field(default_factory=list)
    passthrough: list[str] = Field(default_factory=list)
    cwd: Path
    env: dict[str, str] = Field(default_factory=dict)

    @property
    def argv(self) -> list[str]:
        """Full command line: command, paths, extra files, passthrough flags."""
        return [*self.command, *self.paths, *self.extra_files, *self.passthrough]
