"""Selection pipeline: discover → graph → diff → select → dispatch.

This module wires the components together for the CLI commands:
1. Validate the option combination (before touching the repository)
2. Discover all workspaces and build the dependency graph
3. Detect changed workspaces, when change detection is requested
4. Select workspaces from targets, changes and expansion flags
5. Spawn the runner once for the selection and return its exit code

Everything is recomputed on each call; nothing is cached between runs.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import click
from packaging.utils import canonicalize_name
from pydantic import BaseModel, Field

from .changes import ChangeDetector, validate_change_options
from .config import RepoContext
from .dispatch import (
    CancellationToken,
    Dispatcher,
    build_start_invocation,
    compile_filter,
    dispatch,
)
from .errors import UnknownWorkspaceError
from .graph import DependencyGraph
from .models import SelectionResult, Workspace
from .registry import discover
from .selector import Chooser, choose_target, select
from .shell import step

logger = logging.getLogger(__name__)


class SelectOptions(BaseModel):
    """Options shared by the `test` and `select` commands.

    Attributes:
        targets: Explicitly named workspaces.
        changed: Limit the default selection to changed workspaces.
        compare_branch: Baseline ref for change detection.
        ancestors: Add dependents of the base set.
        descendants: Add dependencies of the base set.
        regex: File filter handed to the dispatcher.
        passthrough: Flags forwarded verbatim to the runner.
    """

    targets: list[str] = Field(default_factory=list)
    changed: bool = False
    compare_branch: str | None = None
    ancestors: bool = False
    descendants: bool = False
    regex: str | None = None
    passthrough: list[str] = Field(default_factory=list)

    def check(self) -> None:
        """Reject invalid combinations before any repository work.

        Raises:
            ConfigError: For a baseline without --changed or a bad regex.
        """
        validate_change_options(self.changed, self.compare_branch)
        if self.regex is not None:
            compile_filter(self.regex)


def load_workspaces(
    ctx: RepoContext,
) -> tuple[dict[str, Workspace], DependencyGraph]:
    """Discover workspaces and build the graph over them."""
    workspaces = discover(ctx)
    graph = DependencyGraph(workspaces, ctx.diagnostics)
    return workspaces, graph


def compute_selection(
    ctx: RepoContext,
    workspaces: dict[str, Workspace],
    graph: DependencyGraph,
    options: SelectOptions,
) -> SelectionResult:
    """Run change detection (if requested) and selection."""
    changed: set[str] | None = None
    # Explicit targets take precedence, so skip git entirely when given
    if options.changed and not options.targets:
        change_set = ChangeDetector(ctx, workspaces).detect(options.compare_branch)
        changed = change_set.workspaces
        logger.info(
            "%d changed files, %d changed workspaces",
            len(change_set.files),
            len(changed),
        )

    return select(
        graph,
        options.targets,
        changed,
        ancestors=options.ancestors,
        descendants=options.descendants,
    )


def print_selection(selection: SelectionResult) -> None:
    """Print the selected workspaces and why each was included."""
    step(f"Selected {len(selection)} workspaces")
    for name in selection.names:
        click.echo(f"  {name} ({selection.workspaces[name].value})")
    for name in selection.missing:
        click.echo(f"  {name}: no such workspace")


def run_select(ctx: RepoContext, options: SelectOptions) -> SelectionResult:
    """Compute the selection without running anything."""
    options.check()
    workspaces, graph = load_workspaces(ctx)
    return compute_selection(ctx, workspaces, graph, options)


def run_tests(
    ctx: RepoContext,
    options: SelectOptions,
    token: CancellationToken | None = None,
) -> int:
    """Select workspaces and run the test runner once for them.

    Returns:
        The runner's exit code, or 0 when the selection is empty.
    """
    options.check()
    workspaces, graph = load_workspaces(ctx)
    selection = compute_selection(ctx, workspaces, graph, options)
    if not selection.is_empty:
        print_selection(selection)
    return dispatch(
        ctx,
        workspaces,
        graph,
        selection,
        options.passthrough,
        options.regex,
        token,
    )


def run_start(
    ctx: RepoContext,
    target: str | None,
    chooser: Chooser,
    passthrough: Sequence[str] = (),
    token: CancellationToken | None = None,
) -> int:
    """Start one workspace and keep it attached until it exits or is cancelled.

    When `target` is omitted, `chooser` picks one of the startable
    workspaces.

    Raises:
        UnknownWorkspaceError: If `target` names no workspace.
        ConfigError: If the workspace cannot be started.
    """
    workspaces, graph = load_workspaces(ctx)
    if target is None:
        startable = [n for n, ws in workspaces.items() if ws.kind.startable]
        target = choose_target(startable, chooser)

    name = canonicalize_name(target)
    if name not in graph:
        raise UnknownWorkspaceError(name)
    workspace = workspaces[name]

    invocation = build_start_invocation(ctx, workspace, passthrough)
    step(f"Starting {workspace.name} ({workspace.path})")
    return Dispatcher(ctx).run(invocation, token)
