"""Execution dispatcher: turn a selection into one runner process.

The dispatcher builds a RunnerInvocation (command, workspace paths, filter
matches, passthrough flags, working directory, environment), spawns exactly
one child process for it and returns the child's exit code unchanged. The
child inherits this process's stdout and stderr, so its output streams
through without buffering.

Cancellation is explicit: callers hand in a CancellationToken and trip it
(usually from a signal handler in the CLI). The dispatcher then asks the
child to terminate, waits for it, and only kills it after the configured
grace period. It never returns while the child is still running.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import re
import shlex
import subprocess
import threading
from collections.abc import Mapping, Sequence
from pathlib import Path

import click

from .config import RepoContext
from .errors import ConfigError, RunnerExecutionError
from .graph import DependencyGraph
from .models import Reason, RunnerInvocation, SelectionResult, Workspace

logger = logging.getLogger(__name__)

# How often a running child is checked against its cancellation token
POLL_INTERVAL = 0.1


class CancellationToken:
    """Thread-safe, one-way cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or `timeout` elapses; return `cancelled`."""
        return self._event.wait(timeout)


def compile_filter(pattern: str) -> re.Pattern[str]:
    """Compile a --regex file filter.

    Raises:
        ConfigError: If `pattern` is not a valid regular expression.
    """
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ConfigError(f"Invalid --regex pattern {pattern!r}: {exc}") from exc


def collect_filtered_files(ctx: RepoContext, pattern: str) -> list[str]:
    """Find test files whose root-relative path matches `pattern`.

    Test files are recognized by the configured test-file-globs; ignored
    directories are skipped. Matching uses re.search on the posix path.
    """
    regex = compile_filter(pattern)
    globs = ctx.settings.test_file_globs
    ignore = ctx.settings.ignore
    matches: list[str] = []
    for dirpath, dirnames, filenames in os.walk(ctx.root):
        dirnames[:] = sorted(d for d in dirnames if d not in ignore)
        for filename in sorted(filenames):
            if not any(fnmatch.fnmatch(filename, g) for g in globs):
                continue
            rel = (Path(dirpath) / filename).relative_to(ctx.root).as_posix()
            if regex.search(rel):
                matches.append(rel)
    return matches


def _inside(path: str, dirs: Sequence[str]) -> bool:
    return any(path == d or path.startswith(d.rstrip("/") + "/") for d in dirs)


def build_test_invocation(
    ctx: RepoContext,
    workspaces: Mapping[str, Workspace],
    graph: DependencyGraph,
    selection: SelectionResult,
    passthrough: Sequence[str] = (),
    filter_pattern: str | None = None,
) -> RunnerInvocation:
    """Translate a selection into a runner invocation.

    Selected workspaces become path arguments, dependencies first. With a
    filter pattern, matching test files outside those paths are appended as
    extra files. Workspaces selected only because nothing narrowed the
    selection (reason "all") are left out when a filter is given, so that
    `test --regex X` runs just the files matching X.
    """
    order = graph.topological_order(selection.names)
    scoped = order
    if filter_pattern is not None:
        scoped = [n for n in order if selection.workspaces[n] is not Reason.ALL]
    paths = [workspaces[n].path for n in scoped]

    extra_files: list[str] = []
    if filter_pattern is not None:
        matches = collect_filtered_files(ctx, filter_pattern)
        extra_files = [f for f in matches if not _inside(f, paths)]

    return RunnerInvocation(
        command=list(ctx.settings.runner),
        workspaces=order,
        paths=paths,
        filter_pattern=filter_pattern,
        extra_files=extra_files,
        passthrough=list(passthrough),
        cwd=ctx.root,
        env={
            "LAZY_SELECT_ROOT": str(ctx.root),
            "LAZY_SELECT_WORKSPACES": ",".join(order),
        },
    )


def build_start_invocation(
    ctx: RepoContext, workspace: Workspace, passthrough: Sequence[str] = ()
) -> RunnerInvocation:
    """Build the long-lived invocation that starts `workspace`.

    Raises:
        ConfigError: If the workspace kind cannot be started or the
            workspace has no start command.
    """
    if not workspace.kind.startable:
        raise ConfigError(
            f"The workspace at {workspace.path} can't be started because it has "
            f'type "{workspace.kind.value}"'
        )
    if not workspace.start:
        raise ConfigError(
            f"The workspace at {workspace.path} can't be started because it has "
            "no [tool.lazy-select].start command"
        )
    return RunnerInvocation(
        command=list(workspace.start),
        workspaces=[workspace.name],
        passthrough=list(passthrough),
        cwd=ctx.root / workspace.path,
        env={
            "LAZY_SELECT_ROOT": str(ctx.root),
            "LAZY_SELECT_WORKSPACE": workspace.name,
            "LAZY_SELECT_WORKSPACE_PATH": str(ctx.root / workspace.path),
        },
    )


class Dispatcher:
    """Spawns and supervises the runner process.

    Args:
        ctx: Invocation context; supplies the shutdown grace period.
    """

    def __init__(self, ctx: RepoContext) -> None:
        self.ctx = ctx

    def run(
        self, invocation: RunnerInvocation, token: CancellationToken | None = None
    ) -> int:
        """Run `invocation` to completion and return its exit code.

        The exit code is returned unchanged and never retried. A negative
        code means the child died from that signal (subprocess convention).

        Raises:
            RunnerExecutionError: If the process cannot be started.
        """
        argv = invocation.argv
        logger.info("Running: %s", shlex.join(argv))
        try:
            proc = subprocess.Popen(
                argv, cwd=invocation.cwd, env={**os.environ, **invocation.env}
            )
        except OSError as exc:
            raise RunnerExecutionError(f"Could not start {argv[0]!r}: {exc}") from exc

        try:
            while proc.poll() is None:
                if token is None:
                    proc.wait()
                elif token.wait(POLL_INTERVAL):
                    return self._shutdown(proc)
            return proc.returncode
        finally:
            # Never leave an orphan behind, e.g. on KeyboardInterrupt
            if proc.poll() is None:
                self._shutdown(proc)

    def _shutdown(self, proc: subprocess.Popen[bytes]) -> int:
        logger.info("Stopping runner (pid %s)", proc.pid)
        proc.terminate()
        try:
            return proc.wait(timeout=self.ctx.settings.shutdown_timeout)
        except subprocess.TimeoutExpired:
            logger.warning(
                "Runner did not exit within %ss, killing it",
                self.ctx.settings.shutdown_timeout,
            )
            proc.kill()
            return proc.wait()


def dispatch(
    ctx: RepoContext,
    workspaces: Mapping[str, Workspace],
    graph: DependencyGraph,
    selection: SelectionResult,
    passthrough: Sequence[str] = (),
    filter_pattern: str | None = None,
    token: CancellationToken | None = None,
) -> int:
    """Run the test runner once for `selection`.

    An empty selection spawns nothing and succeeds. So does a filter that
    leaves nothing to run, since an argument-less runner would run the whole
    repository instead.

    Returns:
        The runner's exit code, or 0 when nothing was run.
    """
    if selection.is_empty:
        click.echo("No workspaces found in selection")
        return 0

    invocation = build_test_invocation(
        ctx, workspaces, graph, selection, passthrough, filter_pattern
    )
    if not invocation.paths and not invocation.extra_files:
        click.echo(f"No test files match --regex {filter_pattern!r}")
        return 0
    return Dispatcher(ctx).run(invocation, token)
