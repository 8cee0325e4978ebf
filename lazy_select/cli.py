"""CLI entry point for lazy-select."""

from __future__ import annotations

import contextlib
import json
import logging
import signal
import sys
import threading
from collections.abc import Callable, Iterator, Sequence
from pathlib import Path
from typing import Any

import click

from .config import RepoContext, make_context
from .dispatch import CancellationToken
from .errors import LazySelectError
from .pipeline import (
    SelectOptions,
    load_workspaces,
    run_select,
    run_start,
    run_tests,
)

# ctx.meta key holding the arguments that followed `--`
PASSTHROUGH_KEY = "lazy_select.passthrough"


def split_passthrough(args: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split raw arguments into targets and runner flags.

    Targets are the leading arguments; the first one that looks like an
    option starts the passthrough flags, which keep their original order.

    Example:
        ["b", "c", "-v", "-k", "x"] → (["b", "c"], ["-v", "-k", "x"])
    """
    for i, arg in enumerate(args):
        if arg.startswith("-"):
            return list(args[:i]), list(args[i:])
    return list(args), []


class PassthroughCommand(click.Command):
    """Command that hides everything after `--` from click.

    click drops the `--` marker while parsing, which would let runner
    arguments after it be read as targets. The tail is stashed in
    `ctx.meta[PASSTHROUGH_KEY]` instead and appended by the command.
    """

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        if "--" in args:
            split = args.index("--")
            ctx.meta[PASSTHROUGH_KEY] = args[split + 1 :]
            args = args[:split]
        return super().parse_args(ctx, args)


def exit_status(code: int) -> int:
    """Map a subprocess return code to a process exit status.

    Negative codes (killed by signal N) become 128 + N, as a shell reports
    them; everything else is passed through.
    """
    return 128 - code if code < 0 else code


@contextlib.contextmanager
def errors() -> Iterator[None]:
    """Turn lazy-select errors into a one-line message and exit code 1."""
    try:
        yield
    except LazySelectError as exc:
        raise click.ClickException(str(exc)) from exc


@contextlib.contextmanager
def cancel_on_signals(token: CancellationToken) -> Iterator[None]:
    """Cancel `token` on SIGINT/SIGTERM while the block runs.

    Handlers can only be installed from the main thread; elsewhere the
    token is left to the caller.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(signum: int, frame: object) -> None:
        logging.getLogger(__name__).info("Received signal %s, shutting down", signum)
        token.cancel()

    previous = {
        sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


def prompt_chooser(options: Sequence[str]) -> str:
    """Ask on the terminal which workspace to use."""
    return click.prompt(
        "Select a workspace to start",
        type=click.Choice(list(options)),
        default=options[0],
    )


def selection_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by `test` and `select`."""
    func = click.option(
        "--descendants",
        is_flag=True,
        help="Also select the workspaces the base set depends on.",
    )(func)
    func = click.option(
        "--ancestors",
        is_flag=True,
        help="Also select the workspaces that depend on the base set.",
    )(func)
    func = click.option(
        "--compareBranch",
        "--compare-branch",
        "compare_branch",
        default=None,
        metavar="REF",
        help="Baseline ref for change detection (requires --changed).",
    )(func)
    func = click.option(
        "--changed",
        is_flag=True,
        help="Limit the default selection to workspaces changed vs. the baseline.",
    )(func)
    return func


@click.group()
@click.version_option(package_name="lazy-select")
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Repository root.",
)
@click.option("-v", "--verbose", count=True, help="Increase log verbosity.")
@click.pass_context
def cli(ctx: click.Context, root: Path, verbose: int) -> None:
    """Run tests only for the monorepo workspaces that need them."""
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbose, logging.DEBUG)
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    ctx.obj = root


def _context(ctx: click.Context) -> RepoContext:
    return make_context(ctx.obj)


@cli.command(
    cls=PassthroughCommand,
    context_settings={"ignore_unknown_options": True, "allow_extra_args": True},
)
@selection_options
@click.option(
    "--regex",
    default=None,
    metavar="PATTERN",
    help="Also run test files whose path matches PATTERN.",
)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def test(
    ctx: click.Context,
    changed: bool,
    compare_branch: str | None,
    ancestors: bool,
    descendants: bool,
    regex: str | None,
    args: tuple[str, ...],
) -> None:
    """Run the test runner for the selected workspaces.

    TARGETS name workspaces explicitly; any unrecognized option (and
    everything after `--`) is forwarded to the runner unchanged.
    """
    targets, passthrough = split_passthrough(args)
    passthrough += ctx.meta.get(PASSTHROUGH_KEY, [])
    options = SelectOptions(
        targets=targets,
        changed=changed,
        compare_branch=compare_branch,
        ancestors=ancestors,
        descendants=descendants,
        regex=regex,
        passthrough=passthrough,
    )
    token = CancellationToken()
    with errors():
        options.check()
        repo = _context(ctx)
        with cancel_on_signals(token):
            code = run_tests(repo, options, token)
    ctx.exit(exit_status(code))


@cli.command("select")
@selection_options
@click.option("--json", "as_json", is_flag=True, help="Print the selection as JSON.")
@click.argument("targets", nargs=-1)
@click.pass_context
def select_cmd(
    ctx: click.Context,
    changed: bool,
    compare_branch: str | None,
    ancestors: bool,
    descendants: bool,
    as_json: bool,
    targets: tuple[str, ...],
) -> None:
    """Print the selected workspaces without running anything."""
    options = SelectOptions(
        targets=list(targets),
        changed=changed,
        compare_branch=compare_branch,
        ancestors=ancestors,
        descendants=descendants,
    )
    with errors():
        options.check()
        selection = run_select(_context(ctx), options)

    if as_json:
        payload = {
            "workspaces": {n: selection.workspaces[n].value for n in selection.names},
            "missing": selection.missing,
        }
        click.echo(json.dumps(payload, indent=2))
    elif selection.is_empty:
        click.echo("No workspaces found in selection")
    else:
        for name in selection.names:
            click.echo(f"{name}\t{selection.workspaces[name].value}")


@cli.command(
    cls=PassthroughCommand,
    context_settings={"ignore_unknown_options": True, "allow_extra_args": True},
)
@click.argument("target", required=False)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def start(ctx: click.Context, target: str | None, args: tuple[str, ...]) -> None:
    """Start a workspace and keep it running until interrupted.

    Prompts for the workspace when TARGET is omitted.
    """
    if target is not None and target.startswith("-"):
        target, args = None, (target, *args)
    args = (*args, *ctx.meta.get(PASSTHROUGH_KEY, []))
    token = CancellationToken()
    with errors():
        repo = _context(ctx)
        with cancel_on_signals(token):
            code = run_start(repo, target, prompt_chooser, list(args), token)
    ctx.exit(exit_status(code))


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print workspaces as JSON.")
@click.pass_context
def workspaces(ctx: click.Context, as_json: bool) -> None:
    """List workspaces, dependencies first."""
    with errors():
        repo = _context(ctx)
        found, graph = load_workspaces(repo)
        order = graph.topological_order()

    if as_json:
        payload = [found[name].model_dump(mode="json") for name in order]
        click.echo(json.dumps(payload, indent=2))
        return
    for name in order:
        info = found[name]
        deps = f" → [{', '.join(info.deps)}]" if info.deps else ""
        click.echo(f"  {name} {info.version} ({info.path}, {info.kind.value}){deps}")
