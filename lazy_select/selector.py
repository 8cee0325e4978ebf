"""Selection of the workspaces an invocation runs against.

select() is a pure function of the graph, the explicit targets, the changed
set and the two expansion flags. It decides *which workspaces* run; narrowing
files inside them is left to the dispatcher's filter.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence

from packaging.utils import canonicalize_name

from .errors import ConfigError, UnknownWorkspaceError
from .graph import DependencyGraph
from .models import Reason, SelectionResult

logger = logging.getLogger(__name__)

# Picks one name out of the available workspace names
Chooser = Callable[[Sequence[str]], str]


def select(
    graph: DependencyGraph,
    targets: Iterable[str] = (),
    changed: set[str] | None = None,
    *,
    ancestors: bool = False,
    descendants: bool = False,
) -> SelectionResult:
    """Combine targets, changes and graph expansion into a selection.

    The base set is, in order of precedence:
    1. the explicit targets, if any are named;
    2. the changed workspaces, if change detection is on (`changed` is not
       None), even when that set is empty;
    3. every workspace.

    `ancestors` adds everything that transitively depends on the base set;
    `descendants` adds everything the base set transitively depends on. Both
    expand the base set, never each other's results.

    Targets that name no workspace are recorded in `missing` and otherwise
    ignored. An empty result is valid.

    Args:
        graph: Dependency graph of the repository.
        targets: Workspace names given on the command line.
        changed: Changed workspace names, or None when change detection is off.
        ancestors: Include dependents of the base set.
        descendants: Include dependencies of the base set.
    """
    result = SelectionResult()
    requested = [canonicalize_name(t) for t in targets]

    base: list[str] = []
    if requested:
        for name in dict.fromkeys(requested):
            if name in graph:
                base.append(name)
            else:
                logger.warning("Workspace %r does not exist, ignoring it", name)
                result.missing.append(name)
        reason = Reason.EXPLICIT
    elif changed is not None:
        base = sorted(n for n in changed if n in graph)
        reason = Reason.CHANGED
    else:
        base = graph.names
        reason = Reason.ALL

    for name in base:
        result.workspaces[name] = reason

    if base and ancestors:
        for name in sorted(graph.dependents_of(base)):
            result.workspaces.setdefault(name, Reason.ANCESTOR)
    if base and descendants:
        for name in sorted(graph.dependencies_of(base)):
            result.workspaces.setdefault(name, Reason.DESCENDANT)

    summary = ", ".join(f"{n} ({r.value})" for n, r in result.workspaces.items())
    logger.debug("Selected %s", summary or "nothing")
    return result


def choose_target(available: Sequence[str], chooser: Chooser) -> str:
    """Ask `chooser` for one workspace out of `available`.

    Replaces an interactive prompt with an injected function so callers stay
    testable without a terminal.

    Raises:
        ConfigError: If there is nothing to choose from.
        UnknownWorkspaceError: If the chooser returns a name not offered.
    """
    options = sorted(available)
    if not options:
        raise ConfigError("No workspaces available to choose from")
    chosen = canonicalize_name(chooser(options))
    if chosen not in options:
        raise UnknownWorkspaceError(chosen)
    return chosen
