"""Dependency graph over workspaces.

Workspaces are stored in an arena and addressed by integer index; edges are
lists of indices. An edge A → B means "A depends on B". The graph is built
once per invocation and never mutated, so queries need no locking and every
traversal can track visited nodes in a flat bytearray.

Cycles are tolerated: every walk is bounded by its visited array, and the
first cycle found is reported once as a CycleDetectedWarning.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .config import Diagnostics
from .errors import (
    CycleDetectedWarning,
    DanglingDependencyError,
    UnknownWorkspaceError,
)
from .models import Workspace

# Traversal colors for the iterative depth-first walk
_WHITE, _GRAY, _BLACK = 0, 1, 2


class DependencyGraph:
    """Immutable directed graph of workspace dependencies.

    Args:
        workspaces: Registry snapshot, name → Workspace.
        diagnostics: Channel that receives the cycle warning. A private
                     channel is created when omitted.

    Raises:
        DanglingDependencyError: If a workspace lists a dependency that is
            not itself in `workspaces`.
    """

    def __init__(
        self,
        workspaces: Mapping[str, Workspace],
        diagnostics: Diagnostics | None = None,
    ) -> None:
        self._names: list[str] = sorted(workspaces)
        self._index: dict[str, int] = {n: i for i, n in enumerate(self._names)}
        self._forward: list[list[int]] = [[] for _ in self._names]
        self._reverse: list[list[int]] = [[] for _ in self._names]
        self._diagnostics = diagnostics if diagnostics is not None else Diagnostics()

        for name in self._names:
            src = self._index[name]
            for dep in workspaces[name].deps:
                if dep not in self._index:
                    raise DanglingDependencyError(name, dep)
                dst = self._index[dep]
                if dst not in self._forward[src]:
                    self._forward[src].append(dst)
                    self._reverse[dst].append(src)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __len__(self) -> int:
        return len(self._names)

    @property
    def names(self) -> list[str]:
        """All workspace names, sorted."""
        return list(self._names)

    def _idx(self, name: str) -> int:
        try:
            return self._index[name]
        except KeyError:
            raise UnknownWorkspaceError(name) from None

    def _to_names(self, indices: Iterable[int]) -> set[str]:
        return {self._names[i] for i in indices}

    def direct_dependencies(self, name: str) -> set[str]:
        """Workspaces `name` depends on directly."""
        return self._to_names(self._forward[self._idx(name)])

    def direct_dependents(self, name: str) -> set[str]:
        """Workspaces that depend directly on `name`."""
        return self._to_names(self._reverse[self._idx(name)])

    def transitive_dependencies(self, name: str) -> set[str]:
        """Every workspace `name` depends on, directly or not ("descendants")."""
        return self.dependencies_of([name])

    def transitive_dependents(self, name: str) -> set[str]:
        """Every workspace that depends on `name`, directly or not ("ancestors")."""
        return self.dependents_of([name])

    def dependencies_of(self, names: Iterable[str]) -> set[str]:
        """Transitive dependencies of all `names`, in one walk.

        Equals the union of transitive_dependencies() over `names`, except
        that a seed is kept when any seed (itself included, via a cycle)
        reaches it.
        """
        return self._to_names(self._walk(names, self._forward))

    def dependents_of(self, names: Iterable[str]) -> set[str]:
        """Transitive dependents of all `names`; see dependencies_of()."""
        return self._to_names(self._walk(names, self._reverse))

    def _walk(self, seeds: Iterable[str], adjacency: list[list[int]]) -> list[int]:
        """Iterative DFS from every seed over `adjacency`.

        A node is reported when it is reached through at least one edge, so
        a seed only shows up if some seed (or a cycle) leads back to it.
        Reaching a node that is still on the stack is a back edge: a cycle.
        """
        seed_indices = [self._idx(s) for s in seeds]
        color = bytearray(len(self._names))
        reached = bytearray(len(self._names))

        for seed in seed_indices:
            if color[seed] != _WHITE:
                continue
            color[seed] = _GRAY
            path = [seed]
            stack = [iter(adjacency[seed])]
            while stack:
                nxt = next(stack[-1], None)
                if nxt is None:
                    # All neighbors done: finish this node
                    stack.pop()
                    color[path.pop()] = _BLACK
                    continue
                reached[nxt] = 1
                if color[nxt] == _GRAY:
                    self._report_cycle(path[path.index(nxt) :] + [nxt], adjacency)
                elif color[nxt] == _WHITE:
                    color[nxt] = _GRAY
                    path.append(nxt)
                    stack.append(iter(adjacency[nxt]))

        if len(seed_indices) == 1:
            # A seed is never its own ancestor/descendant, even on a cycle
            reached[seed_indices[0]] = 0
        return [i for i, hit in enumerate(reached) if hit]

    def _report_cycle(self, cycle: list[int], adjacency: list[list[int]]) -> None:
        # Walks over reverse edges see the cycle backwards; report it in
        # dependency direction either way
        if adjacency is self._reverse:
            cycle = cycle[::-1]
        self._diagnostics.warn_once(
            "dependency-cycle", CycleDetectedWarning([self._names[i] for i in cycle])
        )

    def topological_order(self, names: Iterable[str] | None = None) -> list[str]:
        """Sort workspaces so dependencies come before dependents.

        Uses Kahn's algorithm restricted to `names` (all workspaces when
        omitted); edges leaving the subset are ignored. Peers are ordered
        alphabetically for deterministic output. Workspaces stuck on a cycle
        are appended alphabetically at the end and the cycle is reported.

        Example:
            If A depends on B, and B depends on C:
            topological_order() → [C, B, A]
        """
        if names is None:
            subset = list(range(len(self._names)))
        else:
            subset = sorted({self._idx(n) for n in names})
        members = set(subset)

        # Count dependencies inside the subset for each node
        in_degree = {
            i: sum(1 for dep in self._forward[i] if dep in members) for i in subset
        }

        queue = [i for i in subset if in_degree[i] == 0]
        order: list[int] = []
        while queue:
            node = queue.pop(0)
            order.append(node)
            # Dependents whose deps are all placed become ready
            for dependent in sorted(self._reverse[node]):
                if dependent in members:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        queue.append(dependent)

        if len(order) != len(subset):
            placed = set(order)
            remaining = [i for i in subset if i not in placed]
            # Walking from the stuck nodes records the cycle itself
            self.dependencies_of(self._names[i] for i in remaining)
            order.extend(remaining)

        return [self._names[i] for i in order]
