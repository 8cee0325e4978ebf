"""Change detection: which workspaces differ from a git baseline.

Two modes:

- With a baseline ref, files changed between the merge-base of that ref and
  HEAD (the `ref...HEAD` semantics), so commits that landed on the baseline
  after the branch point do not show up as changes here.
- Without one, files changed in the working tree relative to HEAD: staged,
  unstaged and untracked.

Changed files are mapped to the workspace whose path is the longest prefix
of the file path. Files outside every workspace are dropped, except root
configuration files, which can optionally mark every workspace as changed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from .config import RepoContext
from .errors import ConfigError
from .models import ChangeSet, Workspace
from .shell import git

logger = logging.getLogger(__name__)

# Renames are split into a deletion and an addition so both owners change
DIFF_ARGS = ("diff", "--name-only", "-z", "--no-renames", "--relative")


def validate_change_options(changed: bool, baseline: str | None) -> None:
    """Reject a baseline ref outside change-detection mode.

    Runs before any discovery or git call, so the result never depends on
    the state of the repository.

    Raises:
        ConfigError: If `baseline` is set but `changed` is not.
    """
    if baseline is not None and not changed:
        raise ConfigError(
            "Option --compareBranch doesn't make sense without option --changed"
        )


def map_files_to_workspaces(
    files: Iterable[str], workspaces: Mapping[str, Workspace]
) -> set[str]:
    """Map changed file paths to the workspaces that own them.

    A file belongs to the workspace with the longest path that is a prefix
    of the file path on a directory boundary, so nested workspaces win over
    their parents and `pkg/ab/x.py` never matches workspace `pkg/a`.

    Args:
        files: Posix paths relative to the repository root.
        workspaces: Registry snapshot.

    Returns:
        Names of workspaces that own at least one file.
    """
    # Longest paths first so the first match is the most specific one
    by_path = sorted(
        ((ws.path.rstrip("/"), name) for name, ws in workspaces.items()),
        key=lambda item: len(item[0]),
        reverse=True,
    )
    owners: set[str] = set()
    for f in files:
        for path, name in by_path:
            if f == path or f.startswith(path + "/"):
                owners.add(name)
                break
    return owners


class ChangeDetector:
    """Computes the ChangeSet for one invocation.

    Args:
        ctx: Invocation context; git runs in ctx.root.
        workspaces: Registry snapshot used for file → workspace mapping.
    """

    def __init__(self, ctx: RepoContext, workspaces: Mapping[str, Workspace]) -> None:
        self.ctx = ctx
        self.workspaces = workspaces

    def _git(self, *args: str) -> str:
        return git(*args, cwd=self.ctx.root, timeout=self.ctx.settings.vcs_timeout)

    def _paths(self, *args: str) -> list[str]:
        # NUL-separated output keeps non-ASCII and odd paths unquoted
        return [p for p in self._git(*args).split("\0") if p]

    def changed_files(self, baseline: str | None = None) -> list[str]:
        """List changed files relative to the repository root.

        Raises:
            VcsError: If any git call fails.
        """
        if baseline is not None:
            merge_base = self._git("merge-base", baseline, "HEAD").splitlines()[0]
            logger.debug("merge-base of %s and HEAD is %s", baseline, merge_base)
            files = self._paths(*DIFF_ARGS, merge_base, "HEAD")
        else:
            files = self._paths(*DIFF_ARGS, "HEAD")
            files += self._paths("ls-files", "-z", "--others", "--exclude-standard")
        return sorted(set(files))

    def detect(self, baseline: str | None = None) -> ChangeSet:
        """Compute the changed files and the workspaces that own them.

        Args:
            baseline: Ref to compare against, or None for working tree vs. HEAD.

        Raises:
            VcsError: If git is missing, ctx.root is not in a git work tree,
                the ref is unknown, or git times out.
        """
        settings = self.ctx.settings
        files = self.changed_files(baseline)
        changed = map_files_to_workspaces(files, self.workspaces)
        root_files = [f for f in files if f in settings.root_config_files]

        if root_files and settings.root_changes_affect_all:
            logger.info(
                "Root config changed (%s): all workspaces marked changed",
                ", ".join(root_files),
            )
            changed = set(self.workspaces)

        for name in sorted(changed):
            logger.debug("%s: changed", name)
        return ChangeSet(
            baseline=baseline, files=files, workspaces=changed, root_files=root_files
        )
