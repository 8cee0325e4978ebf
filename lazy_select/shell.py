"""Shell and git utilities.

Provides a thin wrapper around subprocess for git calls, plus the step()
header used to separate phases in terminal output.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

import click

from .errors import VcsError

logger = logging.getLogger(__name__)


def git(*args: str, cwd: Path, timeout: float | None = None) -> str:
    """Run a git command and return stdout.

    Args:
        *args: Arguments to pass to git (e.g., "diff", "--name-only").
        cwd: Directory to run git in; relative paths in the output are
             resolved against it.
        timeout: Seconds to wait before giving up, or None to wait forever.

    Returns:
        Stripped stdout from the git command.

    Raises:
        VcsError: If git is not installed, exits non-zero, or times out.
    """
    logger.debug("git %s (cwd=%s)", " ".join(args), cwd)
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            encoding="utf-8",
            errors="surrogateescape",
            check=True,
            timeout=timeout,
        )
    except FileNotFoundError as exc:
        raise VcsError("git executable not found on PATH") from exc
    except subprocess.TimeoutExpired as exc:
        raise VcsError(f"git {args[0]} timed out after {timeout}s") from exc
    except subprocess.CalledProcessError as exc:
        detail = (exc.stderr or "").strip() or f"exit code {exc.returncode}"
        raise VcsError(f"git {' '.join(args)} failed: {detail}") from exc
    return result.stdout.strip()


def step(msg: str) -> None:
    """Print a visually distinct step header."""
    click.echo(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")
