"""Configuration and per-invocation context.

Settings live in the [tool.lazy-select] table of the root pyproject.toml.
RepoContext bundles the repository root, those settings and the diagnostics
channel; it is created once per invocation and passed explicitly to every
component instead of being looked up from the working directory.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError
from .toml import get_tool_table, load_pyproject

logger = logging.getLogger(__name__)

DEFAULT_IGNORE = [
    "node_modules",
    ".git",
    ".venv",
    "venv",
    "build",
    "dist",
    "__pycache__",
    ".tox",
    ".nox",
    ".mypy_cache",
    ".pytest_cache",
]


class Settings(BaseModel):
    """Validated [tool.lazy-select] settings.

    Keys are kebab-case in TOML (e.g. `root-config-files`); unknown keys are
    rejected so typos surface as errors instead of silently using defaults.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    ignore: list[str] = Field(default_factory=lambda: list(DEFAULT_IGNORE))
    runner: list[str] = Field(
        default_factory=lambda: ["python", "-m", "pytest"], min_length=1
    )
    test_file_globs: list[str] = Field(
        default_factory=lambda: ["test_*.py", "*_test.py"], alias="test-file-globs"
    )
    root_config_files: list[str] = Field(
        default_factory=lambda: ["pyproject.toml", "uv.lock"],
        alias="root-config-files",
    )
    root_changes_affect_all: bool = Field(False, alias="root-changes-affect-all")
    vcs_timeout: float | None = Field(60.0, alias="vcs-timeout", gt=0)
    shutdown_timeout: float = Field(10.0, alias="shutdown-timeout", ge=0)


def load_settings(root: Path) -> Settings:
    """Read settings from <root>/pyproject.toml.

    A missing file or a missing [tool.lazy-select] table yields defaults.

    Raises:
        ConfigError: If the table contains unknown keys or invalid values.
    """
    pyproject = root / "pyproject.toml"
    if not pyproject.exists():
        logger.debug("No root pyproject.toml in %s, using default settings", root)
        return Settings()

    try:
        table = get_tool_table(load_pyproject(pyproject))
    except TypeError as exc:
        raise ConfigError(f"Invalid [tool.lazy-select] in {pyproject}: {exc}") from exc
    try:
        return Settings.model_validate(table)
    except ValidationError as exc:
        raise ConfigError(
            f"Invalid [tool.lazy-select] settings in {pyproject}:\n{exc}"
        ) from exc


class Diagnostics:
    """Collects non-fatal warnings raised during one invocation.

    Each warning key is reported once; later occurrences are ignored.
    """

    def __init__(self) -> None:
        self.records: list[Warning] = []
        self._keys: set[str] = set()

    def warn_once(self, key: str, warning: Warning) -> bool:
        """Record and log `warning` unless `key` was already reported.

        Returns:
            True if the warning was recorded, False if it was a repeat.
        """
        if key in self._keys:
            return False
        self._keys.add(key)
        self.records.append(warning)
        logger.warning("%s", warning)
        return True


class RepoContext(BaseModel):
    """Explicit invocation context threaded through every component.

    Attributes:
        root: Absolute repository root.
        settings: Settings loaded from the root manifest.
        diagnostics: Warning channel for this invocation.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    root: Path
    settings: Settings = Field(default_factory=Settings)
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)


def make_context(root: Path) -> RepoContext:
    """Build a fresh context for the repository at `root`."""
    root = root.resolve()
    if not root.is_dir():
        raise ConfigError(f"Repository root {root} is not a directory")
    return RepoContext(root=root, settings=load_settings(root))
