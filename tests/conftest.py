"""Shared test fixtures."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest
import tomlkit

from lazy_select.config import RepoContext, Settings
from lazy_select.graph import DependencyGraph
from lazy_select.models import Workspace

# a depends on b; b depends on d; c depends on d; e depends on c
GHOST_DEPS = {"a": ["b"], "b": ["d"], "c": ["d"], "d": [], "e": ["c"]}

RECORDER = """\
import json, os, sys
with open(os.environ["RECORD_FILE"], "w") as fh:
    json.dump({"argv": sys.argv[1:], "cwd": os.getcwd(),
               "env": {k: v for k, v in os.environ.items()
                       if k.startswith("LAZY_SELECT_")}}, fh)
sys.exit(int(os.environ.get("RECORD_EXIT", "0")))
"""


def write_workspace(
    root: Path,
    rel: str,
    name: str,
    deps: list[str] | None = None,
    extra: str = "",
) -> Path:
    """Write a workspace pyproject.toml under root/rel."""
    d = root / rel
    d.mkdir(parents=True, exist_ok=True)
    (d / "pyproject.toml").write_text(
        f'[project]\nname = "{name}"\nversion = "1.0.0"\n'
        f"dependencies = {json.dumps(deps or [])}\n{extra}"
    )
    return d


def write_root(root: Path, tool: dict | None = None, members: bool = True) -> None:
    """Write the root pyproject.toml with an optional [tool.lazy-select] table."""
    doc: dict = {"project": {"name": "ghost-root", "version": "0.0.0"}}
    tools: dict = {}
    if members:
        tools["uv"] = {"workspace": {"members": ["packages/*"]}}
    if tool:
        tools["lazy-select"] = tool
    if tools:
        doc["tool"] = tools
    (root / "pyproject.toml").write_text(tomlkit.dumps(doc))


@pytest.fixture
def recorder(tmp_path: Path) -> Path:
    """A runner script that records its argv, cwd and env as JSON."""
    script = tmp_path / "recorder.py"
    script.write_text(RECORDER)
    return script


@pytest.fixture
def ghost_repo(tmp_path: Path, recorder: Path) -> Path:
    """A five-workspace monorepo whose runner is the recorder script."""
    root = tmp_path / "repo"
    root.mkdir()
    write_root(root, tool={"runner": [sys.executable, str(recorder)]})
    for name, deps in GHOST_DEPS.items():
        d = write_workspace(root, f"packages/{name}", name, deps + ["requests>=2"])
        (d / "src").mkdir()
        (d / "src" / "__init__.py").write_text("")
        (d / "tests" / "nested").mkdir(parents=True)
        (d / "tests" / f"test_{name}.py").write_text("def test_ok():\n    pass\n")
        (d / "tests" / "nested" / f"test_{name}_nested.py").write_text(
            "def test_ok():\n    pass\n"
        )
    return root


@pytest.fixture
def ghost_ctx(ghost_repo: Path, recorder: Path) -> RepoContext:
    return RepoContext(
        root=ghost_repo, settings=Settings(runner=[sys.executable, str(recorder)])
    )


@pytest.fixture
def record_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Where the recorder writes; set through the environment."""
    path = tmp_path / "record.json"
    monkeypatch.setenv("RECORD_FILE", str(path))
    return path


def make_workspaces(deps: dict[str, list[str]]) -> dict[str, Workspace]:
    return {
        name: Workspace(name=name, path=f"packages/{name}", deps=tuple(d))
        for name, d in deps.items()
    }


@pytest.fixture
def abcd_graph() -> DependencyGraph:
    """a→b, b→d, c→d."""
    return DependencyGraph(
        make_workspaces({"a": ["b"], "b": ["d"], "c": ["d"], "d": []})
    )


@pytest.fixture
def ghost_graph() -> DependencyGraph:
    return DependencyGraph(make_workspaces(GHOST_DEPS))
