"""Tests for lazy_select.cli."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from conftest import write_workspace
from lazy_select.cli import cli, exit_status, split_passthrough


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestSplitPassthrough:
    def test_targets_only(self) -> None:
        assert split_passthrough(["a", "b"]) == (["a", "b"], [])

    def test_first_option_starts_passthrough(self) -> None:
        args = ["b", "c", "-x", "value", "--maxfail=2"]
        assert split_passthrough(args) == (["b", "c"], ["-x", "value", "--maxfail=2"])

    def test_no_targets(self) -> None:
        assert split_passthrough(["--", "-k", "a"]) == ([], ["--", "-k", "a"])

    def test_empty(self) -> None:
        assert split_passthrough([]) == ([], [])


class TestExitStatus:
    @pytest.mark.parametrize(("code", "status"), [(0, 0), (1, 1), (5, 5), (-15, 143)])
    def test_maps_return_codes(self, code: int, status: int) -> None:
        assert exit_status(code) == status


class TestTestCommand:
    def test_compare_branch_without_changed(
        self, runner: CliRunner, tmp_path: Path
    ) -> None:
        # Fails the same way no matter what the directory holds
        result = runner.invoke(
            cli, ["--root", str(tmp_path), "test", "--compareBranch", "main"]
        )

        assert result.exit_code == 1
        assert (
            "Option --compareBranch doesn't make sense without option --changed"
            in result.output
        )

    def test_unknown_target_exits_zero(
        self, runner: CliRunner, ghost_repo: Path, record_file: Path
    ) -> None:
        result = runner.invoke(cli, ["--root", str(ghost_repo), "test", "nope"])

        assert result.exit_code == 0
        assert "No workspaces found in selection" in result.output
        assert not record_file.exists()

    def test_forwards_selection_and_flags(
        self, runner: CliRunner, ghost_repo: Path, record_file: Path
    ) -> None:
        result = runner.invoke(
            cli,
            [
                "--root",
                str(ghost_repo),
                "test",
                "b",
                "c",
                "--descendants",
                "--regex",
                "a_nested",
                "-x",
                "--maxfail=2",
            ],
        )

        assert result.exit_code == 0, result.output
        record = json.loads(record_file.read_text())
        assert record["argv"] == [
            "packages/d",
            "packages/b",
            "packages/c",
            "packages/a/tests/nested/test_a_nested.py",
            "-x",
            "--maxfail=2",
        ]

    def test_double_dash_forwards_the_tail(
        self, runner: CliRunner, ghost_repo: Path, record_file: Path
    ) -> None:
        result = runner.invoke(
            cli,
            [
                "--root",
                str(ghost_repo),
                "test",
                "b",
                "--",
                "packages/a/tests/test_a.py",
                "-k",
                "ok",
            ],
        )

        assert result.exit_code == 0, result.output
        record = json.loads(record_file.read_text())
        assert record["argv"] == [
            "packages/b",
            "packages/a/tests/test_a.py",
            "-k",
            "ok",
        ]

    def test_double_dash_without_targets_selects_all(
        self, runner: CliRunner, ghost_repo: Path, record_file: Path
    ) -> None:
        result = runner.invoke(
            cli,
            ["--root", str(ghost_repo), "test", "--", "packages/b/tests/test_b.py"],
        )

        assert result.exit_code == 0, result.output
        record = json.loads(record_file.read_text())
        assert record["argv"][-1] == "packages/b/tests/test_b.py"
        assert len(record["argv"]) == 6

    def test_runner_exit_code_propagates(
        self,
        runner: CliRunner,
        ghost_repo: Path,
        record_file: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("RECORD_EXIT", "3")

        result = runner.invoke(cli, ["--root", str(ghost_repo), "test", "a"])

        assert result.exit_code == 3

    @patch("lazy_select.changes.git")
    def test_changed_with_nothing_changed(
        self,
        mock_git: MagicMock,
        runner: CliRunner,
        ghost_repo: Path,
        record_file: Path,
    ) -> None:
        mock_git.return_value = ""

        result = runner.invoke(
            cli, ["--root", str(ghost_repo), "test", "--changed", "--ancestors"]
        )

        assert result.exit_code == 0
        assert "No workspaces found in selection" in result.output
        assert not record_file.exists()

    def test_discovery_error_exits_one(self, runner: CliRunner, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text(
            '[tool.uv.workspace]\nmembers = ["packages/*"]\n'
        )
        write_workspace(tmp_path, "packages/one", "same")
        write_workspace(tmp_path, "packages/two", "same")

        result = runner.invoke(cli, ["--root", str(tmp_path), "test"])

        assert result.exit_code == 1
        assert "declared by both" in result.output

    def test_missing_root_exits_one(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["--root", str(tmp_path / "missing"), "test"])

        assert result.exit_code == 1
        assert "is not a directory" in result.output


class TestSelectCommand:
    def test_json_output(self, runner: CliRunner, ghost_repo: Path) -> None:
        result = runner.invoke(
            cli,
            ["--root", str(ghost_repo), "select", "b", "c", "--descendants", "--json"],
        )

        assert result.exit_code == 0
        assert json.loads(result.output) == {
            "workspaces": {"b": "explicit", "c": "explicit", "d": "descendant"},
            "missing": [],
        }

    @patch("lazy_select.changes.git")
    def test_changed_with_ancestors(
        self, mock_git: MagicMock, runner: CliRunner, ghost_repo: Path
    ) -> None:
        def fake_git(*args: str, cwd: Path, timeout: float | None = None) -> str:
            return {"merge-base": "abc123", "diff": "packages/c/src/x.py"}.get(
                args[0], ""
            )

        mock_git.side_effect = fake_git

        result = runner.invoke(
            cli,
            [
                "--root",
                str(ghost_repo),
                "select",
                "--changed",
                "--compare-branch",
                "main",
                "--ancestors",
            ],
        )

        assert result.exit_code == 0
        assert result.output.splitlines() == ["c\tchanged", "e\tancestor"]

    def test_empty_selection(self, runner: CliRunner, ghost_repo: Path) -> None:
        result = runner.invoke(cli, ["--root", str(ghost_repo), "select", "nope"])

        assert result.exit_code == 0
        assert "No workspaces found in selection" in result.output


class TestStartCommand:
    @pytest.fixture
    def web_repo(self, ghost_repo: Path, recorder: Path) -> Path:
        start = json.dumps([sys.executable, str(recorder)])
        write_workspace(
            ghost_repo,
            "packages/web",
            "web",
            extra=f'[tool.lazy-select]\ntype = "view"\nstart = {start}\n',
        )
        return ghost_repo

    def test_prompts_for_target(
        self, runner: CliRunner, web_repo: Path, record_file: Path
    ) -> None:
        result = runner.invoke(
            cli, ["--root", str(web_repo), "start", "--port", "1"], input="web\n"
        )

        assert result.exit_code == 0, result.output
        assert "Select a workspace to start" in result.output
        record = json.loads(record_file.read_text())
        assert record["argv"] == ["--port", "1"]
        assert record["env"]["LAZY_SELECT_WORKSPACE"] == "web"

    def test_named_target(
        self, runner: CliRunner, web_repo: Path, record_file: Path
    ) -> None:
        result = runner.invoke(cli, ["--root", str(web_repo), "start", "web"])

        assert result.exit_code == 0, result.output
        assert record_file.exists()

    def test_double_dash_forwards_the_tail(
        self, runner: CliRunner, web_repo: Path, record_file: Path
    ) -> None:
        result = runner.invoke(
            cli, ["--root", str(web_repo), "start", "web", "--", "--port", "1"]
        )

        assert result.exit_code == 0, result.output
        record = json.loads(record_file.read_text())
        assert record["argv"] == ["--port", "1"]

    def test_not_startable(self, runner: CliRunner, web_repo: Path) -> None:
        result = runner.invoke(cli, ["--root", str(web_repo), "start", "a"])

        assert result.exit_code == 1
        assert "can't be started" in result.output


class TestWorkspacesCommand:
    def test_lists_in_dependency_order(
        self, runner: CliRunner, ghost_repo: Path
    ) -> None:
        result = runner.invoke(cli, ["--root", str(ghost_repo), "workspaces"])

        assert result.exit_code == 0
        names = [line.split()[0] for line in result.output.splitlines()]
        assert names == ["d", "b", "c", "a", "e"]
        assert "→ [b]" in result.output

    def test_json(self, runner: CliRunner, ghost_repo: Path) -> None:
        result = runner.invoke(cli, ["--root", str(ghost_repo), "workspaces", "--json"])

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert [ws["name"] for ws in payload] == ["d", "b", "c", "a", "e"]
        assert payload[3]["deps"] == ["b"]
        assert payload[0]["kind"] == "package"
