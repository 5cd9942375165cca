"""End-to-end tests for the ``stagediff`` CLI.

Each test ``chdir``s into ``tmp_path`` and drives the Typer app through
``CliRunner``; status and commit use the real per-repo SQLite file.
"""
from __future__ import annotations

import json
import os
import pathlib
import uuid

import pytest
from click.testing import Result
from typer.testing import CliRunner

from conftest import write_files
from stagediff.app import cli
from stagediff.errors import ExitCode
from stagediff.index import StagingIndex

runner = CliRunner()


@pytest.fixture(autouse=True)
def _no_repo_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("STAGEDIFF_REPO_ROOT", raising=False)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_cmd(tmp_path: pathlib.Path, *args: str) -> Result:
    """``chdir`` into *tmp_path* and invoke the CLI with *args*."""
    prev = os.getcwd()
    try:
        os.chdir(tmp_path)
        return runner.invoke(cli, list(args))
    finally:
        os.chdir(prev)


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------


def test_init_creates_stage_directory(tmp_path: pathlib.Path) -> None:
    result = _run_cmd(tmp_path, "init")
    assert result.exit_code == 0, result.output
    assert (tmp_path / ".stage" / "refs" / "heads").is_dir()
    assert (tmp_path / ".stage" / "index.json").is_file()
    assert (tmp_path / ".stage" / "config.toml").is_file()
    assert "Initialised empty stagediff repository" in result.output


def test_init_writes_valid_repo_id(tmp_path: pathlib.Path) -> None:
    _run_cmd(tmp_path, "init")
    data = json.loads((tmp_path / ".stage" / "repo.json").read_text())
    uuid.UUID(data["repo_id"])


def test_init_twice_without_force_is_user_error(tmp_path: pathlib.Path) -> None:
    _run_cmd(tmp_path, "init")
    result = _run_cmd(tmp_path, "init")
    assert result.exit_code == int(ExitCode.USER_ERROR)
    assert "Already a stagediff repository" in result.output


def test_init_force_preserves_repo_id(tmp_path: pathlib.Path) -> None:
    _run_cmd(tmp_path, "init")
    before = json.loads((tmp_path / ".stage" / "repo.json").read_text())["repo_id"]
    result = _run_cmd(tmp_path, "init", "--force")
    assert result.exit_code == 0, result.output
    after = json.loads((tmp_path / ".stage" / "repo.json").read_text())["repo_id"]
    assert before == after


# ---------------------------------------------------------------------------
# Repository required
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("args", [["status"], ["add", "x"], ["commit", "-m", "msg"]])
def test_commands_outside_repo_exit_2(tmp_path: pathlib.Path, args: list[str]) -> None:
    result = _run_cmd(tmp_path, *args)
    assert result.exit_code == int(ExitCode.REPO_NOT_FOUND)
    assert "Not a stagediff repository" in result.output


# ---------------------------------------------------------------------------
# add / rm / update-index
# ---------------------------------------------------------------------------


def test_add_stages_files(tmp_path: pathlib.Path) -> None:
    _run_cmd(tmp_path, "init")
    write_files(tmp_path, {"a.txt": b"a", "src/b.py": b"b"})
    result = _run_cmd(tmp_path, "add", "a.txt", "src")
    assert result.exit_code == 0, result.output
    assert set(StagingIndex.load(tmp_path).manifest()) == {"a.txt", "src/b.py"}


def test_add_unknown_path_is_user_error(tmp_path: pathlib.Path) -> None:
    _run_cmd(tmp_path, "init")
    result = _run_cmd(tmp_path, "add", "nope.txt")
    assert result.exit_code == int(ExitCode.USER_ERROR)
    assert "did not match any files" in result.output


def test_add_skips_ignored_unless_forced(tmp_path: pathlib.Path) -> None:
    _run_cmd(tmp_path, "init")
    write_files(tmp_path, {".stageignore": b"*.log\n", "run.log": b"x"})
    _run_cmd(tmp_path, "add", ".")
    assert "run.log" not in StagingIndex.load(tmp_path)
    _run_cmd(tmp_path, "add", "--force", "run.log")
    assert "run.log" in StagingIndex.load(tmp_path)


def test_rm_cached_keeps_file(tmp_path: pathlib.Path) -> None:
    _run_cmd(tmp_path, "init")
    write_files(tmp_path, {"a.txt": b"a"})
    _run_cmd(tmp_path, "add", "a.txt")
    result = _run_cmd(tmp_path, "rm", "--cached", "a.txt")
    assert result.exit_code == 0, result.output
    assert "a.txt" not in StagingIndex.load(tmp_path)
    assert (tmp_path / "a.txt").is_file()


def test_update_index_sets_skip_worktree(tmp_path: pathlib.Path) -> None:
    _run_cmd(tmp_path, "init")
    write_files(tmp_path, {"a.txt": b"a"})
    _run_cmd(tmp_path, "add", "a.txt")
    result = _run_cmd(tmp_path, "update-index", "--skip-worktree", "a.txt")
    assert result.exit_code == 0, result.output
    entry = StagingIndex.load(tmp_path).get("a.txt")
    assert entry is not None and entry.skip_worktree


def test_update_index_without_flag_is_user_error(tmp_path: pathlib.Path) -> None:
    _run_cmd(tmp_path, "init")
    write_files(tmp_path, {"a.txt": b"a"})
    _run_cmd(tmp_path, "add", "a.txt")
    result = _run_cmd(tmp_path, "update-index", "a.txt")
    assert result.exit_code == int(ExitCode.USER_ERROR)


# ---------------------------------------------------------------------------
# commit / status round trip
# ---------------------------------------------------------------------------


def test_commit_then_status_json(tmp_path: pathlib.Path) -> None:
    _run_cmd(tmp_path, "init")
    write_files(tmp_path, {"a.txt": b"a", "b.txt": b"b"})
    _run_cmd(tmp_path, "add", ".")
    result = _run_cmd(tmp_path, "commit", "-m", "initial")
    assert result.exit_code == 0, result.output
    assert (tmp_path / ".stage" / "stagediff.db").is_file()

    (tmp_path / "b.txt").unlink()
    write_files(tmp_path, {"c.txt": b"c"})

    result = _run_cmd(tmp_path, "status", "--json")
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["missing"] == ["b.txt"]
    assert payload["untracked"] == ["c.txt"]
    assert payload["changes_exist"] is True


def test_status_short_before_first_commit(tmp_path: pathlib.Path) -> None:
    _run_cmd(tmp_path, "init")
    write_files(tmp_path, {"a.txt": b"a"})
    _run_cmd(tmp_path, "add", "a.txt")
    result = _run_cmd(tmp_path, "status", "--short")
    assert result.exit_code == 0, result.output
    assert "A  a.txt" in result.output


def test_status_clean_tree(tmp_path: pathlib.Path) -> None:
    _run_cmd(tmp_path, "init")
    result = _run_cmd(tmp_path, "status")
    assert result.exit_code == 0, result.output
    assert "On branch main" in result.output
    assert "nothing to commit, working tree clean" in result.output


def test_status_positional_head_reports_unstaged_edit(tmp_path: pathlib.Path) -> None:
    _run_cmd(tmp_path, "init")
    write_files(tmp_path, {"a.txt": b"a"})
    _run_cmd(tmp_path, "add", "a.txt")
    _run_cmd(tmp_path, "commit", "-m", "initial")
    (tmp_path / "a.txt").write_bytes(b"edited on disk")

    result = _run_cmd(tmp_path, "status", "--short", "HEAD")

    assert result.exit_code == 0, result.output
    assert " M a.txt" in result.output


def test_status_positional_branch_then_paths(tmp_path: pathlib.Path) -> None:
    _run_cmd(tmp_path, "init")
    write_files(tmp_path, {"src/a.py": b"a", "docs/b.md": b"b"})
    _run_cmd(tmp_path, "add", ".")
    _run_cmd(tmp_path, "commit", "-m", "initial")
    write_files(tmp_path, {"src/a.py": b"changed", "docs/b.md": b"changed"})

    result = _run_cmd(tmp_path, "status", "--json", "main", "--", "src")

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["revision"] == "main"
    assert payload["modified"] == ["src/a.py"]


def test_status_unmatched_path_is_user_error(tmp_path: pathlib.Path) -> None:
    _run_cmd(tmp_path, "init")
    result = _run_cmd(tmp_path, "status", "nope.txt")
    assert result.exit_code == int(ExitCode.USER_ERROR)
    assert "did not match any files" in result.output


def test_add_read_failure_is_internal_error(
    tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _run_cmd(tmp_path, "init")
    write_files(tmp_path, {"a.txt": b"a"})

    def _unreadable(path: pathlib.Path) -> str:
        raise PermissionError(13, "Permission denied", str(path))

    monkeypatch.setattr("stagediff.index.hash_file", _unreadable)
    result = _run_cmd(tmp_path, "add", "a.txt")

    assert result.exit_code == int(ExitCode.INTERNAL_ERROR)
    assert "stagediff add failed" in result.output
    assert not isinstance(result.exception, PermissionError)
