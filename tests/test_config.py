"""Tests for repository configuration, process settings and ignore rules."""
from __future__ import annotations

import pathlib

import pytest

from stagediff.config import DEFAULT_IGNORE_FILE, RepoConfig, config_path, load_repo_config
from stagediff.ignore import IgnoreRules
from stagediff.settings import StagediffSettings


@pytest.fixture
def stage_root(tmp_path: pathlib.Path) -> pathlib.Path:
    (tmp_path / ".stage").mkdir()
    return tmp_path


# ---------------------------------------------------------------------------
# .stage/config.toml
# ---------------------------------------------------------------------------


def test_missing_config_uses_defaults(stage_root: pathlib.Path) -> None:
    assert load_repo_config(stage_root) == RepoConfig()


def test_config_values_are_read(stage_root: pathlib.Path) -> None:
    config_path(stage_root).write_text(
        '[core]\nignore_file = ".myignore"\nexcludes = ["*.tmp"]\n\n'
        "[status]\nshow_assume_unchanged = true\n"
    )
    config = load_repo_config(stage_root)
    assert config.ignore_file == ".myignore"
    assert config.excludes == ("*.tmp",)
    assert config.show_assume_unchanged is True


def test_unparseable_config_falls_back(
    stage_root: pathlib.Path, caplog: pytest.LogCaptureFixture
) -> None:
    config_path(stage_root).write_text("[core\nbroken")
    assert load_repo_config(stage_root).ignore_file == DEFAULT_IGNORE_FILE
    assert "Failed to parse" in caplog.text


def test_wrongly_typed_values_fall_back(stage_root: pathlib.Path) -> None:
    config_path(stage_root).write_text('[core]\nignore_file = 3\nexcludes = "*.tmp"\n')
    config = load_repo_config(stage_root)
    assert config.ignore_file == DEFAULT_IGNORE_FILE
    assert config.excludes == ()


# ---------------------------------------------------------------------------
# Ignore rules
# ---------------------------------------------------------------------------


def test_ignore_rules_match_gitignore_syntax() -> None:
    rules = IgnoreRules(["*.log", "build/", "!keep.log", "# comment", ""])
    assert rules.is_ignored("debug.log")
    assert rules.is_ignored("deep/nested/debug.log")
    assert not rules.is_ignored("keep.log")
    assert rules.is_ignored("build", is_dir=True)
    assert not rules.is_ignored("build")
    assert len(rules) == 3


def test_ignore_rules_load_file_and_excludes(stage_root: pathlib.Path) -> None:
    (stage_root / DEFAULT_IGNORE_FILE).write_text("*.log\n")
    rules = IgnoreRules.load(stage_root, RepoConfig(excludes=("*.tmp",)))
    assert rules.is_ignored("a.log")
    assert rules.is_ignored("a.tmp")
    assert not rules.is_ignored("a.txt")


# ---------------------------------------------------------------------------
# Process settings
# ---------------------------------------------------------------------------


def test_settings_default_database_lives_under_stage(
    stage_root: pathlib.Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("STAGEDIFF_DATABASE_URL", raising=False)
    url = StagediffSettings().database_url_for(stage_root)
    assert url.startswith("sqlite+aiosqlite:///")
    assert url.endswith("/.stage/stagediff.db")


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STAGEDIFF_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("STAGEDIFF_LOG_LEVEL", "debug")
    settings = StagediffSettings()
    assert settings.database_url_for(pathlib.Path(".")) == "sqlite+aiosqlite:///:memory:"
    assert settings.log_level == "DEBUG"


def test_settings_reject_unknown_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STAGEDIFF_LOG_LEVEL", "chatty")
    with pytest.raises(ValueError):
        StagediffSettings()
