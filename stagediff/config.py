"""Repository configuration helpers.

Reads ``.stage/config.toml`` — the local repository configuration file.

The config file supports:
- ``[core] ignore_file`` — name of the ignore-pattern file at the repo root
  (default ``.stageignore``).
- ``[core] excludes`` — extra ignore patterns applied on top of the file.
- ``[status] show_assume_unchanged`` — list assume-unchanged paths in
  ``stagediff status`` output (default ``false``).

A missing or unparseable file is never fatal: every key falls back to its
default and a warning is logged.
"""
from __future__ import annotations

import logging
import pathlib
import tomllib
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

_CONFIG_FILENAME = "config.toml"
_STAGE_DIR = ".stage"

DEFAULT_IGNORE_FILE = ".stageignore"

DEFAULT_CONFIG_TOML = """\
[core]
ignore_file = ".stageignore"
excludes = []

[status]
show_assume_unchanged = false
"""


@dataclass(frozen=True)
class RepoConfig:
    """Effective repository configuration after defaults are applied.

    Attributes:
        ignore_file:           Ignore-pattern file name, relative to the repo root.
        excludes:              Extra gitwildmatch patterns treated as ignored.
        show_assume_unchanged: Whether ``status`` lists assume-unchanged paths.
    """

    ignore_file: str = DEFAULT_IGNORE_FILE
    excludes: tuple[str, ...] = field(default_factory=tuple)
    show_assume_unchanged: bool = False


def config_path(repo_root: pathlib.Path) -> pathlib.Path:
    """Return the path to ``.stage/config.toml`` for *repo_root*."""
    return repo_root / _STAGE_DIR / _CONFIG_FILENAME


def _load_config(path: pathlib.Path) -> dict[str, object]:
    """Load and parse config.toml; return empty dict if absent or unreadable."""
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("⚠️ Failed to parse %s: %s", path, exc)
        return {}


def load_repo_config(repo_root: pathlib.Path) -> RepoConfig:
    """Return the :class:`RepoConfig` for *repo_root*.

    Values of the wrong type are ignored (with a warning) rather than
    rejected, so a hand-edited config never blocks ``status``.
    """
    data = _load_config(config_path(repo_root))
    core = data.get("core", {})
    status = data.get("status", {})
    if not isinstance(core, dict):
        core = {}
    if not isinstance(status, dict):
        status = {}

    ignore_file = core.get("ignore_file", DEFAULT_IGNORE_FILE)
    if not isinstance(ignore_file, str) or not ignore_file:
        logger.warning("⚠️ [core] ignore_file must be a non-empty string — using default")
        ignore_file = DEFAULT_IGNORE_FILE

    raw_excludes = core.get("excludes", [])
    excludes: tuple[str, ...] = ()
    if isinstance(raw_excludes, list):
        excludes = tuple(str(p) for p in raw_excludes)
    else:
        logger.warning("⚠️ [core] excludes must be a list — ignoring")

    show_assume_unchanged = bool(status.get("show_assume_unchanged", False))

    return RepoConfig(
        ignore_file=ignore_file,
        excludes=excludes,
        show_assume_unchanged=show_assume_unchanged,
    )
