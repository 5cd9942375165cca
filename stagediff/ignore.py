"""Ignore rules — which untracked working-tree paths stay invisible.

Patterns use ``.gitignore`` syntax (gitwildmatch) and are read from the
repository's ignore file (``.stageignore`` unless ``[core] ignore_file``
says otherwise) plus ``[core] excludes`` from ``.stage/config.toml``.
"""
from __future__ import annotations

import logging
import pathlib
from collections.abc import Iterable

import pathspec

from stagediff.config import RepoConfig

logger = logging.getLogger(__name__)


class IgnoreRules:
    """Compiled ignore patterns for one repository."""

    def __init__(self, patterns: Iterable[str] = ()) -> None:
        self._patterns = [p for p in patterns if p.strip() and not p.lstrip().startswith("#")]
        self._spec = pathspec.PathSpec.from_lines("gitwildmatch", self._patterns)

    @classmethod
    def load(cls, root: pathlib.Path, config: RepoConfig | None = None) -> IgnoreRules:
        """Read the ignore file under *root* and append the config excludes."""
        config = config or RepoConfig()
        patterns: list[str] = []
        ignore_path = root / config.ignore_file
        if ignore_path.is_file():
            text = ignore_path.read_text(encoding="utf-8", errors="replace")
            patterns.extend(text.splitlines())
        patterns.extend(config.excludes)
        rules = cls(patterns)
        logger.debug("Loaded %d ignore patterns from %s", len(rules), ignore_path)
        return rules

    def __len__(self) -> int:
        return len(self._patterns)

    def is_ignored(self, path: str, is_dir: bool = False) -> bool:
        """Return ``True`` when *path* (repo-relative, POSIX) is ignored.

        Directories are matched with a trailing slash so that
        directory-only patterns such as ``build/`` apply to them.
        """
        candidate = path + "/" if is_dir else path
        return self._spec.match_file(candidate)
