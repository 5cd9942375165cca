"""stagediff add / rm — update the staging index from the working tree.

``add PATH...``
    Hash each file and record it in ``.stage/index.json``.  Directories are
    walked recursively.  Untracked files matching the ignore rules are
    skipped unless ``--force`` is given.  A path that is staged but gone
    from disk is dropped from the index (staging the deletion).

``rm PATH...``
    Drop entries from the index.  Without ``--cached`` the working-tree
    files are deleted as well.
"""
from __future__ import annotations

import logging
import os
import pathlib

import typer

from stagediff._repo import STAGE_DIR
from stagediff.config import load_repo_config
from stagediff.errors import ExitCode, StagediffError
from stagediff.ignore import IgnoreRules
from stagediff.index import StagingIndex, normalize_path

logger = logging.getLogger(__name__)


def _iter_files(root: pathlib.Path, rel_dir: str) -> list[str]:
    """Return repo-relative paths of regular files below *rel_dir*, sorted."""
    base = root / rel_dir if rel_dir else root
    found: list[str] = []
    for dirpath, dirnames, filenames in os.walk(base):
        current = pathlib.Path(dirpath)
        if current == root:
            dirnames[:] = [d for d in dirnames if d != STAGE_DIR]
        dirnames.sort()
        for filename in sorted(filenames):
            file_path = current / filename
            if file_path.is_file():
                found.append(file_path.relative_to(root).as_posix())
    return found


def run_add(root: pathlib.Path, paths: list[str], *, force: bool = False) -> list[str]:
    """Stage *paths* and return the list of index paths that were touched.

    Raises :class:`StagediffError` (user error) when a path matches neither
    a file on disk nor a staged entry.
    """
    index = StagingIndex.load(root)
    ignore = IgnoreRules.load(root, load_repo_config(root))
    touched: list[str] = []

    for raw in paths:
        rel = normalize_path(root, raw)
        target = root / rel if rel else root
        if target.is_dir():
            candidates = _iter_files(root, rel)
            for gone in index.paths_under(rel):
                if not (root / gone).is_file():
                    index.remove(gone)
                    touched.append(gone)
        elif target.is_file():
            candidates = [rel]
        elif index.paths_under(rel):
            for gone in index.paths_under(rel):
                index.remove(gone)
                touched.append(gone)
            continue
        else:
            raise StagediffError(
                f"pathspec '{raw}' did not match any files", exit_code=ExitCode.USER_ERROR
            )

        for candidate in candidates:
            if candidate not in index and not force and ignore.is_ignored(candidate):
                logger.debug("Skipping ignored path %s", candidate)
                continue
            index.stage_file(root, candidate)
            touched.append(candidate)

    index.save(root)
    logger.info("✅ Staged %d path(s)", len(touched))
    return touched


def run_rm(root: pathlib.Path, paths: list[str], *, cached: bool = False) -> list[str]:
    """Remove *paths* from the index (and from disk unless *cached*)."""
    index = StagingIndex.load(root)
    removed: list[str] = []

    for raw in paths:
        rel = normalize_path(root, raw)
        matches = index.paths_under(rel)
        if not matches:
            raise StagediffError(
                f"pathspec '{raw}' did not match any staged files",
                exit_code=ExitCode.USER_ERROR,
            )
        for match in matches:
            index.remove(match)
            removed.append(match)
            if not cached:
                (root / match).unlink(missing_ok=True)

    index.save(root)
    return removed
