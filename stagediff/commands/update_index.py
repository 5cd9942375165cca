"""stagediff update-index — set per-entry flags in the staging index.

``--assume-unchanged`` / ``--no-assume-unchanged``
    Mark (or unmark) entries as assume-unchanged.  ``status`` reports such
    paths separately when ``[status] show_assume_unchanged`` is enabled.

``--skip-worktree`` / ``--no-skip-worktree``
    Mark (or unmark) entries whose working-tree copy must never be
    consulted — neither ``missing`` nor ``modified`` is reported for them.
"""
from __future__ import annotations

import logging
import pathlib

from stagediff.errors import ExitCode, StagediffError
from stagediff.index import IndexEntry, StagingIndex, normalize_path

logger = logging.getLogger(__name__)


def run_update_index(
    root: pathlib.Path,
    paths: list[str],
    *,
    assume_unchanged: bool | None = None,
    skip_worktree: bool | None = None,
) -> list[IndexEntry]:
    """Apply the requested flag changes and return the updated entries."""
    if assume_unchanged is None and skip_worktree is None:
        raise StagediffError("no flag to update", exit_code=ExitCode.USER_ERROR)

    index = StagingIndex.load(root)
    updated: list[IndexEntry] = []
    for raw in paths:
        rel = normalize_path(root, raw)
        matches = index.paths_under(rel)
        if not matches:
            raise StagediffError(f"{raw}: not in the staging index", exit_code=ExitCode.USER_ERROR)
        for match in matches:
            updated.append(
                index.set_flags(
                    match,
                    assume_unchanged=assume_unchanged,
                    skip_worktree=skip_worktree,
                )
            )
    index.save(root)
    logger.debug("Updated flags on %d entries", len(updated))
    return updated
