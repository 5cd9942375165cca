"""Lockstep merge walk over the committed, staged and live iterators.

At each step the walker takes the smallest sort key among the three
cursors, builds an :class:`AlignedRow` from every cursor sitting on that
key, hands it to the filter, and advances exactly those cursors.  Container
rows are descended into (or skipped, when the filter rejects them); leaf
rows go to the caller's ``visit`` callback.

A row holds live references to the iterators, so it is only valid inside
the ``visit`` call that receives it.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from stagediff.treewalk.filters import ALL, TreeFilter
from stagediff.treewalk.iterators import TreeIterator, entry_sort_key

logger = logging.getLogger(__name__)


@dataclass
class AlignedRow:
    """One path with its optional committed, staged and live entries.

    ``live_consulted`` is ``False`` when a filter masked the live side
    (skip-worktree); the classifier then skips staged-vs-live checks.
    """

    path: str
    committed: TreeIterator | None
    staged: TreeIterator | None
    live: TreeIterator | None
    live_consulted: bool = True

    @property
    def is_container(self) -> bool:
        return any(
            src is not None and src.is_container
            for src in (self.committed, self.staged, self.live)
        )


def _key(it: TreeIterator | None) -> bytes | None:
    if it is None or it.eof:
        return None
    return entry_sort_key(it.name, it.is_container)


class TreeWalk:
    """Depth-first merge-join of three snapshot iterators keyed on path."""

    def __init__(
        self,
        committed: TreeIterator,
        staged: TreeIterator,
        live: TreeIterator,
        tree_filter: TreeFilter | None = None,
    ) -> None:
        self._roots = (committed, staged, live)
        self._filter = tree_filter or ALL

    @property
    def tree_filter(self) -> TreeFilter:
        return self._filter

    def walk(self, visit: Callable[[AlignedRow], None]) -> None:
        """Rewind all three sources and visit every admitted leaf row."""
        for source in self._roots:
            source.reset()
        committed, staged, live = self._roots
        self._merge(committed, staged, live, visit)

    def _merge(
        self,
        committed: TreeIterator | None,
        staged: TreeIterator | None,
        live: TreeIterator | None,
        visit: Callable[[AlignedRow], None],
    ) -> None:
        sources = (committed, staged, live)
        while True:
            keys = [_key(src) for src in sources]
            present = [k for k in keys if k is not None]
            if not present:
                return
            low = min(present)
            on_row = [src if key == low else None for src, key in zip(sources, keys)]
            path = next(src.path for src in on_row if src is not None)
            row = AlignedRow(path, on_row[0], on_row[1], on_row[2])

            if row.is_container:
                if self._filter.include(row):
                    children = [src.descend() if src is not None else None for src in on_row]
                    self._merge(children[0], children[1], children[2], visit)
                else:
                    logger.debug("Skipped sub-tree %s", path)
            elif self._filter.include(row):
                row.live_consulted = self._filter.consults_live(row)
                visit(row)

            for src in on_row:
                if src is not None:
                    src.advance()
