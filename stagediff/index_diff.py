"""Compare the committed tree, the staging index and the working tree.

:class:`IndexDiff` walks the three snapshots in lockstep and sorts every
path that differs into seven sets:

- ``added``            — staged, not in the committed tree
- ``changed``          — staged with different content than committed
- ``removed``          — committed, no longer staged
- ``missing``          — staged, absent from the working tree
- ``modified``         — staged, working-tree content differs
- ``untracked``        — on disk, neither committed nor staged, not ignored
                         (also: removed from staging but still on disk)
- ``assume_unchanged`` — staged with the assume-unchanged flag

A path can land in several sets at once: the committed-vs-staged and the
staged-vs-live comparisons run independently on every row.

The engine never writes to any snapshot.  Results accumulate: calling
:meth:`IndexDiff.diff` twice without :meth:`IndexDiff.reset` adds the
second walk's findings on top of the first.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields

from stagediff.treewalk.filters import (
    ANY_DIFF,
    AndTreeFilter,
    NotIgnoredFilter,
    SkipWorktreeFilter,
    TreeFilter,
)
from stagediff.treewalk.iterators import EmptyTreeIterator, StagedFlags, TreeIterator
from stagediff.treewalk.walk import AlignedRow, TreeWalk

logger = logging.getLogger(__name__)


@dataclass
class DiffResult:
    """The seven path sets produced by one or more index-diff walks."""

    added: set[str] = field(default_factory=set)
    changed: set[str] = field(default_factory=set)
    removed: set[str] = field(default_factory=set)
    missing: set[str] = field(default_factory=set)
    modified: set[str] = field(default_factory=set)
    untracked: set[str] = field(default_factory=set)
    assume_unchanged: set[str] = field(default_factory=set)

    def is_clean(self) -> bool:
        """Return ``True`` when every set is empty."""
        return not any(getattr(self, f.name) for f in fields(self))

    def clear(self) -> None:
        for f in fields(self):
            getattr(self, f.name).clear()

    def as_dict(self) -> dict[str, list[str]]:
        """Return each set as a sorted list, keyed by set name."""
        return {f.name: sorted(getattr(self, f.name)) for f in fields(self)}


def _is_assume_unchanged(staged: TreeIterator) -> bool:
    return isinstance(staged, StagedFlags) and staged.assume_unchanged


def classify_row(row: AlignedRow, result: DiffResult) -> bool:
    """Sort one leaf row into *result*; return whether any set received it."""
    path = row.path
    committed, staged, live = row.committed, row.staged, row.live
    touched = False

    if committed is not None:
        if staged is not None:
            if committed.content_id != staged.content_id:
                # in tree, in index, content differs => changed
                result.changed.add(path)
                touched = True
        else:
            # in tree, not in index => removed
            result.removed.add(path)
            touched = True
            if live is not None:
                result.untracked.add(path)
    elif staged is not None:
        # not in tree, in index => added
        result.added.add(path)
        touched = True
    elif live is not None:
        # nowhere but on disk; the ignore filter already ran
        result.untracked.add(path)
        touched = True

    if staged is not None:
        if _is_assume_unchanged(staged):
            result.assume_unchanged.add(path)
            touched = True
        if row.live_consulted:
            if live is None:
                # in index, not on disk => missing
                result.missing.add(path)
                touched = True
            elif staged.content_id != live.content_id:
                # in index, on disk, content differs => modified
                result.modified.add(path)
                touched = True

    return touched


class IndexDiff:
    """Three-way status engine over committed, staged and live snapshots.

    Args:
        committed:   Committed tree, or ``None`` for "no prior commit"
                     (compared as an empty tree).
        staged:      Staging-index iterator.
        live:        Working-tree iterator.
        path_filter: Optional extra filter, e.g. a :class:`PathFilterGroup`.

    The iterators are borrowed for the duration of each :meth:`diff` call
    and rewound at its start.  One engine must not run two walks at once.
    """

    def __init__(
        self,
        committed: TreeIterator | None,
        staged: TreeIterator,
        live: TreeIterator,
        path_filter: TreeFilter | None = None,
    ) -> None:
        self._committed = committed if committed is not None else EmptyTreeIterator()
        self._staged = staged
        self._live = live
        self._path_filter = path_filter
        self._result = DiffResult()

    @property
    def result(self) -> DiffResult:
        """The accumulated result; empty until :meth:`diff` has run."""
        return self._result

    def tree_filter(self) -> TreeFilter:
        """Return the filter chain applied to every row."""
        chain: list[TreeFilter] = []
        if self._path_filter is not None:
            chain.append(self._path_filter)
        chain.append(NotIgnoredFilter())
        chain.append(SkipWorktreeFilter())
        chain.append(ANY_DIFF)
        return AndTreeFilter.create(chain)

    def diff(self) -> bool:
        """Walk all three snapshots; return whether any difference was found.

        Raises :class:`~stagediff.errors.SourceReadError` when a source
        cannot be read.  The walk is then abandoned; entries gathered
        before the failure stay in :attr:`result` but are incomplete.
        """
        changes_exist = False
        rows = 0

        def _visit(row: AlignedRow) -> None:
            nonlocal changes_exist, rows
            rows += 1
            if classify_row(row, self._result):
                changes_exist = True

        walker = TreeWalk(self._committed, self._staged, self._live, self.tree_filter())
        walker.walk(_visit)
        logger.debug(
            "Index diff visited %d rows, changes_exist=%s", rows, changes_exist
        )
        return changes_exist

    def reset(self) -> None:
        """Empty the accumulated result so the next :meth:`diff` starts clean."""
        self._result.clear()
