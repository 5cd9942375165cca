"""Tree filters — composable predicates over one aligned row.

A filter sees every row the walker produces, container rows included.
Rejecting a container row skips its whole sub-tree; rejecting a leaf row
keeps it away from the classifier.  Filters are combined with
:class:`AndTreeFilter` and must be free of side effects.
"""
from __future__ import annotations

import abc
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from stagediff.treewalk.iterators import IgnoreAware, StagedFlags

if TYPE_CHECKING:
    from stagediff.treewalk.walk import AlignedRow


class TreeFilter(abc.ABC):
    """Base class for row predicates."""

    @abc.abstractmethod
    def include(self, row: AlignedRow) -> bool:
        """Return ``True`` to keep *row* (and, for containers, descend)."""

    def consults_live(self, row: AlignedRow) -> bool:
        """Return ``False`` to hide the live entry from the classifier."""
        return True

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class _AllFilter(TreeFilter):
    def include(self, row: AlignedRow) -> bool:
        return True

    def __repr__(self) -> str:
        return "ALL"


class _AnyDiffFilter(TreeFilter):
    """Prune container rows whose three sources are provably identical.

    Identity is only provable when all three sources hold the container
    and report the same known id.  A missing source or an unknown id
    (``None``, as the working tree reports for directories) means the
    sub-tree must be walked.  Leaf rows are always admitted.
    """

    def include(self, row: AlignedRow) -> bool:
        if not row.is_container:
            return True
        sources = (row.committed, row.staged, row.live)
        if any(src is None for src in sources):
            return True
        ids = {src.content_id for src in sources if src is not None}
        return len(ids) != 1 or None in ids

    def __repr__(self) -> str:
        return "ANY_DIFF"


ALL: TreeFilter = _AllFilter()
ANY_DIFF: TreeFilter = _AnyDiffFilter()


class NotIgnoredFilter(TreeFilter):
    """Hide ignored working-tree entries that nothing tracks.

    A row is rejected only when neither the committed nor the staged
    snapshot has the path and the live entry is ignored.  Tracked paths
    always get through, whatever the ignore rules say.
    """

    def include(self, row: AlignedRow) -> bool:
        if row.committed is not None or row.staged is not None:
            return True
        live = row.live
        if live is None or not isinstance(live, IgnoreAware):
            return True
        return not live.is_ignored


class SkipWorktreeFilter(TreeFilter):
    """Keep skip-worktree entries away from the working tree.

    The row itself is admitted so the committed-vs-staged comparison still
    runs; only the live side is masked.
    """

    def include(self, row: AlignedRow) -> bool:
        return True

    def consults_live(self, row: AlignedRow) -> bool:
        staged = row.staged
        if staged is None or not isinstance(staged, StagedFlags):
            return True
        return not staged.skip_worktree


class PathFilterGroup(TreeFilter):
    """Restrict a walk to one or more repo-relative path prefixes.

    A row is admitted when its path equals a prefix, lies below one, or —
    for container rows — is an ancestor of one (so the walk can reach it).
    """

    def __init__(self, paths: Sequence[str]) -> None:
        cleaned = sorted({p.strip("/") for p in paths})
        if not cleaned:
            raise ValueError("PathFilterGroup needs at least one path")
        self._paths = tuple(cleaned)

    @classmethod
    def create(cls, paths: Iterable[str]) -> TreeFilter:
        """Return a filter for *paths*, or :data:`ALL` when it is empty or has the root."""
        paths = list(paths)
        if not paths or any(p.strip("/") in ("", ".") for p in paths):
            return ALL
        return cls(paths)

    def include(self, row: AlignedRow) -> bool:
        path = row.path
        for prefix in self._paths:
            if path == prefix or path.startswith(prefix + "/"):
                return True
            if row.is_container and prefix.startswith(path + "/"):
                return True
        return False

    def __repr__(self) -> str:
        return f"PathFilterGroup({list(self._paths)!r})"


class AndTreeFilter(TreeFilter):
    """Logical AND of several filters, evaluated in order."""

    def __init__(self, filters: Sequence[TreeFilter]) -> None:
        self._filters = tuple(filters)

    @classmethod
    def create(cls, filters: Iterable[TreeFilter]) -> TreeFilter:
        """Return the conjunction of *filters*, dropping :data:`ALL` members."""
        kept = [f for f in filters if f is not ALL]
        if not kept:
            return ALL
        if len(kept) == 1:
            return kept[0]
        return cls(kept)

    @property
    def filters(self) -> tuple[TreeFilter, ...]:
        return self._filters

    def include(self, row: AlignedRow) -> bool:
        return all(f.include(row) for f in self._filters)

    def consults_live(self, row: AlignedRow) -> bool:
        return all(f.consults_live(row) for f in self._filters)

    def __repr__(self) -> str:
        return "AND(" + ", ".join(repr(f) for f in self._filters) + ")"
