"""Three-source tree walking: iterators, filters and the merge walker."""
from __future__ import annotations

from stagediff.treewalk.filters import (
    ALL,
    ANY_DIFF,
    AndTreeFilter,
    NotIgnoredFilter,
    PathFilterGroup,
    SkipWorktreeFilter,
    TreeFilter,
)
from stagediff.treewalk.iterators import (
    EmptyTreeIterator,
    IgnoreAware,
    IndexIterator,
    ManifestTreeIterator,
    StagedFlags,
    TreeIterator,
    WorkingTreeIterator,
)
from stagediff.treewalk.walk import AlignedRow, TreeWalk

__all__ = [
    "ALL",
    "ANY_DIFF",
    "AlignedRow",
    "AndTreeFilter",
    "EmptyTreeIterator",
    "IgnoreAware",
    "IndexIterator",
    "ManifestTreeIterator",
    "NotIgnoredFilter",
    "PathFilterGroup",
    "SkipWorktreeFilter",
    "StagedFlags",
    "TreeFilter",
    "TreeIterator",
    "TreeWalk",
    "WorkingTreeIterator",
]
