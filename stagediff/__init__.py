"""stagediff — three-way status between HEAD, the staging index and the working tree."""
from __future__ import annotations

from stagediff.index_diff import DiffResult, IndexDiff, classify_row

__all__ = ["DiffResult", "IndexDiff", "classify_row"]
