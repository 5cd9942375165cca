"""Snapshot iterators consumed by :class:`~stagediff.treewalk.walk.TreeWalk`.

Every source — the committed tree, the staging index, the working
directory — is exposed through the same :class:`TreeIterator` protocol: a
cursor over one directory level, sorted by :func:`entry_sort_key`, that
can descend into the container under the cursor.  Role-specific data is
exposed through narrow capability protocols (:class:`StagedFlags`,
:class:`IgnoreAware`) that callers test with ``isinstance``.

Ordering
--------
Entries within a level sort by the UTF-8 bytes of their name, with
containers sorting as ``name + "/"``.  Depth-first traversal in that order
visits paths in the same byte order Git uses, and a file ``a`` in one
source never lines up with a directory ``a/`` in another.
"""
from __future__ import annotations

import logging
import os
import pathlib
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, Protocol, TypeVar, runtime_checkable

from stagediff.errors import SourceReadError
from stagediff.snapshot import BLOB_KIND, TREE_KIND, compute_tree_id, hash_file

if TYPE_CHECKING:
    from stagediff.ignore import IgnoreRules
    from stagediff.index import IndexEntry, StagingIndex

logger = logging.getLogger(__name__)

_STAGE_DIR = ".stage"

L = TypeVar("L")


def entry_sort_key(name: str, is_container: bool) -> bytes:
    """Return the byte-wise sort key for an entry within one directory level."""
    key = name.encode("utf-8", "surrogateescape")
    return key + b"/" if is_container else key


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class TreeIterator(Protocol):
    """Cursor over the entries of one directory level of a snapshot.

    A freshly constructed iterator is positioned on its first entry (or is
    already at ``eof`` when the level is empty).  Properties other than
    ``eof`` are only meaningful while ``eof`` is ``False``.
    """

    @property
    def eof(self) -> bool: ...

    @property
    def name(self) -> str: ...

    @property
    def path(self) -> str: ...

    @property
    def is_container(self) -> bool: ...

    @property
    def content_id(self) -> str | None:
        """Opaque identity of the current entry; ``None`` when unknown."""
        ...

    def advance(self) -> bool:
        """Move to the next entry; return ``False`` once exhausted."""
        ...

    def descend(self) -> TreeIterator:
        """Return an iterator over the container under the cursor."""
        ...

    def reset(self) -> None:
        """Rewind to the first entry of this level."""
        ...


@runtime_checkable
class StagedFlags(Protocol):
    """Per-entry flags owned by the staging index."""

    @property
    def assume_unchanged(self) -> bool: ...

    @property
    def skip_worktree(self) -> bool: ...


@runtime_checkable
class IgnoreAware(Protocol):
    """Live sources that know whether the current entry is ignored."""

    @property
    def is_ignored(self) -> bool: ...


# ---------------------------------------------------------------------------
# Empty tree
# ---------------------------------------------------------------------------


class EmptyTreeIterator:
    """A tree with no entries — stands in for "no prior commit"."""

    eof = True

    @property
    def name(self) -> str:
        raise IndexError("empty tree has no entries")

    @property
    def path(self) -> str:
        raise IndexError("empty tree has no entries")

    is_container = False
    content_id = None

    def advance(self) -> bool:
        return False

    def descend(self) -> EmptyTreeIterator:
        return EmptyTreeIterator()

    def reset(self) -> None:
        pass


# ---------------------------------------------------------------------------
# In-memory trees (committed manifest, staging index)
# ---------------------------------------------------------------------------


class _TreeNode(Generic[L]):
    """A directory in an in-memory tree; leaves are source-specific payloads."""

    __slots__ = ("children", "_tree_id")

    def __init__(self) -> None:
        self.children: dict[str, _TreeNode[L] | L] = {}
        self._tree_id: str | None = None

    def tree_id(self, leaf_id: Callable[[L], str]) -> str:
        if self._tree_id is None:
            parts: list[tuple[str, str, str]] = []
            for name, child in self.children.items():
                if isinstance(child, _TreeNode):
                    parts.append((name, TREE_KIND, child.tree_id(leaf_id)))
                else:
                    parts.append((name, BLOB_KIND, leaf_id(child)))
            self._tree_id = compute_tree_id(parts)
        return self._tree_id


def _build_tree(items: Iterable[tuple[str, L]]) -> _TreeNode[L]:
    """Fold flat ``(path, leaf)`` pairs into a nested :class:`_TreeNode`."""
    root: _TreeNode[L] = _TreeNode()
    for path, leaf in items:
        *dirs, base = path.split("/")
        node = root
        for part in dirs:
            child = node.children.get(part)
            if not isinstance(child, _TreeNode):
                if child is not None:
                    raise ValueError(f"path {path!r} nests under a file entry")
                child = _TreeNode()
                node.children[part] = child
            node = child
        if isinstance(node.children.get(base), _TreeNode):
            raise ValueError(f"path {path!r} collides with a directory entry")
        node.children[base] = leaf
    return root


class _NodeIterator(Generic[L]):
    """Shared cursor logic for trees that are fully held in memory."""

    _node: _TreeNode[L]
    _prefix: str
    _names: list[str]
    _pos: int

    @classmethod
    def _at(cls, node: _TreeNode[L], prefix: str) -> _NodeIterator[L]:
        it = cls.__new__(cls)
        it._bind(node, prefix)
        return it

    def _bind(self, node: _TreeNode[L], prefix: str) -> None:
        self._node = node
        self._prefix = prefix
        self._names = sorted(
            node.children,
            key=lambda n: entry_sort_key(n, isinstance(node.children[n], _TreeNode)),
        )
        self._pos = 0

    def _leaf_id(self, leaf: L) -> str:
        raise NotImplementedError

    @property
    def _current(self) -> _TreeNode[L] | L:
        return self._node.children[self._names[self._pos]]

    @property
    def eof(self) -> bool:
        return self._pos >= len(self._names)

    @property
    def name(self) -> str:
        return self._names[self._pos]

    @property
    def path(self) -> str:
        return self._prefix + self.name

    @property
    def is_container(self) -> bool:
        return isinstance(self._current, _TreeNode)

    @property
    def content_id(self) -> str | None:
        current = self._current
        if isinstance(current, _TreeNode):
            return current.tree_id(self._leaf_id)
        return self._leaf_id(current)

    def advance(self) -> bool:
        if not self.eof:
            self._pos += 1
        return not self.eof

    def descend(self) -> _NodeIterator[L]:
        current = self._current
        if not isinstance(current, _TreeNode):
            raise ValueError(f"{self.path!r} is not a container")
        return self._at(current, self.path + "/")

    def reset(self) -> None:
        self._pos = 0


class ManifestTreeIterator(_NodeIterator[str]):
    """Committed tree built from a ``{path: object_id}`` snapshot manifest."""

    def __init__(self, manifest: Mapping[str, str]) -> None:
        self._bind(_build_tree(manifest.items()), "")

    def _leaf_id(self, leaf: str) -> str:
        return leaf


class IndexIterator(_NodeIterator["IndexEntry"]):
    """Staged tree built from the entries of a :class:`StagingIndex`.

    Directory ids are derived exactly as for :class:`ManifestTreeIterator`,
    so an unchanged sub-tree has the same id in both.
    """

    def __init__(self, index: StagingIndex | Mapping[str, IndexEntry]) -> None:
        entries: Mapping[str, IndexEntry] = getattr(index, "entries", index)
        self._bind(_build_tree(entries.items()), "")

    def _leaf_id(self, leaf: IndexEntry) -> str:
        return leaf.object_id

    @property
    def entry(self) -> IndexEntry | None:
        current = self._current
        return None if isinstance(current, _TreeNode) else current

    @property
    def assume_unchanged(self) -> bool:
        entry = self.entry
        return entry is not None and entry.assume_unchanged

    @property
    def skip_worktree(self) -> bool:
        entry = self.entry
        return entry is not None and entry.skip_worktree


# ---------------------------------------------------------------------------
# Working directory
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _FsEntry:
    name: str
    is_container: bool
    fs_path: str
    size: int
    mtime_ns: int


class WorkingTreeIterator:
    """Live source: one directory level of the working tree on disk.

    Only regular files and real directories are reported; symlinks to
    directories and special files are skipped.  ``.stage/`` is skipped at
    the repository root.  File ids are computed lazily — the sha256 is only
    taken when the walker actually compares the entry — and the optional
    *stat_cache* (normally the staging index) lets an entry whose size and
    ``mtime_ns`` match the cache reuse the cached id without hashing.

    Directories report ``content_id = None``: their identity is never known
    without reading every file beneath them.

    Every ``OSError`` is re-raised as :class:`SourceReadError`.
    """

    def __init__(
        self,
        root: pathlib.Path,
        ignore: IgnoreRules | None = None,
        stat_cache: Mapping[str, IndexEntry] | None = None,
    ) -> None:
        self._root = root
        self._ignore = ignore
        self._stat_cache: Mapping[str, IndexEntry] = stat_cache or {}
        self._bind(root, "", parent_ignored=False)

    def _bind(self, directory: pathlib.Path, prefix: str, *, parent_ignored: bool) -> None:
        self._dir = directory
        self._prefix = prefix
        self._parent_ignored = parent_ignored
        self._entries = self._scan()
        self._ids: dict[int, str] = {}
        self._pos = 0

    def _scan(self) -> list[_FsEntry]:
        rel = self._prefix.rstrip("/")
        try:
            with os.scandir(self._dir) as listing:
                raw = list(listing)
        except OSError as exc:
            raise SourceReadError(f"cannot list {self._dir}: {exc}", path=rel) from exc

        entries: list[_FsEntry] = []
        for item in raw:
            if not self._prefix and item.name == _STAGE_DIR:
                continue
            try:
                if item.is_dir(follow_symlinks=False):
                    entries.append(_FsEntry(item.name, True, item.path, 0, 0))
                elif item.is_file():
                    st = item.stat()
                    entries.append(
                        _FsEntry(item.name, False, item.path, st.st_size, st.st_mtime_ns)
                    )
            except OSError as exc:
                raise SourceReadError(
                    f"cannot stat {item.path}: {exc}", path=self._prefix + item.name
                ) from exc
        entries.sort(key=lambda e: entry_sort_key(e.name, e.is_container))
        logger.debug("Scanned %s (%d entries)", self._dir, len(entries))
        return entries

    @property
    def eof(self) -> bool:
        return self._pos >= len(self._entries)

    @property
    def name(self) -> str:
        return self._entries[self._pos].name

    @property
    def path(self) -> str:
        return self._prefix + self.name

    @property
    def is_container(self) -> bool:
        return self._entries[self._pos].is_container

    @property
    def content_id(self) -> str | None:
        entry = self._entries[self._pos]
        if entry.is_container:
            return None
        cached = self._ids.get(self._pos)
        if cached is not None:
            return cached
        path = self.path
        staged = self._stat_cache.get(path)
        if (
            staged is not None
            and staged.size == entry.size
            and staged.mtime_ns == entry.mtime_ns
        ):
            object_id = staged.object_id
        else:
            try:
                object_id = hash_file(pathlib.Path(entry.fs_path))
            except OSError as exc:
                raise SourceReadError(f"cannot read {entry.fs_path}: {exc}", path=path) from exc
        self._ids[self._pos] = object_id
        return object_id

    @property
    def is_ignored(self) -> bool:
        if self._parent_ignored:
            return True
        if self._ignore is None:
            return False
        return self._ignore.is_ignored(self.path, is_dir=self.is_container)

    def advance(self) -> bool:
        if not self.eof:
            self._pos += 1
        return not self.eof

    def descend(self) -> WorkingTreeIterator:
        entry = self._entries[self._pos]
        if not entry.is_container:
            raise ValueError(f"{self.path!r} is not a container")
        child = WorkingTreeIterator.__new__(WorkingTreeIterator)
        child._root = self._root
        child._ignore = self._ignore
        child._stat_cache = self._stat_cache
        child._bind(
            pathlib.Path(entry.fs_path),
            self.path + "/",
            parent_ignored=self.is_ignored,
        )
        return child

    def reset(self) -> None:
        """Rescan this level so a new walk sees the current disk state."""
        self._entries = self._scan()
        self._ids = {}
        self._pos = 0
