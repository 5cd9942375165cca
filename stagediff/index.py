"""The staging index — ``.stage/index.json``.

``index.json`` schema
---------------------

.. code-block:: json

    {
        "version": 1,
        "entries": {
            "src/app.py": {
                "object_id":        "ab12...",
                "size":             1234,
                "mtime_ns":         1712345678901234567,
                "assume_unchanged": false,
                "skip_worktree":    false
            }
        }
    }

``size`` and ``mtime_ns`` are the stat data recorded when the file was
staged.  :class:`~stagediff.treewalk.iterators.WorkingTreeIterator` uses
them as a stat cache: a working file with the same size and mtime reuses
``object_id`` instead of being re-hashed.
"""
from __future__ import annotations

import json
import logging
import os
import pathlib
from collections.abc import Iterator, Mapping
from dataclasses import asdict, dataclass, replace

from stagediff.errors import ExitCode, IndexFormatError, StagediffError
from stagediff.snapshot import hash_file

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.json"
INDEX_VERSION = 1


@dataclass(frozen=True)
class IndexEntry:
    """One staged file.

    Attributes:
        path:             Repo-relative POSIX path.
        object_id:        sha256 of the staged content.
        size:             File size in bytes when staged.
        mtime_ns:         File mtime (nanoseconds) when staged.
        assume_unchanged: Informational flag — reported by ``status``.
        skip_worktree:    Never compare this path against the working tree.
    """

    path: str
    object_id: str
    size: int = 0
    mtime_ns: int = 0
    assume_unchanged: bool = False
    skip_worktree: bool = False


def index_path(root: pathlib.Path) -> pathlib.Path:
    return root / ".stage" / INDEX_FILENAME


def normalize_path(root: pathlib.Path, path: pathlib.Path | str) -> str:
    """Return *path* as a repo-relative POSIX string.

    Relative paths are interpreted against the current directory.  Raises
    :class:`StagediffError` (user error) when the path escapes the repo.
    """
    candidate = pathlib.Path(path)
    if not candidate.is_absolute():
        candidate = pathlib.Path.cwd() / candidate
    resolved_root = root.resolve()
    absolute = pathlib.Path(os.path.normpath(candidate))
    try:
        rel = absolute.relative_to(resolved_root)
    except ValueError:
        try:
            rel = absolute.resolve().relative_to(resolved_root)
        except ValueError:
            raise StagediffError(
                f"{path} is outside repository at {root}", exit_code=ExitCode.USER_ERROR
            ) from None
    return rel.as_posix() if rel.parts else ""


class StagingIndex:
    """In-memory view of the staging index with load/save helpers."""

    def __init__(
        self,
        entries: Mapping[str, IndexEntry] | None = None,
        file_mtime_ns: int = 0,
    ) -> None:
        self._entries: dict[str, IndexEntry] = dict(entries or {})
        self.file_mtime_ns = file_mtime_ns

    # -- persistence --------------------------------------------------------

    @classmethod
    def load(cls, root: pathlib.Path) -> StagingIndex:
        """Read ``.stage/index.json``; a missing file is an empty index."""
        path = index_path(root)
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text())
        except (json.JSONDecodeError, OSError) as exc:
            raise IndexFormatError(f"Cannot read {path}: {exc}") from exc

        if not isinstance(data, dict) or data.get("version") != INDEX_VERSION:
            raise IndexFormatError(f"Unsupported index format in {path}")
        raw_entries = data.get("entries", {})
        if not isinstance(raw_entries, dict):
            raise IndexFormatError(f"Malformed entries table in {path}")

        entries: dict[str, IndexEntry] = {}
        for rel, raw in raw_entries.items():
            if not isinstance(raw, dict) or "object_id" not in raw:
                raise IndexFormatError(f"Malformed index entry for {rel!r}")
            entries[rel] = IndexEntry(
                path=rel,
                object_id=str(raw["object_id"]),
                size=int(raw.get("size", 0)),
                mtime_ns=int(raw.get("mtime_ns", 0)),
                assume_unchanged=bool(raw.get("assume_unchanged", False)),
                skip_worktree=bool(raw.get("skip_worktree", False)),
            )
        logger.debug("Loaded index with %d entries", len(entries))
        return cls(entries, file_mtime_ns=path.stat().st_mtime_ns)

    def save(self, root: pathlib.Path) -> None:
        """Write the index atomically (temp file + ``os.replace``).

        Racily clean entries are smudged first (see :meth:`_smudge_racily_clean`)
        so that moving the index mtime forward cannot make them trusted.
        """
        path = index_path(root)
        self._smudge_racily_clean(root)
        payload = {
            "version": INDEX_VERSION,
            "entries": {
                rel: {k: v for k, v in asdict(entry).items() if k != "path"}
                for rel, entry in sorted(self._entries.items())
            },
        }
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(payload, indent=2) + "\n")
        os.replace(tmp, path)
        self.file_mtime_ns = path.stat().st_mtime_ns
        logger.debug("✅ Wrote index with %d entries", len(self._entries))

    def _smudge_racily_clean(self, root: pathlib.Path) -> None:
        """Zero the recorded size of racily clean entries whose content changed.

        An entry is racily clean when its ``mtime_ns`` is not older than the
        index file being replaced.  If the working file still carries the
        staged stat data but hashes differently, its ``size`` is set to 0 so
        the stat data can never match again and the file is always re-hashed.
        """
        for rel, entry in list(self._entries.items()):
            if entry.mtime_ns < self.file_mtime_ns:
                continue
            file_path = root / rel
            try:
                st = file_path.stat()
                if st.st_size != entry.size or st.st_mtime_ns != entry.mtime_ns:
                    continue
                if hash_file(file_path) == entry.object_id:
                    continue
            except OSError:
                continue
            self._entries[rel] = replace(entry, size=0)
            logger.debug("Smudged racily clean entry %s", rel)

    # -- mapping-ish access -------------------------------------------------

    @property
    def entries(self) -> Mapping[str, IndexEntry]:
        return self._entries

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._entries))

    def get(self, path: str) -> IndexEntry | None:
        return self._entries.get(path)

    def stat_cache(self) -> dict[str, IndexEntry]:
        """Return the entries whose stat data can stand in for hashing.

        An entry stamped in the same mtime tick as the index file itself
        ("racily clean") could have been rewritten after staging without a
        visible stat change, so it is left out and always re-hashed.
        """
        return {
            rel: entry
            for rel, entry in self._entries.items()
            if entry.mtime_ns < self.file_mtime_ns
        }

    def manifest(self) -> dict[str, str]:
        """Return ``{path: object_id}`` — the snapshot a commit would record."""
        return {rel: entry.object_id for rel, entry in self._entries.items()}

    def paths_under(self, prefix: str) -> list[str]:
        """Return staged paths equal to or below *prefix* ("" means all)."""
        if not prefix:
            return sorted(self._entries)
        return sorted(
            p for p in self._entries if p == prefix or p.startswith(prefix + "/")
        )

    # -- mutation -----------------------------------------------------------

    def stage_file(self, root: pathlib.Path, rel: str) -> IndexEntry:
        """Hash ``root/rel`` and record it, keeping any existing flags."""
        file_path = root / rel
        st = file_path.stat()
        object_id = hash_file(file_path)
        previous = self._entries.get(rel)
        entry = IndexEntry(
            path=rel,
            object_id=object_id,
            size=st.st_size,
            mtime_ns=st.st_mtime_ns,
            assume_unchanged=previous.assume_unchanged if previous else False,
            skip_worktree=previous.skip_worktree if previous else False,
        )
        self._entries[rel] = entry
        logger.debug("Staged %s (%s)", rel, object_id[:8])
        return entry

    def add(self, entry: IndexEntry) -> None:
        self._entries[entry.path] = entry

    def remove(self, rel: str) -> bool:
        """Drop *rel* from the index; return whether it was present."""
        return self._entries.pop(rel, None) is not None

    def set_flags(
        self,
        rel: str,
        *,
        assume_unchanged: bool | None = None,
        skip_worktree: bool | None = None,
    ) -> IndexEntry:
        """Update the flags on a staged entry; ``None`` leaves a flag as is."""
        entry = self._entries.get(rel)
        if entry is None:
            raise StagediffError(
                f"{rel}: not in the staging index", exit_code=ExitCode.USER_ERROR
            )
        changes: dict[str, bool] = {}
        if assume_unchanged is not None:
            changes["assume_unchanged"] = assume_unchanged
        if skip_worktree is not None:
            changes["skip_worktree"] = skip_worktree
        updated = replace(entry, **changes)
        self._entries[rel] = updated
        return updated
