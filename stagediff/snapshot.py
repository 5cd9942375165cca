"""Pure hashing helpers for snapshots, trees and commits.

All functions here are side-effect-free (no DB, no I/O besides reading
the file passed to :func:`hash_file`).  They are kept separate so they can
be unit-tested without a database.

ID derivation contract (deterministic, no random/UUID components):

    object_id   = sha256(file_bytes).hexdigest()
    tree_id     = sha256("\\n".join(sorted(f"{name}:{kind}:{id}" for children))).hexdigest()
    snapshot_id = sha256("|".join(sorted(f"{path}:{oid}" for path, oid in manifest.items()))).hexdigest()
    commit_id   = sha256(
                    "|".join(sorted(parent_ids))
                    + "|" + snapshot_id
                    + "|" + message
                    + "|" + committed_at_iso
                  ).hexdigest()

``kind`` is ``"tree"`` for a sub-directory and ``"blob"`` for a file.  The
committed tree and the staging index both derive directory ids through
:func:`compute_tree_id`, so two identical sub-trees always carry the same
id regardless of which snapshot they come from.
"""
from __future__ import annotations

import hashlib
import pathlib
from collections.abc import Iterable

TREE_KIND = "tree"
BLOB_KIND = "blob"


def hash_file(path: pathlib.Path) -> str:
    """Return the sha256 hex digest of a file's raw bytes.

    This is the ``object_id`` for the given file.  Reading in chunks
    keeps memory usage constant regardless of file size.
    """
    h = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def compute_tree_id(children: Iterable[tuple[str, str, str]]) -> str:
    """Return the id of a directory from its ``(name, kind, id)`` children."""
    lines = sorted(f"{name}:{kind}:{child_id}" for name, kind, child_id in children)
    return hashlib.sha256("\n".join(lines).encode()).hexdigest()


def compute_snapshot_id(manifest: dict[str, str]) -> str:
    """Return sha256 of the sorted ``path:object_id`` pairs.

    Sorting ensures two identical staging indexes always produce the same
    snapshot_id, regardless of insertion order.
    """
    parts = sorted(f"{path}:{oid}" for path, oid in manifest.items())
    payload = "|".join(parts).encode()
    return hashlib.sha256(payload).hexdigest()


def compute_commit_id(
    parent_ids: list[str],
    snapshot_id: str,
    message: str,
    committed_at_iso: str,
) -> str:
    """Return sha256 of the commit's canonical inputs.

    ``parent_ids`` is sorted before hashing so insertion order does not
    affect determinism.
    """
    parts = [
        "|".join(sorted(parent_ids)),
        snapshot_id,
        message,
        committed_at_iso,
    ]
    payload = "|".join(parts).encode()
    return hashlib.sha256(payload).hexdigest()
