"""Repository detection and layout helpers.

Walking up the directory tree to locate a ``.stage/`` directory is the
single most-called internal primitive.  ``find_repo_root`` never raises
(``None`` on miss); ``require_repo`` turns a miss into exit code 2.
``STAGEDIFF_REPO_ROOT`` overrides discovery entirely; tests use it to
avoid ``os.chdir`` calls.
"""
from __future__ import annotations

import json
import logging
import os
import pathlib

import typer

from stagediff.errors import ExitCode, RepoNotFoundError

logger = logging.getLogger(__name__)

STAGE_DIR = ".stage"


def find_repo_root(start: pathlib.Path | None = None) -> pathlib.Path | None:
    """Walk up from *start* (default ``Path.cwd()``) looking for ``.stage/``.

    Returns the first directory that contains ``.stage/``, or ``None`` if no
    such ancestor exists.
    """
    if env_root := os.environ.get("STAGEDIFF_REPO_ROOT"):
        p = pathlib.Path(env_root).resolve()
        logger.debug("⚠️ STAGEDIFF_REPO_ROOT override active: %s", p)
        return p if (p / STAGE_DIR).is_dir() else None

    current = (start or pathlib.Path.cwd()).resolve()
    while True:
        if (current / STAGE_DIR).is_dir():
            return current
        parent = current.parent
        if parent == current:
            return None
        current = parent


def require_repo(start: pathlib.Path | None = None) -> pathlib.Path:
    """Return the repo root or exit 2 with a clear error message.

    The error text echoes to stdout so that ``typer.testing.CliRunner``
    captures it in ``result.output``.
    """
    root = find_repo_root(start)
    if root is None:
        typer.echo(str(RepoNotFoundError()))
        raise typer.Exit(code=ExitCode.REPO_NOT_FOUND)
    return root


def read_repo_id(root: pathlib.Path) -> str:
    """Return ``repo_id`` from ``.stage/repo.json``."""
    data: dict[str, str] = json.loads((root / STAGE_DIR / "repo.json").read_text())
    return data["repo_id"]


def read_head(root: pathlib.Path) -> tuple[str, str | None]:
    """Return ``(branch, head_commit_id)`` for the checked-out branch.

    ``head_commit_id`` is ``None`` when the branch has no commits yet.
    """
    stage_dir = root / STAGE_DIR
    head_ref = (stage_dir / "HEAD").read_text().strip()  # "refs/heads/main"
    branch = head_ref.rsplit("/", 1)[-1] if "/" in head_ref else head_ref
    ref_path = stage_dir / pathlib.Path(head_ref)
    commit_id: str | None = None
    if ref_path.exists():
        raw = ref_path.read_text().strip()
        if raw:
            commit_id = raw
    return branch, commit_id


def write_branch_ref(root: pathlib.Path, branch: str, commit_id: str) -> None:
    """Point ``refs/heads/<branch>`` at *commit_id*."""
    ref_path = root / STAGE_DIR / "refs" / "heads" / branch
    ref_path.parent.mkdir(parents=True, exist_ok=True)
    ref_path.write_text(commit_id)


def read_branch_ref(root: pathlib.Path, branch: str) -> str | None:
    """Return the commit id stored for *branch*, or ``None``."""
    ref_path = root / STAGE_DIR / "refs" / "heads" / branch
    if not ref_path.is_file():
        return None
    raw = ref_path.read_text().strip()
    return raw or None
