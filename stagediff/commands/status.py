"""stagediff status — show how HEAD, the staging index and the working tree differ.

Output modes
------------

**Default (verbose, human-readable)**::

    On branch main

    Changes to be committed:
            new file:   docs/intro.md
            modified:   src/app.py
            deleted:    old.txt

    Changes not staged for commit:
            modified:   src/app.py
            deleted:    notes.txt

    Untracked files:
            scratch.py

**--short** (condensed, one file per line, ``XY path``)::

    On branch main
    A  docs/intro.md
    MM src/app.py
    D  old.txt
     D notes.txt
    ?? scratch.py

``X`` is the committed-vs-staged state (``A`` added, ``M`` changed,
``D`` removed) and ``Y`` the staged-vs-working-tree state (``M`` modified,
``D`` missing).

**--porcelain** (machine-readable, stable for scripting)::

    ## main
    A  docs/intro.md
    MM src/app.py

**--json** — every set as a sorted list, plus ``branch``, ``revision`` and
``changes_exist``.

Arguments are ``[REV] [PATHS]...``.  The first positional argument is the
revision to compare against when it is ``HEAD`` or names a branch or
commit and is not an existing file; otherwise all positional arguments are
paths.  ``--rev REV`` names the revision explicitly, and every positional
argument is then a path.  A ``--rev`` revision that cannot be resolved is
compared as an empty tree.  ``PATHS`` restrict the comparison to those
sub-trees; a path found in none of the three snapshots is a user error.
"""
from __future__ import annotations

import asyncio
import json
import logging
import pathlib
from collections.abc import Sequence

import typer
from sqlalchemy.ext.asyncio import AsyncSession

from stagediff._repo import read_head, read_repo_id, require_repo
from stagediff.config import RepoConfig, load_repo_config
from stagediff.db import open_session, resolve_commit_ref, resolve_committed_tree
from stagediff.errors import ExitCode, StagediffError
from stagediff.ignore import IgnoreRules
from stagediff.index import StagingIndex, normalize_path
from stagediff.index_diff import DiffResult, IndexDiff
from stagediff.settings import get_settings
from stagediff.treewalk import (
    IndexIterator,
    PathFilterGroup,
    TreeIterator,
    WorkingTreeIterator,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Status code maps
# ---------------------------------------------------------------------------

_STAGED_LABELS: tuple[tuple[str, str], ...] = (
    ("added", "new file:   "),
    ("changed", "modified:   "),
    ("removed", "deleted:    "),
)

_UNSTAGED_LABELS: tuple[tuple[str, str], ...] = (
    ("modified", "modified:   "),
    ("missing", "deleted:    "),
)


def _index_code(path: str, result: DiffResult) -> str:
    if path in result.added:
        return "A"
    if path in result.changed:
        return "M"
    if path in result.removed:
        return "D"
    return " "


def _worktree_code(path: str, result: DiffResult) -> str:
    if path in result.modified:
        return "M"
    if path in result.missing:
        return "D"
    return " "


def short_lines(result: DiffResult) -> list[str]:
    """Return ``XY path`` lines, tracked changes first, then ``??`` lines."""
    tracked = (
        result.added | result.changed | result.removed | result.modified | result.missing
    )
    lines = [
        f"{_index_code(path, result)}{_worktree_code(path, result)} {path}"
        for path in sorted(tracked)
    ]
    lines.extend(f"?? {path}" for path in sorted(result.untracked))
    return lines


def _render_section(title: str, entries: list[str]) -> None:
    typer.echo(title)
    for entry in entries:
        typer.echo(f"\t{entry}")
    typer.echo("")


def _render_verbose(
    branch: str,
    head_commit_id: str | None,
    result: DiffResult,
    config: RepoConfig,
) -> None:
    typer.echo(f"On branch {branch}")
    typer.echo("")
    if head_commit_id is None:
        typer.echo("No commits yet")
        typer.echo("")

    staged = [
        f"{label}{path}"
        for name, label in _STAGED_LABELS
        for path in sorted(getattr(result, name))
    ]
    if staged:
        _render_section("Changes to be committed:", staged)

    unstaged = [
        f"{label}{path}"
        for name, label in _UNSTAGED_LABELS
        for path in sorted(getattr(result, name))
    ]
    if unstaged:
        _render_section("Changes not staged for commit:", unstaged)

    if result.untracked:
        _render_section("Untracked files:", sorted(result.untracked))

    if config.show_assume_unchanged and result.assume_unchanged:
        _render_section("Assumed unchanged:", sorted(result.assume_unchanged))

    if not (staged or unstaged or result.untracked):
        typer.echo("nothing to commit, working tree clean")


# ---------------------------------------------------------------------------
# Testable core
# ---------------------------------------------------------------------------


def _tree_has_path(tree: TreeIterator, rel: str) -> bool:
    """Return whether *rel* names a file or directory in *tree*."""
    parts = rel.split("/")
    level = tree
    level.reset()
    for depth, part in enumerate(parts):
        last = depth == len(parts) - 1
        while not level.eof and (
            level.name != part or (not last and not level.is_container)
        ):
            level.advance()
        if level.eof:
            return False
        if last:
            return True
        level = level.descend()
    return True


def _check_pathspecs(
    root: pathlib.Path,
    committed: TreeIterator,
    index: StagingIndex,
    paths: Sequence[str],
) -> list[str]:
    """Normalise *paths*; raise a user error for one that matches nothing."""
    rel_paths: list[str] = []
    for raw in paths:
        rel = normalize_path(root, raw)
        if rel and not (
            (root / rel).exists()
            or index.paths_under(rel)
            or _tree_has_path(committed, rel)
        ):
            raise StagediffError(
                f"pathspec '{raw}' did not match any files",
                exit_code=ExitCode.USER_ERROR,
            )
        rel_paths.append(rel)
    return rel_paths


def compute_status(
    root: pathlib.Path,
    committed: TreeIterator,
    *,
    paths: Sequence[str] = (),
    config: RepoConfig | None = None,
) -> tuple[DiffResult, bool]:
    """Run the index diff for *root* against *committed*.

    Returns ``(result, changes_exist)``.  Raises :class:`StagediffError`
    (user error) when one of *paths* is absent from all three snapshots.
    """
    config = config or load_repo_config(root)
    index = StagingIndex.load(root)
    rel_paths = _check_pathspecs(root, committed, index, paths)
    live = WorkingTreeIterator(
        root,
        ignore=IgnoreRules.load(root, config),
        stat_cache=index.stat_cache(),
    )
    path_filter = PathFilterGroup.create(rel_paths) if rel_paths else None
    differ = IndexDiff(committed, IndexIterator(index), live, path_filter)
    changes_exist = differ.diff()
    return differ.result, changes_exist


async def split_revision_and_paths(
    session: AsyncSession,
    root: pathlib.Path,
    args: Sequence[str],
) -> tuple[str | None, list[str]]:
    """Split positional ``[REV] [PATHS]...`` arguments.

    The first argument is taken as the revision when it is ``HEAD`` or
    resolves to a branch or commit and does not name an existing file.
    Otherwise every argument is a path.
    """
    if not args:
        return None, []
    first = args[0]
    if first.upper() == "HEAD":
        return first, list(args[1:])
    if not first or pathlib.Path(first).exists():
        return None, list(args)
    branch, _ = read_head(root)
    commit = await resolve_commit_ref(session, root, read_repo_id(root), branch, first)
    if commit is not None:
        return first, list(args[1:])
    return None, list(args)


async def _status_async(
    *,
    root: pathlib.Path,
    session: AsyncSession,
    revision: str | None = None,
    paths: Sequence[str] = (),
    short: bool = False,
    porcelain: bool = False,
    as_json: bool = False,
) -> DiffResult:
    """Core status logic — fully injectable for tests.

    Resolves *revision* (default HEAD) through the DB session, runs the
    index diff and writes the chosen output format via :func:`typer.echo`.
    Returns the :class:`DiffResult` for callers that want the raw sets.
    """
    repo_id = read_repo_id(root)
    branch, head_commit_id = read_head(root)
    config = load_repo_config(root)

    committed = await resolve_committed_tree(session, root, repo_id, branch, revision)
    result, changes_exist = compute_status(root, committed, paths=paths, config=config)

    if as_json:
        payload: dict[str, object] = {
            "branch": branch,
            "revision": revision or "HEAD",
            "changes_exist": changes_exist,
            **result.as_dict(),
        }
        typer.echo(json.dumps(payload, indent=2))
    elif porcelain:
        typer.echo(f"## {branch}")
        for line in short_lines(result):
            typer.echo(line)
    elif short:
        typer.echo(f"On branch {branch}")
        for line in short_lines(result):
            typer.echo(line)
    else:
        _render_verbose(branch, head_commit_id, result, config)

    return result


# ---------------------------------------------------------------------------
# Typer command
# ---------------------------------------------------------------------------


def run_status(
    *,
    args: list[str],
    revision: str | None,
    short: bool,
    porcelain: bool,
    as_json: bool,
) -> None:
    """Entry point used by the ``status`` command registered in :mod:`stagediff.app`.

    *args* are the positional ``[REV] [PATHS]...`` arguments.  With
    ``--rev`` every positional argument is a path.
    """
    root = require_repo()

    async def _run() -> None:
        async with open_session(get_settings().database_url_for(root)) as session:
            if revision is not None:
                rev, paths = revision, list(args)
            else:
                rev, paths = await split_revision_and_paths(session, root, args)
            await _status_async(
                root=root,
                session=session,
                revision=rev,
                paths=paths,
                short=short,
                porcelain=porcelain,
                as_json=as_json,
            )

    try:
        asyncio.run(_run())
    except typer.Exit:
        raise
    except StagediffError as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=exc.exit_code)
    except Exception as exc:
        typer.echo(f"stagediff status failed: {exc}")
        logger.error("stagediff status error: %s", exc, exc_info=True)
        raise typer.Exit(code=ExitCode.INTERNAL_ERROR)
