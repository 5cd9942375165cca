"""stagediff commit — record the staging index as a new commit.

Algorithm
---------
1. Resolve repo root via ``require_repo()``.
2. Read ``repo_id`` from ``.stage/repo.json`` and the current branch from
   ``.stage/HEAD``.
3. Build the snapshot manifest ``{path → object_id}`` from the staging
   index (not from the working tree — unstaged edits are not committed).
4. Compute ``snapshot_id = sha256(sorted(path:object_id pairs))``.
5. If the branch HEAD already records the same ``snapshot_id``, print
   "Nothing to commit" and exit 0 (unless ``--allow-empty``).
6. Compute ``commit_id = sha256(sorted(parent_ids) | snapshot_id | message | timestamp)``.
7. Upsert the snapshot row, insert the commit row.
8. Update ``.stage/refs/heads/<branch>`` to the new ``commit_id``.
"""
from __future__ import annotations

import asyncio
import datetime
import logging
import pathlib

import typer
from sqlalchemy.ext.asyncio import AsyncSession

from stagediff._repo import read_head, read_repo_id, require_repo, write_branch_ref
from stagediff.db import insert_commit, open_session, upsert_snapshot
from stagediff.errors import ExitCode, StagediffError
from stagediff.index import StagingIndex
from stagediff.models import StageCommit
from stagediff.settings import get_settings
from stagediff.snapshot import compute_commit_id, compute_snapshot_id

logger = logging.getLogger(__name__)

app = typer.Typer()


async def _commit_async(
    *,
    message: str,
    root: pathlib.Path,
    session: AsyncSession,
    author: str = "",
    allow_empty: bool = False,
) -> str | None:
    """Run the commit pipeline and return the new ``commit_id``.

    Returns ``None`` when there is nothing to commit.  All filesystem and
    DB side-effects are isolated here so tests can inject an in-memory
    SQLite session and a ``tmp_path`` root.
    """
    repo_id = read_repo_id(root)
    branch, parent_commit_id = read_head(root)
    parent_ids = [parent_commit_id] if parent_commit_id else []

    index = StagingIndex.load(root)
    manifest = index.manifest()
    if not manifest and not allow_empty and parent_commit_id is None:
        raise StagediffError(
            "nothing staged — run `stagediff add <path>` first",
            exit_code=ExitCode.USER_ERROR,
        )

    snapshot_id = compute_snapshot_id(manifest)

    if not allow_empty and parent_commit_id is not None:
        parent = await session.get(StageCommit, parent_commit_id)
        if parent is not None and parent.snapshot_id == snapshot_id:
            typer.echo("Nothing to commit, staging index matches HEAD")
            return None

    committed_at = datetime.datetime.now(datetime.timezone.utc)
    commit_id = compute_commit_id(
        parent_ids=parent_ids,
        snapshot_id=snapshot_id,
        message=message,
        committed_at_iso=committed_at.isoformat(),
    )

    await upsert_snapshot(session, manifest=manifest, snapshot_id=snapshot_id)
    await insert_commit(
        session,
        StageCommit(
            commit_id=commit_id,
            repo_id=repo_id,
            branch=branch,
            parent_commit_id=parent_commit_id,
            snapshot_id=snapshot_id,
            message=message,
            author=author,
            committed_at=committed_at,
        ),
    )
    await session.flush()

    write_branch_ref(root, branch, commit_id)
    typer.echo(f"[{branch} {commit_id[:8]}] {message}")
    logger.info("✅ Committed %s on %s (%d files)", commit_id[:8], branch, len(manifest))
    return commit_id


@app.callback(invoke_without_command=True)
def commit(
    ctx: typer.Context,
    message: str = typer.Option(..., "-m", "--message", help="Commit message."),
    author: str = typer.Option("", "--author", help="Author name recorded on the commit."),
    allow_empty: bool = typer.Option(
        False,
        "--allow-empty",
        help="Record a commit even when the staging index matches HEAD.",
    ),
) -> None:
    """Record the staging index as a new commit on the current branch."""
    root = require_repo()

    async def _run() -> None:
        async with open_session(get_settings().database_url_for(root)) as session:
            await _commit_async(
                message=message,
                root=root,
                session=session,
                author=author,
                allow_empty=allow_empty,
            )

    try:
        asyncio.run(_run())
    except typer.Exit:
        raise
    except StagediffError as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=exc.exit_code)
    except Exception as exc:
        typer.echo(f"stagediff commit failed: {exc}")
        logger.error("stagediff commit error: %s", exc, exc_info=True)
        raise typer.Exit(code=ExitCode.INTERNAL_ERROR)
