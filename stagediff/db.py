"""Async database helpers for the stagediff commit store.

Provides:
- ``open_session()`` — async context manager that opens and commits a
  standalone AsyncSession, creating the tables on first use.
- CRUD helpers called by ``commands/commit.py`` and ``commands/status.py``.
- ``resolve_committed_tree()`` — turns a revision string into the committed
  tree iterator consumed by :class:`~stagediff.index_diff.IndexDiff`.
"""
from __future__ import annotations

import contextlib
import logging
import pathlib
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.future import select

from stagediff._repo import read_branch_ref
from stagediff.errors import ExitCode, StagediffError
from stagediff.models import Base, StageCommit, StageSnapshot
from stagediff.treewalk.iterators import EmptyTreeIterator, ManifestTreeIterator

logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def open_session(url: str) -> AsyncGenerator[AsyncSession, None]:
    """Open a standalone async DB session suitable for CLI commands.

    Commits on clean exit, rolls back on exception.  Disposes the engine
    on exit so the process does not linger with open connections.
    """
    engine = create_async_engine(url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(bind=engine, expire_on_commit=False)
    try:
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
    finally:
        await engine.dispose()


async def upsert_snapshot(
    session: AsyncSession, manifest: dict[str, str], snapshot_id: str
) -> StageSnapshot:
    """Insert a StageSnapshot row, ignoring duplicates."""
    existing = await session.get(StageSnapshot, snapshot_id)
    if existing is not None:
        logger.debug("⚠️ Snapshot %s already exists — skipped", snapshot_id[:8])
        return existing
    snap = StageSnapshot(snapshot_id=snapshot_id, manifest=manifest)
    session.add(snap)
    logger.debug("✅ New snapshot %s (%d files)", snapshot_id[:8], len(manifest))
    return snap


async def insert_commit(session: AsyncSession, commit: StageCommit) -> None:
    """Insert a new StageCommit row.

    Does NOT ignore duplicates — calling this twice with the same commit_id
    is a programming error and will raise an IntegrityError.
    """
    session.add(commit)
    logger.debug("✅ New commit %s branch=%r", commit.commit_id[:8], commit.branch)


async def get_commit_snapshot_manifest(
    session: AsyncSession, commit_id: str
) -> dict[str, str] | None:
    """Return the file manifest for the snapshot attached to *commit_id*, or None."""
    commit = await session.get(StageCommit, commit_id)
    if commit is None:
        logger.warning("⚠️ Commit %s not found in DB", commit_id[:8])
        return None
    snapshot = await session.get(StageSnapshot, commit.snapshot_id)
    if snapshot is None:
        logger.warning(
            "⚠️ Snapshot %s referenced by commit %s not found in DB",
            commit.snapshot_id[:8],
            commit_id[:8],
        )
        return None
    return dict(snapshot.manifest)


async def resolve_commit_ref(
    session: AsyncSession,
    root: pathlib.Path,
    repo_id: str,
    branch: str,
    ref: str | None,
) -> StageCommit | None:
    """Resolve a commit reference to a ``StageCommit`` row.

    *ref* may be:

    - ``None`` / ``"HEAD"`` — the commit recorded in the current branch ref.
    - A branch name — the commit recorded in ``refs/heads/<ref>``.
    - A full or abbreviated commit SHA — looks up by exact or prefix match.

    Returns ``None`` when no matching commit is found.  Raises
    :class:`StagediffError` (user error) for an empty reference or an
    abbreviated SHA that matches more than one commit.
    """
    if ref is None or ref.upper() == "HEAD":
        head_id = read_branch_ref(root, branch)
        return await session.get(StageCommit, head_id) if head_id else None

    if not ref.strip():
        raise StagediffError("empty revision", exit_code=ExitCode.USER_ERROR)

    branch_head = read_branch_ref(root, ref)
    if branch_head is not None:
        return await session.get(StageCommit, branch_head)

    commit = await session.get(StageCommit, ref)
    if commit is not None:
        return commit

    # Abbreviated SHA prefix match
    result = await session.execute(
        select(StageCommit)
        .where(
            StageCommit.repo_id == repo_id,
            StageCommit.commit_id.startswith(ref),
        )
        .order_by(StageCommit.commit_id)
        .limit(2)
    )
    matches = result.scalars().all()
    if len(matches) > 1:
        raise StagediffError(
            f"short revision {ref!r} is ambiguous", exit_code=ExitCode.USER_ERROR
        )
    return matches[0] if matches else None


async def resolve_committed_tree(
    session: AsyncSession,
    root: pathlib.Path,
    repo_id: str,
    branch: str,
    ref: str | None = None,
) -> ManifestTreeIterator | EmptyTreeIterator:
    """Return the committed tree for *ref*, or the empty tree.

    An unresolvable reference (unknown branch, bad SHA, no commits yet) is
    not an error: the diff then runs against an empty tree and every staged
    path shows up as added.
    """
    commit = await resolve_commit_ref(session, root, repo_id, branch, ref)
    if commit is None:
        if ref is not None and ref.upper() != "HEAD":
            logger.warning("⚠️ Cannot resolve %r — comparing against the empty tree", ref)
        return EmptyTreeIterator()
    manifest = await get_commit_snapshot_manifest(session, commit.commit_id)
    if manifest is None:
        return EmptyTreeIterator()
    return ManifestTreeIterator(manifest)
