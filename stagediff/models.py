"""SQLAlchemy ORM models for the stagediff commit store.

Tables:
- stage_snapshots: snapshot manifests mapping paths to object IDs
- stage_commits: commit history with parent linkage and branch tracking

The staging index itself lives on disk in ``.stage/index.json``; only
committed state is kept in the database.
"""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import JSON


class Base(DeclarativeBase):
    pass


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StageSnapshot(Base):
    """An immutable snapshot manifest: sha256(sorted(path:object_id pairs)).

    The manifest JSON maps relative file paths to their object IDs.
    Content-addressed: two identical staging indexes produce the same
    snapshot_id.
    """

    __tablename__ = "stage_snapshots"

    snapshot_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    manifest: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now
    )

    def __repr__(self) -> str:
        files = len(self.manifest) if self.manifest else 0
        return f"<StageSnapshot {self.snapshot_id[:8]} files={files}>"


class StageCommit(Base):
    """A versioned commit record pointing to a snapshot and its parent.

    commit_id = sha256(sorted(parent_ids) | snapshot_id | message | committed_at_iso)
    """

    __tablename__ = "stage_commits"

    commit_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    repo_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    branch: Mapped[str] = mapped_column(String(255), nullable=False)
    parent_commit_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True
    )
    snapshot_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("stage_snapshots.snapshot_id", ondelete="RESTRICT"),
        nullable=False,
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    author: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    committed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now
    )

    def __repr__(self) -> str:
        return (
            f"<StageCommit {self.commit_id[:8]} branch={self.branch!r}"
            f" msg={self.message[:30]!r}>"
        )
