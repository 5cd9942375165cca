"""Pytest configuration and fixtures."""
from __future__ import annotations

import os
import pathlib
from collections.abc import AsyncGenerator, Iterable, Iterator, Mapping

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from stagediff.commands.init import run_init
from stagediff.models import Base
from stagediff.treewalk import ManifestTreeIterator


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest_asyncio.fixture
async def stage_db_session() -> AsyncGenerator[AsyncSession, None]:
    """In-memory SQLite session with the stagediff tables.

    Isolated per test: tables are created fresh and dropped on teardown.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(bind=engine, expire_on_commit=False)
    async with factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def repo(tmp_path: pathlib.Path) -> Iterator[pathlib.Path]:
    """An initialised repository at *tmp_path*, with cwd pointing at it."""
    run_init(tmp_path)
    prev = os.getcwd()
    os.chdir(tmp_path)
    try:
        yield tmp_path
    finally:
        os.chdir(prev)


def write_files(root: pathlib.Path, files: Mapping[str, bytes]) -> None:
    """Create *files* (repo-relative path → content) under *root*."""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)


class LiveManifestIterator(ManifestTreeIterator):
    """In-memory stand-in for the working tree, with ignore flags.

    Unlike the real working tree it reports ids for directories, which
    lets tests exercise sub-tree pruning.
    """

    def __init__(self, manifest: Mapping[str, str], ignored: Iterable[str] = ()) -> None:
        super().__init__(manifest)
        self._ignored = frozenset(ignored)

    def descend(self) -> LiveManifestIterator:
        child = super().descend()
        child._ignored = self._ignored
        return child

    @property
    def is_ignored(self) -> bool:
        return self.path in self._ignored
