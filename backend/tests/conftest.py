"""Shared fixtures: an on-disk SQLite metadata store and a local object store."""
from pathlib import Path

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from filevault.models import Base, FileRecord
from filevault.services.file_service import FileService
from filevault.services.metadata_store import FileMetadataStore
from filevault.services.object_store import LocalObjectStore

PUBLIC_BASE_URL = "https://cdn.example.com/filevault"


@pytest.fixture
async def session_factory(tmp_path):
    """Fresh SQLite database per test. NullPool gives every session its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'files.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def metadata(session_factory):
    return FileMetadataStore(session_factory)


@pytest.fixture
def storage(tmp_path):
    return LocalObjectStore(tmp_path / "objects")


@pytest.fixture
def service(metadata, storage):
    return FileService(
        metadata=metadata,
        storage=storage,
        public_base_url=PUBLIC_BASE_URL,
        presign_expires_in=3600,
    )


async def count_rows(session_factory) -> int:
    async with session_factory() as db:
        return await db.scalar(select(func.count()).select_from(FileRecord))


def stored_keys(store: LocalObjectStore) -> list[str]:
    """Keys of every object in a local store, sidecars excluded."""
    root = Path(store.root)
    return sorted(
        p.relative_to(root).as_posix()
        for p in root.rglob("*")
        if p.is_file() and not p.name.endswith(LocalObjectStore.SIDECAR_SUFFIX)
    )
