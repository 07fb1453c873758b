"""FastAPI dependencies for the file lifecycle service.

Tests and embedding apps swap these out with app.dependency_overrides.
"""
from functools import lru_cache

from filevault.config import settings
from filevault.database import async_session
from filevault.services.file_service import FileService
from filevault.services.metadata_store import FileMetadataStore
from filevault.services.object_store import create_object_store
from filevault.services.policies import PurposePolicy


@lru_cache
def get_file_service() -> FileService:
    return FileService(
        metadata=FileMetadataStore(async_session),
        storage=create_object_store(settings),
        public_base_url=settings.PUBLIC_BASE_URL,
        key_prefix=settings.KEY_PREFIX,
        presign_expires_in=settings.PRESIGN_EXPIRES_IN,
    )


def get_policies() -> dict[str, PurposePolicy]:
    return settings.FILE_POLICIES
