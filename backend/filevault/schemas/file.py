"""File request/response schemas."""
from typing import Optional
from datetime import datetime
from pydantic import Field
from filevault.schemas.base import CamelModel, CamelORMModel
from filevault.services.policies import Visibility


class FileResponse(CamelORMModel):
    id: str
    purpose: str
    name: Optional[str] = None
    key: str
    size: int
    mime_type: str
    ref_count: int
    visibility: Visibility
    created_at: datetime
    updated_at: datetime


class UploadResponse(CamelORMModel):
    url: str = ""
    id: str
    name: Optional[str] = None
    key: str
    size: int
    mime_type: str
    created_at: datetime


class FileIds(CamelModel):
    ids: list[str] = Field(..., max_length=1000)


class AcquireRequest(CamelModel):
    purpose: Optional[str] = None


class AcquireManyRequest(FileIds):
    purpose: Optional[str] = None


class UrlResponse(CamelModel):
    id: str
    url: str
