"""Files API routes."""
from typing import Optional
from fastapi import APIRouter, Body, Depends, File as FastAPIFile, Form, HTTPException, UploadFile

from filevault.dependencies import get_file_service, get_policies
from filevault.schemas.common import DeleteResponse
from filevault.schemas.file import (
    AcquireManyRequest,
    AcquireRequest,
    FileIds,
    FileResponse,
    UploadResponse,
    UrlResponse,
)
from filevault.services.exceptions import NotFoundError, PolicyViolationError
from filevault.services.file_service import FileService
from filevault.services.policies import PurposePolicy, validate_upload

router = APIRouter(prefix="/api/files", tags=["files"])


@router.post("/upload", response_model=UploadResponse)
async def upload_file(
    file: UploadFile = FastAPIFile(...),
    purpose: str = Form(...),
    service: FileService = Depends(get_file_service),
    policies: dict[str, PurposePolicy] = Depends(get_policies),
):
    """Upload a file for a purpose. The purpose policy is checked before anything is stored."""
    contents = await file.read()
    try:
        visibility = validate_upload(policies, purpose, len(contents), file.content_type)
    except PolicyViolationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    record = await service.upload_file(
        contents,
        filename=file.filename,
        content_type=file.content_type,
        purpose=purpose,
        visibility=visibility,
    )
    url = await service.build_url(record)
    return UploadResponse(
        url=url,
        id=record.id,
        name=record.name,
        key=record.key,
        size=record.size,
        mime_type=record.mime_type,
        created_at=record.created_at,
    )


@router.post("/urls", response_model=dict[str, str])
async def get_file_urls(
    body: FileIds,
    service: FileService = Depends(get_file_service),
):
    """Resolve access URLs for several files. Unknown ids are left out."""
    return await service.get_urls(body.ids)


@router.post("/acquire", response_model=list[FileResponse])
async def acquire_files(
    body: AcquireManyRequest,
    service: FileService = Depends(get_file_service),
):
    """Add a reference to each file. Files that don't match are skipped."""
    return await service.acquire_files(body.ids, purpose=body.purpose)


@router.post("/release")
async def release_files(
    body: FileIds,
    service: FileService = Depends(get_file_service),
):
    """Drop a reference from each file, deleting those nothing holds anymore."""
    await service.release_files(body.ids)
    return {"released": True, "ids": body.ids}


@router.post("/delete")
async def delete_files(
    body: FileIds,
    service: FileService = Depends(get_file_service),
):
    await service.delete_files(body.ids)
    return {"deleted": True, "ids": body.ids}


@router.get("/{file_id}", response_model=FileResponse)
async def get_file_metadata(
    file_id: str,
    service: FileService = Depends(get_file_service),
):
    """Get file metadata by ID."""
    try:
        return await service.get_file(file_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="File not found")


@router.get("/{file_id}/url", response_model=UrlResponse)
async def get_file_url(
    file_id: str,
    service: FileService = Depends(get_file_service),
):
    try:
        url = await service.get_url(file_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="File not found")
    return UrlResponse(id=file_id, url=url)


@router.post("/{file_id}/acquire", response_model=FileResponse)
async def acquire_file(
    file_id: str,
    body: Optional[AcquireRequest] = Body(None),
    service: FileService = Depends(get_file_service),
):
    """Add a reference to a file, optionally requiring it to have a given purpose."""
    purpose = body.purpose if body else None
    try:
        return await service.acquire_file(file_id, purpose=purpose)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="File not found")


@router.post("/{file_id}/release")
async def release_file(
    file_id: str,
    service: FileService = Depends(get_file_service),
):
    """Drop a reference. The file is deleted once nothing holds it."""
    try:
        await service.release_file(file_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="File not found")
    return {"released": True, "id": file_id}


@router.delete("/{file_id}", response_model=DeleteResponse)
async def delete_file(
    file_id: str,
    service: FileService = Depends(get_file_service),
):
    """Delete a file and its record. Deleting a missing file succeeds."""
    await service.delete_file(file_id)
    return DeleteResponse(deleted=True, id=file_id)
