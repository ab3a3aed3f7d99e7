"""Upload API router.

Accepts video uploads, spools them onto the temporary disk and stores them
through the upload pipeline.
"""

import asyncio
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.concurrency import run_in_threadpool

from video_optimizer.core.config import settings
from video_optimizer.core.logging import log_warning
from video_optimizer.core.storage import StorageError, Visibility
from video_optimizer.modules.upload.naming import join_storage_path, sanitize_filename, split_extension
from video_optimizer.modules.upload.placement import PlacementError
from video_optimizer.modules.upload.schemas import (
    FieldConfig,
    StoredFileInfo,
    StoredFileResponse,
    UploadedFileRef,
    UploadResponse,
)
from video_optimizer.modules.upload.service import UploadPipeline, UploadRejectedError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/uploads", tags=["uploads"])

_pipeline: Optional[UploadPipeline] = None


def get_upload_pipeline() -> UploadPipeline:
    """Get the shared upload pipeline."""
    global _pipeline
    if _pipeline is None:
        _pipeline = UploadPipeline()
    return _pipeline


def _spool(pipeline: UploadPipeline, upload: UploadFile) -> UploadedFileRef:
    """Write an upload onto the temporary disk."""
    original_name = sanitize_filename(upload.filename)
    _, extension = split_extension(original_name)
    filename = f"{uuid.uuid4().hex}.{extension}" if extension else uuid.uuid4().hex
    path = join_storage_path(settings.TEMPORARY_UPLOAD_DIRECTORY, filename)

    disk = pipeline.storage.disk(settings.TEMPORARY_DISK)
    upload.file.seek(0)
    disk.put(path, upload.file, Visibility.PRIVATE)

    return UploadedFileRef(
        original_name=original_name,
        mime_type=upload.content_type or "application/octet-stream",
        size=upload.size if upload.size is not None else disk.size(path),
        disk=settings.TEMPORARY_DISK,
        path=path,
    )


def _discard(pipeline: UploadPipeline, files: list[tuple[str, str]]) -> None:
    """Delete files written by a batch that failed."""
    for disk, path in files:
        try:
            pipeline.storage.disk(disk).delete(path)
        except StorageError as e:
            log_warning(logger, "upload.rollback_failed", disk=disk, path=path, error=str(e))


@router.post("", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_files(
    files: list[UploadFile] = File(...),
    directory: Optional[str] = Form(None),
    disk: Optional[str] = Form(None),
    visibility: Visibility = Form(Visibility.PUBLIC),
    optimize: Optional[str] = Form(None),
    format: Optional[str] = Form(None),
    preserve_filenames: bool = Form(False),
    move_files: bool = Form(False),
    pipeline: UploadPipeline = Depends(get_upload_pipeline),
):
    """Upload one or more videos.

    Files are optimized according to the field overrides given in the form,
    or the process-wide defaults.
    """
    config = FieldConfig(
        directory=directory,
        disk=disk,
        visibility=visibility,
        optimize=optimize,
        target_format=format,
        preserve_filenames=preserve_filenames,
        move_files=move_files,
        multiple=True,
    )
    resolved = config.resolve(defaults=pipeline.defaults)

    try:
        for upload in files:
            pipeline.ensure_accepted(upload.content_type, resolved)
    except UploadRejectedError as e:
        raise HTTPException(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, detail=str(e))

    refs: list[UploadedFileRef] = []
    try:
        for upload in files:
            refs.append(await run_in_threadpool(_spool, pipeline, upload))
    except StorageError as e:
        await run_in_threadpool(_discard, pipeline, [(ref.disk, ref.path) for ref in refs])
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    results = await asyncio.gather(
        *(run_in_threadpool(pipeline.save_uploaded_file, ref, resolved) for ref in refs),
        return_exceptions=True,
    )
    failure = next((result for result in results if isinstance(result, BaseException)), None)
    if failure is not None:
        # The batch is stored whole or not at all.
        stored = [(resolved.disk, result) for result in results if isinstance(result, str)]
        await run_in_threadpool(_discard, pipeline, stored)
        if isinstance(failure, (PlacementError, StorageError)):
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(failure)
            )
        raise failure

    target = pipeline.storage.disk(resolved.disk)
    response = UploadResponse(disk=resolved.disk)
    for ref, path in zip(refs, results):
        if path is None:
            response.skipped.append(ref.original_name)
            continue
        response.files.append(
            StoredFileResponse(path=path, name=ref.original_name, url=target.url(path))
        )
    return response


@router.get("/info", response_model=StoredFileInfo)
async def get_file_info(
    path: str = Query(...),
    disk: Optional[str] = Query(None),
    visibility: Visibility = Query(Visibility.PUBLIC),
    pipeline: UploadPipeline = Depends(get_upload_pipeline),
):
    """Describe a stored file."""
    config = FieldConfig(disk=disk, visibility=visibility)
    try:
        info = await run_in_threadpool(pipeline.get_uploaded_file, path, config)
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if info is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return info
