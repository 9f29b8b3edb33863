import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import StreamingResponse
from filestream.api.schemas import (
    ArchiveRequest,
    FileListResponse,
    MessageResponse,
    MultipleUploadResponse,
    UploadResponse,
)
from filestream.api.dependencies import get_archive_service, get_file_service, get_upload_service
from filestream.core.config import Settings, get_settings
from filestream.core.errors import BadRequest, InternalError, NotFound
from filestream.services.archive_service import ArchiveService
from filestream.services.file_service import FileService
from filestream.services.streaming import file_response
from filestream.services.upload_service import UploadService
from filestream.utils.file_utils import content_disposition

logger = logging.getLogger("files_router")

router = APIRouter(tags=["files"])

@router.post("/upload", response_model=UploadResponse)
async def upload_file(
    request: Request,
    upload_service: UploadService = Depends(get_upload_service),
):
    """
    Upload a single file as multipart/form-data.

    The response is only sent once the file is fully written to disk.
    """
    try:
        uploaded_files = await upload_service.ingest(request, max_files=1)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Upload error: {e}", exc_info=True)
        raise InternalError("Upload failed")

    if not uploaded_files:
        raise BadRequest("No file uploaded")

    return {"message": "File uploaded successfully", "file": uploaded_files[0]}

@router.post("/upload-multiple", response_model=MultipleUploadResponse)
async def upload_multiple_files(
    request: Request,
    settings: Settings = Depends(get_settings),
    upload_service: UploadService = Depends(get_upload_service),
):
    """
    Upload several files in one multipart/form-data request.
    """
    try:
        uploaded_files = await upload_service.ingest(
            request,
            max_files=settings.MAX_UPLOAD_FILES,
            skip_blank_names=True,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Multiple upload error: {e}", exc_info=True)
        raise InternalError("Upload failed")

    logger.info(f"Multiple files uploaded via streaming: {len(uploaded_files)}")
    return {
        "message": f"{len(uploaded_files)} files uploaded successfully",
        "files": uploaded_files,
        "count": len(uploaded_files),
    }

@router.get("/files", response_model=FileListResponse)
async def list_files(
    file_service: FileService = Depends(get_file_service)
):
    """
    List all uploaded files with their metadata.
    """
    try:
        files = await file_service.list_files()
    except Exception as e:
        logger.error(f"Error listing files: {e}", exc_info=True)
        raise InternalError("Failed to list files")
    return FileListResponse(files=files)

@router.get("/download/{filename}")
async def download_file(
    filename: str,
    range: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
    file_service: FileService = Depends(get_file_service)
) -> StreamingResponse:
    """
    Download a complete file or a specific range.
    Supports partial content requests using the Range header.
    """
    streamable = await file_service.get_streamable_file(filename)
    headers = {
        "Content-Disposition": content_disposition(filename),
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
    }
    return file_response(
        streamable,
        range,
        extra_headers=headers,
        chunk_size=settings.STREAM_CHUNK_SIZE,
        debug_streams=settings.DEBUG_STREAMS,
        label="download",
    )

@router.post("/download-zip")
async def download_zip(
    payload: Optional[ArchiveRequest] = None,
    archive_service: ArchiveService = Depends(get_archive_service),
) -> StreamingResponse:
    """
    Download several files as one ZIP archive, streamed as it is built.
    """
    filenames = payload.filenames if payload is not None else None
    return await archive_service.archive_response(filenames)

@router.delete("/files/{filename}", response_model=MessageResponse)
async def delete_file(
    filename: str,
    file_service: FileService = Depends(get_file_service)
):
    """
    Delete a file and its metadata.
    """
    try:
        success = await file_service.delete_file(filename)
    except Exception as e:
        logger.error(f"Delete error: {e}", exc_info=True)
        raise InternalError("Delete failed")
    if not success:
        raise NotFound("File not found")
    return {"message": "File deleted successfully"}
