import asyncio
import logging
import time
from typing import Optional
from fastapi import FastAPI
from filestream import crud
from filestream.core.config import Settings, get_settings
from filestream.services.file_service import TEMP_SUFFIX, FileService

logger = logging.getLogger("cleanup_service")


def reconcile_storage(file_service: FileService, now: Optional[float] = None) -> dict:
    """
    Remove leftovers of interrupted uploads and deletions.

    Temp files older than the upload time budget belong to uploads that can
    no longer finish; index rows without a payload belong to deletions that
    stopped halfway.
    """
    settings = file_service.settings
    now = time.time() if now is None else now
    stale_threshold = now - settings.UPLOAD_TIMEOUT_SECONDS

    removed_temp_files = 0
    for temp_file in file_service.upload_dir.glob(f".*{TEMP_SUFFIX}"):
        try:
            if temp_file.is_file() and temp_file.stat().st_mtime < stale_threshold:
                logger.info(f"Removing stale temp file: {temp_file.name}")
                temp_file.unlink()
                removed_temp_files += 1
        except FileNotFoundError:
            continue

    with file_service.SessionLocal() as db:
        records = crud.list_upload_records(db)
        orphaned = [name for name in records if not file_service.path_for(name).is_file()]
        crud.delete_upload_records(db, orphaned)
    for name in orphaned:
        logger.info(f"Removed metadata of missing file: {name}")

    return {"temp_files": removed_temp_files, "orphaned_records": len(orphaned)}


async def cleanup_stale_uploads(settings: Settings):
    """
    Periodically reconcile the uploads directory with the metadata index.
    """
    file_service = FileService(settings)
    while True:
        try:
            logger.info("Running cleanup task for stale uploads")
            reconcile_storage(file_service)
        except Exception as e:
            logger.error(f"Error in cleanup task: {str(e)}")

        # Wait for next run
        await asyncio.sleep(settings.CLEANUP_INTERVAL_SECONDS)


def setup_cleanup_tasks(app: FastAPI):
    """
    Set up background tasks for the FastAPI application.
    """
    @app.on_event("startup")
    async def start_cleanup_task():
        settings = app.dependency_overrides.get(get_settings, get_settings)()
        app.state.cleanup_task = asyncio.create_task(cleanup_stale_uploads(settings))

    @app.on_event("shutdown")
    async def stop_cleanup_task():
        task = getattr(app.state, "cleanup_task", None)
        if task is not None:
            task.cancel()
