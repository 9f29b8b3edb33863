from fastapi import Depends
from filestream.core.config import Settings, get_settings
from filestream.services.archive_service import ArchiveService
from filestream.services.file_service import FileService
from filestream.services.upload_service import UploadService

# Dependency to get the FileService instance
def get_file_service(settings: Settings = Depends(get_settings)) -> FileService:
    """
    Dependency to get FileService instance bound to the configured storage.
    """
    return FileService(settings)

def get_upload_service(
    settings: Settings = Depends(get_settings),
    file_service: FileService = Depends(get_file_service),
) -> UploadService:
    return UploadService(settings, file_service)

def get_archive_service(
    settings: Settings = Depends(get_settings),
    file_service: FileService = Depends(get_file_service),
) -> ArchiveService:
    return ArchiveService(settings, file_service)
