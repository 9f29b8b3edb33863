from pydantic import BaseModel
from typing import Any, List, Optional

class UploadedFile(BaseModel):
    filename: str
    originalName: str
    size: int
    mimetype: str
    uploadedAt: str

class UploadResponse(BaseModel):
    message: str
    file: UploadedFile

class MultipleUploadResponse(BaseModel):
    message: str
    files: List[UploadedFile]
    count: int

class StoredFile(UploadedFile):
    path: str

class FileListResponse(BaseModel):
    files: List[StoredFile]

class ArchiveRequest(BaseModel):
    # Left loose so that a missing or empty list maps to a 400, not a 422
    filenames: Optional[List[Any]] = None

class MessageResponse(BaseModel):
    message: str
