import logging
import aiofiles.os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List
from filestream import crud
from filestream.core.config import Settings
from filestream.core.errors import NotFound
from filestream.database import get_session_factory
from filestream.services.streaming import StreamableFile
from filestream.utils.file_utils import ensure_directory_exists, get_mime_type, is_public_name, isoformat_utc

logger = logging.getLogger("file_service")

TEMP_SUFFIX = ".part"


class FileService:
    """
    Service to handle stored uploads: lookup, listing, metadata and deletion.

    Payloads live in the uploads directory under generated names; their
    original names and upload times live in the metadata index.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.upload_dir = Path(settings.UPLOAD_DIR)
        self.SessionLocal = get_session_factory(str(settings.INDEX_DB_PATH))

        # Create the uploads directory if it doesn't exist
        ensure_directory_exists(self.upload_dir)

    def path_for(self, filename: str) -> Path:
        return self.upload_dir / filename

    def temp_path_for(self, stored_name: str) -> Path:
        """
        Hidden path an upload is written to before it becomes visible.
        """
        return self.upload_dir / f".{stored_name}{TEMP_SUFFIX}"

    async def get_streamable_file(self, filename: str) -> StreamableFile:
        """
        Resolve a stored file for download, or raise NotFound.
        """
        if not is_public_name(filename):
            raise NotFound()
        file_path = self.path_for(filename)
        try:
            stats = await aiofiles.os.stat(file_path)
        except (FileNotFoundError, NotADirectoryError):
            raise NotFound()
        if not file_path.is_file():
            raise NotFound()
        return StreamableFile(path=file_path, total_size=stats.st_size, mime_type=get_mime_type(filename))

    async def find_existing_files(self, filenames: List[str]) -> List[StreamableFile]:
        """
        Resolve the names that exist, in the given order, skipping the rest.
        """
        found = []
        seen = set()
        for filename in filenames:
            if not isinstance(filename, str) or filename in seen:
                continue
            seen.add(filename)
            try:
                found.append(await self.get_streamable_file(filename))
            except NotFound:
                logger.info(f"Skipping missing file requested for archive: {filename}")
        return found

    async def list_files(self) -> List[Dict[str, Any]]:
        """
        List all stored files with their metadata.
        """
        with self.SessionLocal() as db:
            records = crud.list_upload_records(db)

        files = []
        for file_path in sorted(self.upload_dir.iterdir()):
            filename = file_path.name
            if not is_public_name(filename):
                continue
            try:
                if not file_path.is_file():
                    continue
                stats = file_path.stat()
            except FileNotFoundError:
                # Deleted while listing
                continue

            record = records.get(filename)
            if record is not None:
                original_name = record.original_name
                uploaded_at = isoformat_utc(record.uploaded_at)
                mimetype = record.mime_type
            else:
                original_name = filename
                uploaded_at = isoformat_utc(datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc))
                mimetype = get_mime_type(filename)

            files.append({
                "filename": filename,
                "originalName": original_name,
                "size": stats.st_size,
                "uploadedAt": uploaded_at,
                "path": f"/download/{filename}",
                "mimetype": mimetype,
            })

        return files

    def record_upload(
        self,
        stored_name: str,
        original_name: str,
        size_bytes: int,
        mime_type: str,
        uploaded_at: datetime,
    ) -> None:
        with self.SessionLocal() as db:
            crud.create_upload_record(
                db,
                stored_name=stored_name,
                original_name=original_name,
                size_bytes=size_bytes,
                mime_type=mime_type,
                uploaded_at=uploaded_at.astimezone(timezone.utc).replace(tzinfo=None),
            )

    def forget_uploads(self, stored_names: List[str]) -> int:
        with self.SessionLocal() as db:
            return crud.delete_upload_records(db, stored_names)

    async def delete_file(self, filename: str) -> bool:
        """
        Delete a stored file and its metadata.

        The payload goes first so a concurrent listing never shows a file
        whose metadata is already gone.
        """
        if not is_public_name(filename):
            return False
        file_path = self.path_for(filename)
        if not file_path.is_file():
            return False
        try:
            await aiofiles.os.remove(file_path)
        except FileNotFoundError:
            return False

        with self.SessionLocal() as db:
            crud.delete_upload_record(db, filename)

        logger.info(f"Deleted file: {filename}")
        return True
