import asyncio
import logging
import os
import aiofiles
import aiofiles.os
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from fastapi import Request
from fastapi.concurrency import run_in_threadpool
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.requests import ClientDisconnect
from filestream.core.config import Settings
from filestream.core.errors import BadRequest, ClientClosedRequest, UploadTimeout
from filestream.services.file_service import FileService
from filestream.utils.file_utils import DEFAULT_MIME_TYPE, generate_stored_name, isoformat_utc

logger = logging.getLogger("upload_service")

# Attempts at finding an unused stored name before giving up
MAX_NAME_ATTEMPTS = 10


class PartEvent(Enum):
    PART_BEGIN = 1
    HEADERS = 2
    DATA = 3
    PART_END = 4


class MultipartEvents:
    """
    Collects python-multipart parser callbacks as a list of events.

    The parser callbacks are synchronous; the events are handled afterwards
    by the ingest coroutine, which can await file writes.
    """

    def __init__(self):
        self.events: List[Tuple[PartEvent, Any]] = []
        self._headers: Dict[bytes, bytes] = {}
        self._header_field = b""
        self._header_value = b""

    @property
    def callbacks(self) -> Dict[str, Any]:
        return {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
        }

    def on_part_begin(self):
        self._headers = {}
        self.events.append((PartEvent.PART_BEGIN, None))

    def on_part_data(self, data: bytes, start: int, end: int):
        self.events.append((PartEvent.DATA, bytes(data[start:end])))

    def on_part_end(self):
        self.events.append((PartEvent.PART_END, None))

    def on_header_field(self, data: bytes, start: int, end: int):
        self._header_field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int):
        self._header_value += data[start:end]

    def on_header_end(self):
        self._headers[self._header_field.lower()] = self._header_value
        self._header_field = b""
        self._header_value = b""

    def on_headers_finished(self):
        self.events.append((PartEvent.HEADERS, dict(self._headers)))

    def pop(self) -> List[Tuple[PartEvent, Any]]:
        events, self.events = self.events, []
        return events


@dataclass
class PendingUpload:
    original_name: str
    stored_name: str
    temp_path: Path
    mime_type: str
    handle: Any
    size: int = 0


class UploadService:
    """
    Streams multipart uploads to disk, one linear coroutine per request.

    Each file part is written to a hidden temp file as it arrives, synced,
    recorded in the metadata index and only then renamed into place.
    """

    def __init__(self, settings: Settings, file_service: FileService):
        self.settings = settings
        self.file_service = file_service

    async def ingest(self, request: Request, max_files: int = 1, skip_blank_names: bool = False) -> List[Dict[str, Any]]:
        """
        Store up to ``max_files`` file parts of a multipart request.

        Returns the stored file descriptions once every file is durable.
        Raises UploadTimeout when the whole upload exceeds the time budget.
        """
        try:
            return await asyncio.wait_for(
                self._ingest(request, max_files, skip_blank_names),
                timeout=self.settings.UPLOAD_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Upload timed out after {self.settings.UPLOAD_TIMEOUT_SECONDS} seconds")
            raise UploadTimeout()

    async def _ingest(self, request: Request, max_files: int, skip_blank_names: bool) -> List[Dict[str, Any]]:
        content_type, params = parse_options_header(request.headers.get("content-type", ""))
        if content_type.lower() != b"multipart/form-data":
            raise BadRequest("Expected a multipart/form-data upload")
        boundary = params.get(b"boundary")
        if not boundary:
            raise BadRequest("Missing boundary in multipart upload")

        receiver = MultipartEvents()
        parser = MultipartParser(boundary, receiver.callbacks)
        stored: List[Dict[str, Any]] = []
        pending: Optional[PendingUpload] = None
        ignore_part = True

        try:
            finished = False
            stream = request.stream()
            while not finished:
                try:
                    chunk = await stream.__anext__()
                except StopAsyncIteration:
                    parser.finalize()
                    finished = True
                else:
                    parser.write(chunk)

                for event, payload in receiver.pop():
                    if event is PartEvent.PART_BEGIN:
                        ignore_part = True
                    elif event is PartEvent.HEADERS:
                        pending = await self._start_part(payload, len(stored), max_files, skip_blank_names)
                        ignore_part = pending is None
                    elif event is PartEvent.DATA and not ignore_part:
                        await self._write_part(pending, payload)
                    elif event is PartEvent.PART_END and not ignore_part:
                        stored.append(await self._finish_part(pending))
                        pending = None
                        ignore_part = True

            if pending is not None:
                raise MultipartParseError("Upload ended in the middle of a file")
        except ClientDisconnect:
            await self._discard(pending, stored)
            if self.settings.DEBUG_STREAMS:
                logger.info("Client disconnected during upload")
            raise ClientClosedRequest()
        except MultipartParseError as e:
            await self._discard(pending, stored)
            logger.warning(f"Malformed multipart upload: {e}")
            raise BadRequest("Malformed multipart upload")
        except BaseException:
            # Includes cancellation by the upload timeout
            await self._discard(pending, stored)
            raise

        return stored

    async def _start_part(
        self,
        headers: Dict[bytes, bytes],
        stored_count: int,
        max_files: int,
        skip_blank_names: bool,
    ) -> Optional[PendingUpload]:
        _, options = parse_options_header(headers.get(b"content-disposition", b""))
        if b"filename" not in options:
            field_name = options.get(b"name", b"").decode("utf-8", "replace")
            logger.debug(f"Ignoring form field: {field_name}")
            return None

        filename = options[b"filename"].decode("utf-8", "replace")
        original_name = filename.replace("\\", "/").rsplit("/", 1)[-1].strip()
        if not original_name:
            if skip_blank_names:
                logger.info("Skipping file part with an empty filename")
                return None
            logger.info("Invalid filename detected")
            raise BadRequest("Invalid filename")

        if stored_count >= max_files:
            logger.warning(f"Ignoring extra file part {original_name}: limit is {max_files} per request")
            return None

        mime_type = headers.get(b"content-type", b"").decode("latin-1").strip() or DEFAULT_MIME_TYPE

        for _ in range(MAX_NAME_ATTEMPTS):
            stored_name = generate_stored_name(original_name)
            if self.file_service.path_for(stored_name).exists():
                continue
            temp_path = self.file_service.temp_path_for(stored_name)
            try:
                handle = await aiofiles.open(temp_path, "xb")
            except FileExistsError:
                continue
            logger.info(f"Starting upload for: {original_name} -> {stored_name}")
            return PendingUpload(
                original_name=original_name,
                stored_name=stored_name,
                temp_path=temp_path,
                mime_type=mime_type,
                handle=handle,
            )

        raise RuntimeError("Could not allocate a unique stored name")

    async def _write_part(self, pending: PendingUpload, data: bytes):
        pending.size += len(data)
        if pending.size > self.settings.MAX_FILE_SIZE:
            logger.info(f"File too large: {pending.original_name} exceeded {self.settings.MAX_FILE_SIZE} bytes")
            raise BadRequest(f"File too large (max {self.settings.max_file_size_label})")
        await pending.handle.write(data)

    async def _finish_part(self, pending: PendingUpload) -> Dict[str, Any]:
        """
        Make a written part durable, index it and move it into place.
        """
        await pending.handle.flush()
        await run_in_threadpool(os.fsync, pending.handle.fileno())
        await pending.handle.close()

        stats = await aiofiles.os.stat(pending.temp_path)
        uploaded_at = datetime.now(timezone.utc)
        self.file_service.record_upload(
            stored_name=pending.stored_name,
            original_name=pending.original_name,
            size_bytes=stats.st_size,
            mime_type=pending.mime_type,
            uploaded_at=uploaded_at,
        )
        try:
            await aiofiles.os.rename(pending.temp_path, self.file_service.path_for(pending.stored_name))
        except OSError:
            self.file_service.forget_uploads([pending.stored_name])
            raise

        uploaded_file = {
            "filename": pending.stored_name,
            "originalName": pending.original_name,
            "size": stats.st_size,
            "mimetype": pending.mime_type,
            "uploadedAt": isoformat_utc(uploaded_at),
        }
        logger.info(f"File uploaded successfully: {uploaded_file}")
        return uploaded_file

    async def _discard(self, pending: Optional[PendingUpload], stored: List[Dict[str, Any]]):
        """
        Remove everything a failed request wrote: the partial file and the
        files it had already completed.
        """
        if pending is not None:
            try:
                await pending.handle.close()
            except OSError as e:
                logger.warning(f"Could not close partial upload {pending.stored_name}: {e}")
            await self._remove_quietly(pending.temp_path)

        if stored:
            names = [item["filename"] for item in stored]
            for name in names:
                await self._remove_quietly(self.file_service.path_for(name))
            self.file_service.forget_uploads(names)
            logger.info(f"Rolled back {len(names)} stored files of a failed upload")

    async def _remove_quietly(self, path: Path):
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Could not remove {path.name}: {e}")
