import asyncio
import logging
import time
import zipfile
import aiofiles
import aiofiles.os
from typing import AsyncGenerator, List, Optional
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from filestream.core.config import Settings
from filestream.core.errors import BadRequest, NotFound
from filestream.services.file_service import FileService
from filestream.services.streaming import DEFAULT_CHUNK_SIZE, StreamableFile
from filestream.utils.file_utils import format_bytes

logger = logging.getLogger("archive_service")

ARCHIVE_FILENAME = "downloads.zip"
PROGRESS_LOG_EVERY = 10
# Earliest timestamp a ZIP header can hold
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


class ArchiveSink:
    """
    Write-only, unseekable target for ZipFile that hands out what was written.

    ZipFile falls back to data descriptors for unseekable outputs, so entries
    never need to be rewritten once emitted.
    """

    def __init__(self):
        self._chunks: List[bytes] = []

    def write(self, data) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def flush(self):
        pass

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


def _zip_info(entry: StreamableFile, mtime: float, compress_level: int) -> zipfile.ZipInfo:
    date_time = max(time.localtime(mtime)[:6], ZIP_EPOCH)
    info = zipfile.ZipInfo(entry.path.name, date_time=date_time)
    info.compress_type = zipfile.ZIP_DEFLATED
    if hasattr(info, "compress_level"):
        # Python 3.13+
        info.compress_level = compress_level
    else:
        info._compresslevel = compress_level
    info.file_size = entry.total_size
    return info


def _compress_chunk(writer, sink: ArchiveSink, chunk: bytes) -> bytes:
    writer.write(chunk)
    return sink.drain()


def _close_entry(writer, sink: ArchiveSink) -> bytes:
    writer.close()
    return sink.drain()


async def stream_archive(
    files: List[StreamableFile],
    compress_level: int = 6,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    debug_streams: bool = False,
) -> AsyncGenerator[bytes, None]:
    """
    Stream a ZIP archive of the given files, in order, as it is built.

    A file that cannot be opened is skipped; a read failure in the middle of
    a file ends that entry early. Neither aborts the archive. Compression
    runs in the threadpool so the event loop keeps serving other requests.
    """
    sink = ArchiveSink()
    added = 0
    skipped = 0
    try:
        with zipfile.ZipFile(sink, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=compress_level) as archive:
            for entry in files:
                try:
                    stats = await aiofiles.os.stat(entry.path)
                    handle = await aiofiles.open(entry.path, "rb")
                except OSError as e:
                    skipped += 1
                    logger.warning(f"Archive warning: skipping {entry.path.name}: {e}")
                    continue

                try:
                    info = _zip_info(entry, stats.st_mtime, compress_level)
                    force_zip64 = entry.total_size >= zipfile.ZIP64_LIMIT
                    writer = archive.open(info, "w", force_zip64=force_zip64)
                    try:
                        while True:
                            try:
                                chunk = await handle.read(chunk_size)
                            except OSError as e:
                                logger.error(f"Error adding file {entry.path.name} to ZIP: {e}")
                                break
                            if not chunk:
                                break
                            data = await run_in_threadpool(_compress_chunk, writer, sink, chunk)
                            if data:
                                yield data
                    except BaseException:
                        # ZipFile refuses to close while an entry is open
                        writer.close()
                        raise
                    data = await run_in_threadpool(_close_entry, writer, sink)
                finally:
                    await handle.close()

                added += 1
                if data:
                    yield data
                if added % PROGRESS_LOG_EVERY == 0:
                    logger.info(f"ZIP progress: {added}/{len(files)} files added")

        data = sink.drain()
        if data:
            yield data
    except (GeneratorExit, asyncio.CancelledError):
        if debug_streams:
            logger.info(f"Client disconnected during ZIP download after {added} files")
        raise

    logger.info(f"ZIP finished: {added} files added, {skipped} skipped")


class ArchiveService:
    """
    Validates bulk download requests and streams the resulting archive.
    """

    def __init__(self, settings: Settings, file_service: FileService):
        self.settings = settings
        self.file_service = file_service

    async def collect_files(self, filenames: Optional[List[str]]) -> List[StreamableFile]:
        if not filenames or not isinstance(filenames, list):
            raise BadRequest("No filenames provided")

        if len(filenames) > self.settings.MAX_BATCH_FILES:
            raise BadRequest(f"Too many files. Maximum {self.settings.MAX_BATCH_FILES} files allowed.")

        valid_files = await self.file_service.find_existing_files(filenames)
        if not valid_files:
            raise NotFound("No valid files found")
        return valid_files

    async def archive_response(self, filenames: Optional[List[str]]) -> StreamingResponse:
        """
        Check the request, then start a streamed ZIP response right away.
        """
        valid_files = await self.collect_files(filenames)

        total_size = sum(entry.total_size for entry in valid_files)
        logger.info(f"ZIP creation started for {len(valid_files)} files ({format_bytes(total_size)})")

        headers = {
            "Content-Disposition": f'attachment; filename="{ARCHIVE_FILENAME}"',
        }
        return StreamingResponse(
            stream_archive(
                valid_files,
                compress_level=self.settings.ZIP_COMPRESSION_LEVEL,
                chunk_size=self.settings.STREAM_CHUNK_SIZE,
                debug_streams=self.settings.DEBUG_STREAMS,
            ),
            headers=headers,
            media_type="application/zip",
        )
