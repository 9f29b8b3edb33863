import asyncio
import logging
import aiofiles
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncGenerator, Dict, Optional
from fastapi import status
from fastapi.responses import StreamingResponse
from filestream.core.errors import is_client_disconnect
from filestream.utils.range_utils import ByteRange, parse_range_header

logger = logging.getLogger("streaming")

DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class StreamableFile:
    path: Path
    total_size: int
    mime_type: str


async def read_file_range(
    file_path: Path,
    start_byte: int,
    end_byte: int,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    debug_streams: bool = False,
    label: str = "file",
) -> AsyncGenerator[bytes, None]:
    """
    Read a range of bytes from a file and yield chunks.

    Exactly ``end_byte - start_byte + 1`` bytes are produced in offset order.
    The next chunk is only read once the previous one has been handed to the
    server, so a slow client slows the reads down with it.
    """
    bytes_to_read = end_byte - start_byte + 1
    bytes_read = 0
    try:
        async with aiofiles.open(file_path, "rb") as f:
            await f.seek(start_byte)
            while bytes_read < bytes_to_read:
                current_chunk_size = min(chunk_size, bytes_to_read - bytes_read)
                chunk = await f.read(current_chunk_size)
                if not chunk:
                    # File shrank underneath us
                    raise EOFError(
                        f"{label} ended after {bytes_read} of {bytes_to_read} bytes"
                    )
                bytes_read += len(chunk)
                yield chunk
    except (GeneratorExit, asyncio.CancelledError):
        if debug_streams:
            logger.info(f"Client disconnected from {label} stream after {bytes_read} bytes")
        raise
    except (OSError, EOFError) as e:
        if is_client_disconnect(e):
            if debug_streams:
                logger.info(f"Client disconnected from {label} stream: {e}")
        else:
            logger.error(f"Error streaming {label} {file_path.name}: {e}")
        raise


def file_response(
    file: StreamableFile,
    range_header: Optional[str],
    extra_headers: Optional[Dict[str, str]] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    debug_streams: bool = False,
    label: str = "file",
) -> StreamingResponse:
    """
    Build a 200 or 206 streaming response for a file.

    Raises RangeNotSatisfiable before anything is streamed when the Range
    header does not fit the file.
    """
    byte_range: Optional[ByteRange] = parse_range_header(range_header, file.total_size)

    headers = {
        "Accept-Ranges": "bytes",
        "Content-Type": file.mime_type,
    }
    if extra_headers:
        headers.update(extra_headers)

    if byte_range is None:
        start_byte, end_byte = 0, file.total_size - 1
        status_code = status.HTTP_200_OK
    else:
        start_byte, end_byte = byte_range.start, byte_range.end
        headers["Content-Range"] = byte_range.content_range
        status_code = status.HTTP_206_PARTIAL_CONTENT
    headers["Content-Length"] = str(end_byte - start_byte + 1)

    return StreamingResponse(
        read_file_range(
            file.path,
            start_byte,
            end_byte,
            chunk_size=chunk_size,
            debug_streams=debug_streams,
            label=label,
        ),
        status_code=status_code,
        headers=headers,
        media_type=file.mime_type,
    )
