import math
import mimetypes
import os
import secrets
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import quote

DEFAULT_MIME_TYPE = "application/octet-stream"

MIME_TYPES = {
    ".mp4": "video/mp4",
    ".avi": "video/x-msvideo",
    ".mov": "video/quicktime",
    ".mkv": "video/x-matroska",
    ".webm": "video/webm",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".txt": "text/plain",
    ".zip": "application/zip",
    ".rar": "application/x-rar-compressed",
    ".csv": "text/csv",
}

# Extensions kept on stored names must be short and plain
MAX_EXTENSION_LENGTH = 16


def get_mime_type(filename: str) -> str:
    """
    Look up the MIME type of a file from its extension.
    """
    ext = os.path.splitext(filename)[1].lower()
    if ext in MIME_TYPES:
        return MIME_TYPES[ext]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or DEFAULT_MIME_TYPE


def safe_extension(filename: str) -> str:
    ext = os.path.splitext(os.path.basename(filename.replace("\\", "/")))[1]
    plain = ext[1:]
    if len(ext) > MAX_EXTENSION_LENGTH or not (plain.isascii() and plain.isalnum()):
        return ""
    return ext


def generate_stored_name(original_name: str) -> str:
    """
    Generate a collision-resistant stored name keeping the original extension.

    Format: file-<epoch millis>-<random 0..1e9><ext>
    """
    timestamp = int(time.time() * 1000)
    random_suffix = secrets.randbelow(10 ** 9)
    return f"file-{timestamp}-{random_suffix}{safe_extension(original_name)}"


def content_disposition(filename: str) -> str:
    """
    Build an attachment Content-Disposition header for a file name.

    Names that are not plain printable ASCII get an ASCII fallback plus the
    RFC 5987 UTF-8 form, since header values must encode as latin-1.
    """
    fallback = "".join(
        ch if " " <= ch <= "~" and ch not in "\"\\" else "_"
        for ch in filename
    )
    if fallback == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


def is_public_name(filename: str) -> bool:
    """
    Names that may be addressed from a URL: no path parts, not hidden.
    """
    if not filename or filename.startswith("."):
        return False
    return "/" not in filename and "\\" not in filename and "\x00" not in filename


def format_bytes(num_bytes: int) -> str:
    if num_bytes == 0:
        return "0 Bytes"
    k = 1024
    sizes = ["Bytes", "KB", "MB", "GB", "TB"]
    i = min(int(math.floor(math.log(num_bytes, k))), len(sizes) - 1)
    return f"{round(num_bytes / math.pow(k, i), 2):g} {sizes[i]}"


def isoformat_utc(moment: Optional[datetime] = None) -> str:
    """
    Format a timestamp like ``2024-01-31T12:00:00.000Z``.

    Naive datetimes are taken to be UTC.
    """
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def ensure_directory_exists(directory_path: Path) -> None:
    """
    Ensure that a directory exists, creating it if necessary.
    """
    directory_path.mkdir(parents=True, exist_ok=True)
