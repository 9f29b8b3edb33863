from dataclasses import dataclass
from typing import Optional
from filestream.core.errors import RangeNotSatisfiable

RANGE_UNIT = "bytes"


@dataclass(frozen=True)
class ByteRange:
    """
    Inclusive byte interval of a resource, ``0 <= start <= end < total_size``.
    """
    start: int
    end: int
    total_size: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.total_size}"


def _parse_position(value: str, total_size: int) -> int:
    value = value.strip()
    if not value.isdigit():
        raise RangeNotSatisfiable(total_size)
    return int(value)


def parse_range_header(range_header: Optional[str], total_size: int) -> Optional[ByteRange]:
    """
    Parse the Range header to determine the start and end bytes.

    Returns None when the whole resource should be sent, either because no
    header was given or because it uses a unit other than bytes. Raises
    RangeNotSatisfiable for malformed, multi-range or out-of-bounds values.
    """
    if not range_header or not range_header.strip():
        return None

    if "=" not in range_header:
        raise RangeNotSatisfiable(total_size)
    range_type, range_value = range_header.split("=", 1)
    if range_type.strip().lower() != RANGE_UNIT:
        return None

    # Multipart byteranges responses are not supported
    if "," in range_value or range_value.count("-") != 1:
        raise RangeNotSatisfiable(total_size)

    start_str, end_str = range_value.split("-")
    start_str, end_str = start_str.strip(), end_str.strip()

    if not start_str:
        # Suffix range: the last N bytes
        suffix_length = _parse_position(end_str, total_size)
        if suffix_length == 0 or total_size == 0:
            raise RangeNotSatisfiable(total_size)
        start = max(0, total_size - suffix_length)
        end = total_size - 1
    else:
        start = _parse_position(start_str, total_size)
        end = _parse_position(end_str, total_size) if end_str else total_size - 1

    if start >= total_size or end >= total_size or start > end:
        raise RangeNotSatisfiable(total_size)

    return ByteRange(start=start, end=end, total_size=total_size)
