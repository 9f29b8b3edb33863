from typing import Optional
from fastapi import APIRouter, Depends, Header
from fastapi.responses import StreamingResponse
from filestream.core.config import Settings, get_settings
from filestream.core.errors import NotFound
from filestream.services.streaming import StreamableFile, file_response

router = APIRouter(tags=["media"])

VIDEO_MIME_TYPE = "video/mp4"

@router.get("/video")
async def stream_video(
    range: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> StreamingResponse:
    """
    Stream the configured video file, honouring Range requests so players
    can seek.
    """
    video_path = settings.VIDEO_PATH
    try:
        if not video_path.is_file():
            raise FileNotFoundError(video_path)
        total_size = video_path.stat().st_size
    except FileNotFoundError:
        raise NotFound("Video file not found")

    video = StreamableFile(path=video_path, total_size=total_size, mime_type=VIDEO_MIME_TYPE)
    return file_response(
        video,
        range,
        chunk_size=settings.STREAM_CHUNK_SIZE,
        debug_streams=settings.DEBUG_STREAMS,
        label="video",
    )
