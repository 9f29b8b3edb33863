from functools import lru_cache
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore")

    PROJECT_NAME: str = "Streaming File Server"

    # Server settings
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # Storage settings
    STORAGE_ROOT: Path = Path("storage")
    UPLOAD_DIR: Optional[Path] = None
    VIDEO_PATH: Optional[Path] = None
    INDEX_DB_PATH: Optional[Path] = None

    # Upload limits
    MAX_FILE_SIZE: int = 100 * 1024 * 1024  # 100MB
    MAX_UPLOAD_FILES: int = 100
    UPLOAD_TIMEOUT_SECONDS: float = 5 * 60

    # Download settings
    MAX_BATCH_FILES: int = 100
    STREAM_CHUNK_SIZE: int = 64 * 1024
    ZIP_COMPRESSION_LEVEL: int = 6  # Balanced speed/size

    # Cleanup settings
    CLEANUP_INTERVAL_SECONDS: int = 3600  # Run cleanup every hour

    # Verbose connection-lifecycle logging
    DEBUG_STREAMS: bool = False

    # Derive storage paths from the storage root
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if self.UPLOAD_DIR is None:
            self.UPLOAD_DIR = self.STORAGE_ROOT / "uploads"
        if self.VIDEO_PATH is None:
            self.VIDEO_PATH = self.STORAGE_ROOT / "sample-video.mp4"
        if self.INDEX_DB_PATH is None:
            self.INDEX_DB_PATH = self.STORAGE_ROOT / "index.db"

    @property
    def max_file_size_label(self) -> str:
        megabyte = 1024 * 1024
        if self.MAX_FILE_SIZE % megabyte:
            return f"{self.MAX_FILE_SIZE} bytes"
        return f"{self.MAX_FILE_SIZE // megabyte}MB"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


# Global settings instance
settings = get_settings()
