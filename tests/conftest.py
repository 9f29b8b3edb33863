import io
import pytest
from pathlib import Path
from fastapi.testclient import TestClient
from main import app
from filestream.core.config import Settings, get_settings

@pytest.fixture
def test_settings(tmp_path):
    """Settings pointing at an isolated storage root."""
    return Settings(
        STORAGE_ROOT=tmp_path,
        UPLOAD_DIR=tmp_path / "uploads",
        VIDEO_PATH=tmp_path / "sample-video.mp4",
        INDEX_DB_PATH=tmp_path / "index.db",
        MAX_FILE_SIZE=1024,
        STREAM_CHUNK_SIZE=7,
    )

@pytest.fixture
def test_client(test_settings):
    """Create a test client for the FastAPI app."""
    app.dependency_overrides[get_settings] = lambda: test_settings
    yield TestClient(app)
    app.dependency_overrides.clear()

@pytest.fixture
def upload_dir(test_settings) -> Path:
    test_settings.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    return test_settings.UPLOAD_DIR

@pytest.fixture
def video_bytes(test_settings) -> bytes:
    """Write a small fake video to the configured video path."""
    content = bytes(range(256)) * 4 + b"tail"
    test_settings.VIDEO_PATH.write_bytes(content)
    return content

@pytest.fixture
def upload(test_client):
    """Upload a file through the API and return the stored description."""
    def _upload(name: str, content: bytes, content_type: str = "text/plain") -> dict:
        response = test_client.post(
            "/upload",
            files={"file": (name, io.BytesIO(content), content_type)},
        )
        assert response.status_code == 200, response.text
        return response.json()["file"]
    return _upload
