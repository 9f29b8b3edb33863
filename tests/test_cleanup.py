import os
import time
from datetime import datetime, timezone
from filestream.services.cleanup_service import reconcile_storage
from filestream.services.file_service import FileService

def test_reconcile_removes_stale_temp_files(test_settings):
    file_service = FileService(test_settings)
    stale = file_service.temp_path_for("file-1-1.bin")
    fresh = file_service.temp_path_for("file-2-2.bin")
    stale.write_bytes(b"abandoned")
    fresh.write_bytes(b"still uploading")
    old = time.time() - test_settings.UPLOAD_TIMEOUT_SECONDS - 60
    os.utime(stale, (old, old))

    result = reconcile_storage(file_service)

    assert result["temp_files"] == 1
    assert not stale.exists()
    assert fresh.exists()

def test_reconcile_removes_metadata_of_missing_files(test_settings):
    file_service = FileService(test_settings)
    (file_service.upload_dir / "file-3-3.txt").write_bytes(b"kept")
    for name in ("file-3-3.txt", "file-4-4.txt"):
        file_service.record_upload(
            stored_name=name,
            original_name="notes.txt",
            size_bytes=4,
            mime_type="text/plain",
            uploaded_at=datetime.now(timezone.utc),
        )

    result = reconcile_storage(file_service)

    assert result["orphaned_records"] == 1
    assert file_service.forget_uploads(["file-4-4.txt"]) == 0
    assert file_service.forget_uploads(["file-3-3.txt"]) == 1
