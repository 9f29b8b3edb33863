import asyncio
import io
import zipfile
from fastapi import status
from filestream.services.archive_service import stream_archive
from filestream.services.streaming import StreamableFile

def read_zip(content: bytes) -> dict:
    with zipfile.ZipFile(io.BytesIO(content)) as archive:
        assert archive.testzip() is None
        return {info.filename: archive.read(info.filename) for info in archive.infolist()}

def test_download_zip(test_client, upload):
    contents = {
        "a": b"alpha " * 50,
        "b": b"bravo " * 80,
        "c": bytes(range(256)),
    }
    stored = {key: upload(f"{key}.txt", value)["filename"] for key, value in contents.items()}

    response = test_client.post(
        "/download-zip",
        json={"filenames": [stored["b"], stored["a"], stored["c"]]},
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.headers["Content-Type"] == "application/zip"
    assert response.headers["Content-Disposition"] == 'attachment; filename="downloads.zip"'
    entries = read_zip(response.content)
    assert entries == {stored[key]: value for key, value in contents.items()}

    with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
        assert [info.filename for info in archive.infolist()] == [stored["b"], stored["a"], stored["c"]]
        assert all(info.compress_type == zipfile.ZIP_DEFLATED for info in archive.infolist())

def test_download_zip_skips_missing_files(test_client, upload):
    stored = upload("present.txt", b"I am here")["filename"]

    response = test_client.post(
        "/download-zip",
        json={"filenames": ["ghost-1.txt", stored, "ghost-2.txt"]},
    )

    assert response.status_code == status.HTTP_200_OK
    assert read_zip(response.content) == {stored: b"I am here"}

def test_download_zip_no_valid_files(test_client, upload_dir):
    response = test_client.post("/download-zip", json={"filenames": ["ghost.txt"]})

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"error": "No valid files found"}

def test_download_zip_requires_filenames(test_client, upload_dir):
    for body in ({"filenames": []}, {}, {"filenames": None}):
        response = test_client.post("/download-zip", json=body)
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "No filenames provided"}

def test_download_zip_without_body(test_client, upload_dir):
    response = test_client.post("/download-zip")

    assert response.status_code == status.HTTP_400_BAD_REQUEST

def test_download_zip_rejects_invalid_body(test_client, upload_dir):
    response = test_client.post("/download-zip", json={"filenames": "not-a-list"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "error" in response.json()

def test_download_zip_too_many_files(test_client, test_settings, upload_dir):
    filenames = [f"file-{i}.txt" for i in range(test_settings.MAX_BATCH_FILES + 1)]

    response = test_client.post("/download-zip", json={"filenames": filenames})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Too many files. Maximum 100 files allowed."}

def test_stream_archive_skips_file_deleted_before_reading(tmp_path):
    kept = tmp_path / "kept.bin"
    kept.write_bytes(b"kept content")
    gone = StreamableFile(path=tmp_path / "gone.bin", total_size=10, mime_type="application/octet-stream")
    files = [gone, StreamableFile(path=kept, total_size=12, mime_type="application/octet-stream")]

    async def collect():
        return b"".join([chunk async for chunk in stream_archive(files, chunk_size=4)])

    content = asyncio.run(collect())

    assert read_zip(content) == {"kept.bin": b"kept content"}

def test_stream_archive_emits_data_incrementally(tmp_path):
    """Output is produced while entries are added, not only at the end."""
    files = []
    for i in range(3):
        path = tmp_path / f"part{i}.bin"
        path.write_bytes(bytes([i]) * 5000)
        files.append(StreamableFile(path=path, total_size=5000, mime_type="application/octet-stream"))

    async def collect():
        return [chunk async for chunk in stream_archive(files, chunk_size=1024)]

    chunks = asyncio.run(collect())

    assert len(chunks) > 3
    assert read_zip(b"".join(chunks)) == {f"part{i}.bin": bytes([i]) * 5000 for i in range(3)}

def test_stream_archive_stops_when_closed(tmp_path):
    files = []
    for i in range(5):
        path = tmp_path / f"f{i}.bin"
        path.write_bytes(b"z" * 4096)
        files.append(StreamableFile(path=path, total_size=4096, mime_type="application/octet-stream"))

    async def consume_one():
        stream = stream_archive(files, chunk_size=512)
        first = await stream.__anext__()
        await stream.aclose()
        return first

    assert asyncio.run(consume_one())

def test_stream_archive_closes_source_files(tmp_path, monkeypatch):
    import aiofiles
    from filestream.services import archive_service

    opened = []
    real_open = aiofiles.open

    async def tracking_open(*args, **kwargs):
        handle = await real_open(*args, **kwargs)
        opened.append(handle)
        return handle

    monkeypatch.setattr(archive_service.aiofiles, "open", tracking_open)
    files = []
    for i in range(2):
        path = tmp_path / f"doc{i}.txt"
        path.write_bytes(b"text " * 100)
        files.append(StreamableFile(path=path, total_size=500, mime_type="text/plain"))

    async def collect():
        return b"".join([chunk async for chunk in stream_archive(files, chunk_size=64)])

    content = asyncio.run(collect())

    assert read_zip(content) == {f"doc{i}.txt": b"text " * 100 for i in range(2)}
    assert len(opened) == 2
    assert all(handle.closed for handle in opened)

def test_stream_archive_compresses_off_the_event_loop(tmp_path, monkeypatch):
    from filestream.services import archive_service

    calls = []
    real_run_in_threadpool = archive_service.run_in_threadpool

    async def tracking_run_in_threadpool(func, *args, **kwargs):
        calls.append(func.__name__)
        return await real_run_in_threadpool(func, *args, **kwargs)

    monkeypatch.setattr(archive_service, "run_in_threadpool", tracking_run_in_threadpool)
    path = tmp_path / "movie.bin"
    path.write_bytes(b"frame" * 1000)
    files = [StreamableFile(path=path, total_size=5000, mime_type="application/octet-stream")]

    async def collect():
        return b"".join([chunk async for chunk in stream_archive(files, chunk_size=1000)])

    content = asyncio.run(collect())

    assert read_zip(content) == {"movie.bin": b"frame" * 1000}
    assert calls.count("_compress_chunk") == 5
    assert calls.count("_close_entry") == 1

def test_zip_entries_use_requested_compression_level(tmp_path):
    from filestream.services.archive_service import _zip_info

    path = tmp_path / "notes.txt"
    path.write_bytes(b"notes")
    entry = StreamableFile(path=path, total_size=5, mime_type="text/plain")

    info = _zip_info(entry, path.stat().st_mtime, 6)

    level = getattr(info, "compress_level", None)
    if level is None:
        level = info._compresslevel
    assert level == 6
    assert info.compress_type == zipfile.ZIP_DEFLATED
    assert info.file_size == 5
