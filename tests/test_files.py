import os
from fastapi import status
from filestream.utils.file_utils import content_disposition, safe_extension

def test_list_files(test_client, upload):
    """Test listing files."""
    uploaded = [upload(f"list_test_{i}.txt", f"Test content for file {i}".encode()) for i in range(3)]

    response = test_client.get("/files")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert "files" in data
    assert len(data["files"]) == 3

    by_name = {item["filename"]: item for item in data["files"]}
    for i, stored in enumerate(uploaded):
        listed = by_name[stored["filename"]]
        assert listed["originalName"] == f"list_test_{i}.txt"
        assert listed["size"] == len(f"Test content for file {i}")
        assert listed["path"] == f"/download/{stored['filename']}"
        assert listed["mimetype"] == "text/plain"
        assert listed["uploadedAt"] == stored["uploadedAt"]

def test_list_files_empty(test_client, upload_dir):
    response = test_client.get("/files")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"files": []}

def test_list_files_without_metadata(test_client, upload_dir):
    """Files placed directly in the uploads directory fall back to defaults."""
    (upload_dir / "manual.pdf").write_bytes(b"%PDF-1.4")
    (upload_dir / ".file-1-2.txt.part").write_bytes(b"in flight")

    response = test_client.get("/files")

    files = response.json()["files"]
    assert len(files) == 1
    assert files[0]["filename"] == "manual.pdf"
    assert files[0]["originalName"] == "manual.pdf"
    assert files[0]["mimetype"] == "application/pdf"
    assert files[0]["size"] == 8

def test_delete_file(test_client, upload, upload_dir):
    """Test deleting a file."""
    stored = upload("delete_test.txt", b"Test file content for delete test")

    response = test_client.delete(f"/files/{stored['filename']}")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"message": "File deleted successfully"}

    # Verify file is deleted
    assert os.listdir(upload_dir) == []
    listing = test_client.get("/files").json()["files"]
    assert stored["filename"] not in [item["filename"] for item in listing]
    assert test_client.get(f"/download/{stored['filename']}").status_code == status.HTTP_404_NOT_FOUND

def test_delete_missing_file(test_client, upload_dir):
    response = test_client.delete("/files/does-not-exist.txt")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"error": "File not found"}

def test_delete_twice(test_client, upload):
    stored = upload("twice.txt", b"content")

    assert test_client.delete(f"/files/{stored['filename']}").status_code == status.HTTP_200_OK
    assert test_client.delete(f"/files/{stored['filename']}").status_code == status.HTTP_404_NOT_FOUND

def test_unknown_route(test_client):
    response = test_client.get("/no-such-route")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"error": "Route not found"}

def test_safe_extension_keeps_only_plain_ascii():
    assert safe_extension("report.PDF") == ".PDF"
    assert safe_extension("clip.日本") == ""
    assert safe_extension("archive.tar.gz") == ".gz"
    assert safe_extension("notes.t x t") == ""
    assert safe_extension("README") == ""

def test_content_disposition_quotes_unsafe_names():
    assert content_disposition("file-1-2.txt") == 'attachment; filename="file-1-2.txt"'
    assert content_disposition('say "hi".txt') == (
        "attachment; filename=\"say _hi_.txt\"; filename*=UTF-8''say%20%22hi%22.txt"
    )
    content_disposition("clip.日本").encode("latin-1")
