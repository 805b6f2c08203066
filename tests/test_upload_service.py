import pytest

from staffchat.core.config import settings
from staffchat.services.upload_service import (
    UploadRejected,
    UploadService,
    content_matches_type,
)

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
PDF = b"%PDF-1.7\n" + b"0" * 32


def test_signature_checks():
    assert content_matches_type(PNG, "image/png")
    assert content_matches_type(PDF, "application/pdf")
    assert content_matches_type(b"anything at all", "text/plain")
    assert not content_matches_type(PDF, "image/png")
    assert not content_matches_type(PNG, "application/zip")


def test_store_writes_file_and_returns_url(tmp_path):
    service = UploadService(upload_dir=str(tmp_path), url_prefix="/files/")

    stored = service.store("Chart.PNG", "image/png", PNG)

    assert stored.url.startswith("/files/")
    assert stored.url.endswith(".png")
    assert stored.filename == "Chart.PNG"
    assert stored.type == "image/png"
    assert stored.size == len(PNG)
    name = stored.url.rsplit("/", 1)[1]
    assert (tmp_path / name).read_bytes() == PNG


def test_stored_names_are_unique(tmp_path):
    service = UploadService(upload_dir=str(tmp_path))
    first = service.store("a.txt", "text/plain", b"one")
    second = service.store("a.txt", "text/plain", b"two")
    assert first.url != second.url


@pytest.mark.parametrize(
    "filename, mime_type, data, reason",
    [
        ("", "text/plain", b"x", "No file provided"),
        ("run.exe", "application/x-msdownload", b"MZ", "File type not allowed"),
        ("fake.png", "image/png", PDF, "does not match"),
    ],
)
def test_rejections(tmp_path, filename, mime_type, data, reason):
    service = UploadService(upload_dir=str(tmp_path))
    with pytest.raises(UploadRejected) as exc_info:
        service.store(filename, mime_type, data)
    assert reason in str(exc_info.value)
    assert list(tmp_path.iterdir()) == []


def test_too_large_is_rejected(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 16)
    service = UploadService(upload_dir=str(tmp_path))

    with pytest.raises(UploadRejected) as exc_info:
        service.store("notes.txt", "text/plain", b"x" * 17)
    assert "File too large" in str(exc_info.value)
