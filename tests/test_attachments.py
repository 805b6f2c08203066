import asyncio

import httpx
import pytest

from staffchat.client.api import MessagingAPI
from staffchat.client.attachments import AttachmentQueue, LocalFile, upload
from staffchat.client.errors import UploadError


def queue_for(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
    return AttachmentQueue(MessagingAPI(client=client, token="token"))


def upload_handler(fail_names=()):
    def handler(request):
        body = request.content.decode("latin-1")
        name = next(n for n in ("one.png", "two.pdf", "three.txt", "big.pdf") if n in body)
        if name in fail_names:
            return httpx.Response(400, json={"detail": "File too large. Maximum size is 10MB"})
        return httpx.Response(200, json={"url": f"/uploads/{name}", "filename": name, "type": "x", "size": 3})
    return handler


FILES = [
    LocalFile("one.png", b"\x89PNG", "image/png"),
    LocalFile("two.pdf", b"%PDF", "application/pdf"),
    LocalFile("three.txt", b"abc", "text/plain"),
]


@pytest.mark.asyncio
async def test_one_failure_does_not_block_the_others():
    queue = queue_for(upload_handler(fail_names=("two.pdf",)))

    outcomes = await queue.add_files(FILES)

    assert [o.ok for o in outcomes] == [True, False, True]
    assert outcomes[1].error == "File too large. Maximum size is 10MB"
    assert queue.urls() == ["/uploads/one.png", "/uploads/three.txt"]
    assert [f.filename for f in queue.failures] == ["two.pdf"]
    assert queue.can_send is False

    queue.dismiss_failures()
    assert queue.can_send is True
    assert queue.urls() == ["/uploads/one.png", "/uploads/three.txt"]


@pytest.mark.asyncio
async def test_cannot_send_while_uploading():
    release = asyncio.Event()
    inner = upload_handler()

    async def handler(request):
        await release.wait()
        return inner(request)

    queue = queue_for(handler)
    task = asyncio.create_task(queue.add_files(FILES[:1]))
    await asyncio.sleep(0.01)
    assert queue.uploading is True
    assert queue.can_send is False

    release.set()
    await task
    assert queue.uploading is False
    assert queue.can_send is True


@pytest.mark.asyncio
async def test_remove_and_clear():
    queue = queue_for(upload_handler())
    await queue.add_files(FILES)

    removed = queue.remove(1)
    assert removed.filename == "two.pdf"
    assert queue.urls() == ["/uploads/one.png", "/uploads/three.txt"]

    queue.clear()
    assert queue.urls() == []
    assert queue.can_send is True


@pytest.mark.asyncio
async def test_unsupported_type_is_rejected_before_upload():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
    api = MessagingAPI(client=client, token="token")

    with pytest.raises(UploadError) as exc_info:
        await upload(api, LocalFile("tool.exe", b"MZ", "application/x-msdownload"))

    assert exc_info.value.filename == "tool.exe"
    assert str(exc_info.value).startswith("Failed to upload tool.exe:")
    assert calls == []


def test_local_file_from_path(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_bytes(b"hello")

    file = LocalFile.from_path(path)

    assert file.filename == "notes.txt"
    assert file.content == b"hello"
    assert file.content_type == "text/plain"


@pytest.mark.asyncio
async def test_consume_drops_only_sent_attachments():
    queue = queue_for(upload_handler())
    await queue.add_files(FILES[:2])
    sent = queue.urls()
    await queue.add_files(FILES[2:])

    queue.consume(sent)

    assert queue.urls() == ["/uploads/three.txt"]
