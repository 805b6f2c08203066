import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Union

from staffchat.core.logger import get_logger
from staffchat.client.api import MessagingAPI
from staffchat.client.errors import ApiError, UploadError
from staffchat.schemas.message import AttachmentRead

logger = get_logger(__name__)

ACCEPTED_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
)


@dataclass
class LocalFile:
    """A file picked by the user, not uploaded yet."""
    filename: str
    content: bytes
    content_type: str

    @classmethod
    def from_path(cls, path: Union[str, Path], content_type: Optional[str] = None) -> "LocalFile":
        path = Path(path)
        guessed, _ = mimetypes.guess_type(path.name)
        return cls(
            filename=path.name,
            content=path.read_bytes(),
            content_type=content_type or guessed or "application/octet-stream",
        )


@dataclass
class UploadOutcome:
    filename: str
    attachment: Optional[AttachmentRead] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.attachment is not None


async def upload(api: MessagingAPI, file: LocalFile) -> AttachmentRead:
    """
    Upload one file. Size limits are the service's business; its rejection
    reason is passed through untouched.
    """
    if file.content_type not in ACCEPTED_TYPES:
        raise UploadError(file.filename, "File type not allowed. Allowed types: images, PDF, DOC, TXT")
    try:
        return await api.upload(file.filename, file.content, file.content_type)
    except ApiError as e:
        raise UploadError(file.filename, str(e)) from e


class AttachmentQueue:
    """
    Attachments waiting to go out with the next message.

    Files upload one after another; each file succeeds or fails on its own.
    Sending is blocked while an upload runs or while a failure has not been
    acknowledged, so a message never leaves with part of what the user picked
    silently missing.
    """

    def __init__(self, api: MessagingAPI) -> None:
        self.api = api
        self.pending: List[AttachmentRead] = []
        self.failures: List[UploadOutcome] = []
        self.uploading = False

    async def add_files(self, files: Iterable[LocalFile]) -> List[UploadOutcome]:
        outcomes = []
        self.uploading = True
        try:
            for file in files:
                try:
                    attachment = await upload(self.api, file)
                except UploadError as e:
                    logger.warning("%s", e)
                    outcome = UploadOutcome(file.filename, error=e.reason)
                    self.failures.append(outcome)
                else:
                    outcome = UploadOutcome(file.filename, attachment=attachment)
                    self.pending.append(attachment)
                outcomes.append(outcome)
        finally:
            self.uploading = False
        return outcomes

    def remove(self, index: int) -> AttachmentRead:
        """Drop a queued attachment. Nothing references it yet, so no server call."""
        return self.pending.pop(index)

    def dismiss_failures(self) -> None:
        self.failures = []

    @property
    def can_send(self) -> bool:
        return not self.uploading and not self.failures

    def urls(self) -> List[str]:
        return [a.url for a in self.pending]

    def consume(self, urls: Iterable[str]) -> None:
        """Drop the attachments that went out with a message."""
        sent = set(urls)
        self.pending = [a for a in self.pending if a.url not in sent]

    def clear(self) -> None:
        self.pending = []
        self.failures = []
