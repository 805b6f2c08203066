import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from staffchat.core.config import settings
from staffchat.core.logger import get_logger

logger = get_logger(__name__)

ALLOWED_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
)

# Lower-case hex prefixes of the leading bytes for each declared type
MAGIC_PREFIXES = {
    "image/jpeg": ("ffd8ff",),
    "image/png": ("89504e47",),
    "image/gif": ("47494638",),
    "image/webp": ("52494646",),  # RIFF
    "application/pdf": ("25504446",),
    "application/msword": ("d0cf11e0",),
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ("504b0304",),
}


class UploadRejected(ValueError):
    """Raised with a user-facing reason when a file is not accepted."""


@dataclass
class StoredFile:
    url: str
    filename: str
    type: str
    size: int


def content_matches_type(data: bytes, mime_type: str) -> bool:
    """
    Check the file's leading bytes against its declared type.
    Plain text has no reliable signature and always passes.
    """
    if mime_type == "text/plain":
        return True
    prefixes = MAGIC_PREFIXES.get(mime_type)
    if not prefixes:
        return False
    head = data[:4].hex()
    return any(head.startswith(p) for p in prefixes)


class UploadService:
    def __init__(self, upload_dir: Optional[str] = None, url_prefix: Optional[str] = None) -> None:
        self.upload_dir = Path(upload_dir or settings.UPLOAD_DIR)
        self.url_prefix = (url_prefix or settings.UPLOAD_URL_PREFIX).rstrip("/")

    def validate(self, filename: str, mime_type: Optional[str], data: bytes) -> None:
        if not filename:
            raise UploadRejected("No file provided")
        if mime_type not in ALLOWED_TYPES:
            raise UploadRejected("File type not allowed. Allowed types: images, PDF, DOC, TXT")
        if len(data) > settings.MAX_UPLOAD_BYTES:
            limit_mb = settings.MAX_UPLOAD_BYTES // (1024 * 1024)
            raise UploadRejected(f"File too large. Maximum size is {limit_mb}MB")
        if not content_matches_type(data, mime_type):
            raise UploadRejected("File content does not match declared type")

    def store(self, filename: str, mime_type: Optional[str], data: bytes) -> StoredFile:
        """
        Validate and save one file, returning where it can be fetched from.
        """
        self.validate(filename, mime_type, data)

        self.upload_dir.mkdir(parents=True, exist_ok=True)
        ext = Path(filename).suffix.lower()
        stored_name = f"{uuid.uuid4().hex}{ext}"
        path = self.upload_dir / stored_name
        path.write_bytes(data)

        logger.info("Stored upload %s as %s (%s bytes, %s)", filename, stored_name, len(data), mime_type)
        return StoredFile(
            url=f"{self.url_prefix}/{stored_name}",
            filename=filename,
            type=mime_type,
            size=len(data),
        )
