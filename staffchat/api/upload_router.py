from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile

from staffchat.api.deps import get_current_user, http_error
from staffchat.models.user import User
from staffchat.schemas.message import AttachmentRead
from staffchat.services.upload_service import UploadRejected, UploadService
from staffchat.core.config import settings
from staffchat.core.logger import get_logger

logger = get_logger(__name__)


class UploadRouter:
    def __init__(self, service: Optional[UploadService] = None) -> None:
        self.router = APIRouter(
            prefix="/upload",
            tags=["upload"],
        )
        self.service = service or UploadService()
        self._register_routes()

    def _register_routes(self) -> None:
        self.router.post("", response_model=AttachmentRead)(self.upload)

    async def upload(
        self,
        file: UploadFile = File(...),
        current_user: User = Depends(get_current_user),
    ):
        """
        Store one attachment and return its URL. Rejections carry a reason
        meant to be shown to the user as is.
        """
        # one byte past the limit is enough to reject an oversized file
        data = await file.read(settings.MAX_UPLOAD_BYTES + 1)
        try:
            stored = self.service.store(file.filename or "", file.content_type, data)
        except UploadRejected as e:
            logger.warning("Upload rejected for user=%s file=%s: %s", current_user.id, file.filename, e)
            raise http_error(e)
        return AttachmentRead(
            url=stored.url,
            filename=stored.filename,
            type=stored.type,
            size=stored.size,
        )
