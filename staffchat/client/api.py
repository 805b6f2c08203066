from typing import Any, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from staffchat.core.config import settings
from staffchat.core.logger import get_logger
from staffchat.client.errors import ApiError, AuthorizationError, NetworkError
from staffchat.schemas.conversation import ConversationRead, GroupCreate, StatusMessage
from staffchat.schemas.message import (
    AttachmentRead,
    MarkReadRequest,
    MessageCreate,
    MessageRead,
    TypingStatus,
    TypingUpdate,
    UnreadCount,
)
from staffchat.schemas.user import UserPublic

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _error_detail(response: httpx.Response) -> str:
    """
    Pull the human readable reason out of an error response.
    FastAPI answers {"detail": ...}; other collaborators use {"error": ...}.
    """
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        detail = body.get("detail", body.get("error"))
        if isinstance(detail, str):
            return detail
        if detail is not None:
            return str(detail)
    return response.reason_phrase


class MessagingAPI:
    """
    Thin async client for the messaging REST endpoints.

    Every method either returns parsed models or raises an ApiError subclass;
    callers decide how to present the failure.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ) -> None:
        headers = {}
        token = token or settings.API_TOKEN
        if token:
            headers["Authorization"] = f"Bearer {token}"

        if client is None:
            client = httpx.AsyncClient(
                base_url=base_url or settings.API_BASE_URL,
                timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
            )
        client.headers.update(headers)
        self._client = client

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "MessagingAPI":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("%s %s timed out", method, path)
            raise NetworkError("Request timed out") from e
        except httpx.TransportError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise NetworkError("Network error") from e

        if response.status_code in (401, 403):
            raise AuthorizationError(_error_detail(response), status_code=response.status_code)
        if response.is_error:
            detail = _error_detail(response)
            logger.debug("%s %s -> %s %s", method, path, response.status_code, detail)
            raise ApiError(detail, status_code=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            logger.warning("%s %s -> %s with a non-JSON body", method, path, response.status_code)
            raise ApiError("Invalid response from server", status_code=response.status_code) from e

    @staticmethod
    def _parse(model: Type[ModelT], data: Any) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.warning("Unexpected %s payload: %s", model.__name__, e)
            raise ApiError("Invalid response from server") from e

    def _parse_list(self, model: Type[ModelT], data: Any) -> List[ModelT]:
        if not isinstance(data, list):
            raise ApiError("Invalid response from server")
        return [self._parse(model, item) for item in data]

    async def me(self) -> UserPublic:
        return self._parse(UserPublic, await self._request("GET", "/api/auth/me"))

    async def list_users(self) -> List[UserPublic]:
        data = await self._request("GET", "/api/users")
        return self._parse_list(UserPublic, data)

    async def list_conversations(self) -> List[ConversationRead]:
        data = await self._request("GET", "/api/conversations")
        return self._parse_list(ConversationRead, data)

    async def create_group(self, name: str, member_ids: List[str]) -> ConversationRead:
        body = GroupCreate(name=name, member_ids=member_ids)
        data = await self._request("POST", "/api/conversations/group", json=body.model_dump(by_alias=True))
        return self._parse(ConversationRead, data)

    async def leave_group(self, conversation_id: str) -> str:
        data = await self._request("POST", f"/api/conversations/{conversation_id}/leave")
        return self._parse(StatusMessage, data).message

    async def get_messages(
        self,
        peer_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> List[MessageRead]:
        params = {"conversationId": conversation_id} if conversation_id else {"peerId": peer_id}
        data = await self._request("GET", "/api/messages", params=params)
        return self._parse_list(MessageRead, data)

    async def send_message(
        self,
        content: str,
        attachments: Optional[List[str]] = None,
        peer_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> MessageRead:
        body = MessageCreate(
            peer_id=peer_id,
            conversation_id=conversation_id,
            content=content,
            attachments=attachments or [],
        )
        data = await self._request(
            "POST",
            "/api/messages",
            json=body.model_dump(by_alias=True, exclude_none=True),
        )
        return self._parse(MessageRead, data)

    async def mark_read(self, conversation_id: str) -> None:
        body = MarkReadRequest(conversation_id=conversation_id)
        await self._request("POST", "/api/messages/read", json=body.model_dump(by_alias=True))

    async def unread_count(self) -> int:
        data = await self._request("GET", "/api/messages/unread")
        return self._parse(UnreadCount, data).unread_count

    async def set_typing(self, peer_id: str, is_typing: bool) -> None:
        body = TypingUpdate(peer_id=peer_id, is_typing=is_typing)
        await self._request("POST", "/api/typing", json=body.model_dump(by_alias=True))

    async def get_typing(self, peer_id: str) -> TypingStatus:
        data = await self._request("GET", "/api/typing", params={"peerId": peer_id})
        return self._parse(TypingStatus, data)

    async def upload(self, filename: str, content: bytes, content_type: str) -> AttachmentRead:
        files = {"file": (filename, content, content_type)}
        data = await self._request("POST", "/api/upload", files=files)
        return self._parse(AttachmentRead, data)
