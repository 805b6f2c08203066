from staffchat.client.api import MessagingAPI
from staffchat.client.attachments import AttachmentQueue, LocalFile, UploadOutcome, upload
from staffchat.client.directory import (
    ConversationDirectory,
    build_directory,
    filter_directory,
    is_placeholder_id,
    total_unread,
)
from staffchat.client.errors import ApiError, AuthorizationError, NetworkError, SendError, UploadError
from staffchat.client.session import ChatSession
from staffchat.client.stream import ChatTarget, Delivery, MessageStream, StreamState, group_by_day
from staffchat.client.typing_channel import TypingChannel, TypingState

__all__ = [
    "ApiError",
    "AttachmentQueue",
    "AuthorizationError",
    "ChatSession",
    "ChatTarget",
    "ConversationDirectory",
    "Delivery",
    "LocalFile",
    "MessageStream",
    "MessagingAPI",
    "NetworkError",
    "SendError",
    "StreamState",
    "TypingChannel",
    "TypingState",
    "UploadError",
    "UploadOutcome",
    "build_directory",
    "filter_directory",
    "group_by_day",
    "is_placeholder_id",
    "total_unread",
    "upload",
]
