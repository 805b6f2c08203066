from pathlib import Path

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, Depends, Query
from fastapi.staticfiles import StaticFiles
from sqlalchemy.ext.asyncio import AsyncSession

from staffchat.core.config import settings
from staffchat.core.logger import configure_logging, get_logger

# Configure logging
configure_logging()
logger = get_logger(__name__)

from staffchat.core.db import Base, engine, get_db
from staffchat.models.user import User
from staffchat.security.security import user_id_from_access_token
from staffchat.services.typing_service import typing_registry
from staffchat.websocket.manager import manager
from staffchat.api.auth_router import router as auth_router
from staffchat.api.user_router import UserRouter
from staffchat.api.conversation_router import ConversationRouter
from staffchat.api.message_router import MessageRouter
from staffchat.api.typing_router import TypingRouter
from staffchat.api.upload_router import UploadRouter


app = FastAPI(
    title=settings.PROJECT_NAME,
    debug=settings.DEBUG,
)

user_router = UserRouter()
conversation_router = ConversationRouter()
message_router = MessageRouter(connections=manager)
typing_router = TypingRouter(registry=typing_registry, connections=manager)
upload_router = UploadRouter()

app.include_router(auth_router, prefix="/api")
app.include_router(user_router.router, prefix="/api")
app.include_router(conversation_router.router, prefix="/api")
app.include_router(message_router.router, prefix="/api")
app.include_router(typing_router.router, prefix="/api")
app.include_router(upload_router.router, prefix="/api")
app.mount(
    settings.UPLOAD_URL_PREFIX,
    StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False),
    name="uploads",
)


@app.on_event("startup")
async def on_startup():
    Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
    logger.info("Creating database tables (startup)")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured (startup)")


@app.get("/health")
async def health_check():
    return {"status": "ok"}


@app.websocket("/ws/messages")
async def websocket_messages(
    websocket: WebSocket,
    token: str = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """
    Push channel for one user.
    - Auth via access token (query param `token`)
    - Server pushes {"type": "message"} and {"type": "typing"} events
    - Client may send {"type": "typing", "peerId": ..., "isTyping": ...}
    """
    user_id = user_id_from_access_token(token)
    if not user_id:
        logger.warning("WebSocket auth failed: invalid token or wrong type")
        await websocket.close(code=4401)
        return

    user = await db.get(User, user_id)
    if not user or not user.is_active:
        logger.warning("WebSocket auth failed: user not found or inactive: %s", user_id)
        await websocket.close(code=4403)
        return

    name = user.full_name or "Someone"
    await manager.connect(user_id, websocket)

    try:
        while True:
            data = await websocket.receive_json()
            if data.get("type") != "typing" or not data.get("peerId"):
                continue

            peer_id = str(data["peerId"])
            is_typing = bool(data.get("isTyping"))
            typing_registry.set_typing(user_id, name, peer_id, is_typing)
            await manager.send_to_user(
                peer_id,
                {"type": "typing", "userId": user_id, "isTyping": is_typing, "userName": name},
            )

    except WebSocketDisconnect:
        manager.disconnect(user_id, websocket)
        logger.info("WebSocket disconnected: user=%s", user_id)
    except Exception:
        manager.disconnect(user_id, websocket)
        logger.exception("WebSocket error for user=%s", user_id)
        await websocket.close()
