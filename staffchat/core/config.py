from pydantic_settings import BaseSettings
from typing import Optional



class Settings(BaseSettings):
    PROJECT_NAME: str = "Staff Chat"
    DEBUG: bool = False

    DATABASE_URL: str = "sqlite+aiosqlite:///./staffchat.db"
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Attachments
    UPLOAD_DIR: str = "uploads"
    UPLOAD_URL_PREFIX: str = "/uploads"
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # Typing indicator
    TYPING_TIMEOUT_SECONDS: float = 5.0
    TYPING_KEEPALIVE_SECONDS: float = 2.0

    # Client polling
    MESSAGES_POLL_SECONDS: float = 3.0
    CONVERSATIONS_POLL_SECONDS: float = 5.0
    TYPING_POLL_SECONDS: float = 2.0
    POLL_JITTER_SECONDS: float = 0.25

    API_BASE_URL: str = "http://localhost:8000"
    HTTP_TIMEOUT_SECONDS: float = 10.0
    API_TOKEN: Optional[str] = None

    class Config:
        env_file = ".env"


settings = Settings()
