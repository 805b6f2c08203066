from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from jose import jwt, JWTError
from passlib.context import CryptContext

from staffchat.core.config import settings
from staffchat.core.logger import get_logger

logger = get_logger(__name__)

pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_jwt_token(
    subject: str,
    expires_delta: timedelta,
    token_type: str,
) -> str:
    """
    Create a signed JWT token with subject, expiry, and type.
    """
    expire = datetime.utcnow() + expires_delta
    payload: Dict[str, Any] = {
        "sub": subject,
        "exp": expire,
        "type": token_type,
    }
    encoded = jwt.encode(
        payload,
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )
    logger.debug("Created %s token for subject=%s expires=%s", token_type, subject, expire.isoformat())
    return encoded


def create_access_token(user_id: str) -> str:
    return create_jwt_token(
        subject=user_id,
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        token_type="access",
    )


def decode_jwt_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode a JWT and return its payload if valid, otherwise None.
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
        return payload
    except JWTError as e:
        logger.warning("JWT decode error: %s", str(e))
        return None


def user_id_from_access_token(token: str) -> Optional[str]:
    """Return the subject of a valid access token, else None."""
    payload = decode_jwt_token(token)
    if not payload or payload.get("type") != "access":
        return None
    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub:
        return None
    return sub
