from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from staffchat.core.config import settings
from staffchat.core.db import get_db
from staffchat.models.user import User
from staffchat.schemas.user import UserCreate, UserRead
from staffchat.schemas.auth import LoginRequest, TokenPair
from staffchat.security.security import (
    hash_password,
    verify_password,
    create_access_token,
    create_jwt_token,
)
from staffchat.api.deps import get_current_user
from staffchat.core.logger import get_logger

logger = get_logger(__name__)


router = APIRouter(
    prefix="/auth",
    tags=["auth"],
)


@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def register(
    data: UserCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Register a new staff account.
    """
    logger.info("Register attempt: email=%s", data.email)

    existing = await db.execute(select(User).where(User.email == data.email))
    if existing.scalars().first() is not None:
        logger.warning("Registration failed: email taken: %s", data.email)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already exists",
        )

    user = User(
        email=data.email,
        first_name=data.first_name,
        last_name=data.last_name,
        hashed_password=hash_password(data.password),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    logger.info("User registered id=%s email=%s", user.id, user.email)
    return user


@router.post("/login", response_model=TokenPair)
async def login(
    data: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Authenticate user and return access + refresh tokens.
    """
    logger.info("Login attempt for email=%s", data.email)

    result = await db.execute(select(User).where(User.email == data.email))
    user = result.scalars().first()

    if not user or not verify_password(data.password, user.hashed_password):
        logger.warning("Login failed for email=%s", data.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User inactive",
        )

    refresh_token = create_jwt_token(
        subject=user.id,
        expires_delta=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        token_type="refresh",
    )

    logger.info("User logged in id=%s", user.id)
    return TokenPair(
        access_token=create_access_token(user.id),
        refresh_token=refresh_token,
    )


@router.get("/me", response_model=UserRead)
async def get_me(current_user: User = Depends(get_current_user)):
    return current_user
