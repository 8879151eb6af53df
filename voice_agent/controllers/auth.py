"""Authentication controller: API key registration and JWT login."""

from __future__ import annotations

import logging

from fastapi import APIRouter, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from voice_agent.config.settings import settings
from voice_agent.controllers.dependencies import SessionDep
from voice_agent.errors import Unauthenticated, ValidationFailed
from voice_agent.models import User as UserModel
from voice_agent.utils import (
    create_access_token,
    generate_api_key,
    hash_api_key,
    verify_api_key,
)
from voice_agent.views import (
    LoginRequest,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
)

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register(
    payload: RegisterRequest,
    session: SessionDep,
) -> RegisterResponse:
    """Create a user and return its API key; only the hash is stored."""

    email = payload.email.lower()
    existing = await session.execute(select(UserModel).where(UserModel.email == email))
    if existing.scalar_one_or_none() is not None:
        raise ValidationFailed("Email already registered")

    api_key = generate_api_key()
    user = UserModel(email=email, api_key_hash=hash_api_key(api_key))
    session.add(user)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise ValidationFailed("Email already registered") from None

    logger.info("Registered user %s", user.id)
    return RegisterResponse(user_id=user.id, email=user.email, api_key=api_key)


@router.post("/login", response_model=TokenResponse)
async def login(
    payload: LoginRequest,
    session: SessionDep,
) -> TokenResponse:
    """Validate an API key and issue a JWT access token."""

    result = await session.execute(
        select(UserModel).where(UserModel.email == payload.email.lower())
    )
    user = result.scalar_one_or_none()

    if not user or not verify_api_key(payload.api_key, user.api_key_hash):
        raise Unauthenticated("Invalid email or API key")

    access_token = create_access_token(subject=str(user.id), email=user.email)
    return TokenResponse(
        access_token=access_token,
        expires_in=settings.security.access_token_expires_minutes * 60,
    )
