"""Pydantic schemas related to authentication."""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class RegisterRequest(BaseModel):
    """Payload used to create an API user."""

    email: EmailStr


class RegisterResponse(BaseModel):
    """Returned once at registration; the raw key is never shown again."""

    user_id: UUID = Field(serialization_alias="userId")
    email: EmailStr
    api_key: str = Field(serialization_alias="apiKey")


class LoginRequest(BaseModel):
    """Credentials submitted to obtain an access token."""

    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    api_key: str = Field(alias="apiKey", min_length=8, max_length=128)


class TokenResponse(BaseModel):
    """Standard access token response body."""

    access_token: str = Field(serialization_alias="accessToken")
    token_type: str = Field(default="bearer", serialization_alias="tokenType")
    expires_in: int = Field(
        default=0,
        serialization_alias="expiresIn",
        description="Seconds until the token expires",
    )


__all__ = ["RegisterRequest", "RegisterResponse", "LoginRequest", "TokenResponse"]
