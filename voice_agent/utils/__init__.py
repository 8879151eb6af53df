"""Utility helpers for the voice agent backend."""

from .security import (
    AuthenticationError,
    create_access_token,
    decode_access_token,
    generate_api_key,
    hash_api_key,
    verify_api_key,
)

__all__ = [
    "generate_api_key",
    "hash_api_key",
    "verify_api_key",
    "create_access_token",
    "decode_access_token",
    "AuthenticationError",
]
