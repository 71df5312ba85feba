"""Pydantic schemas for Binify."""

from binify.schemas.paste import (
    CreatePasteRequest,
    CreatePasteResponse,
    ErrorResponse,
    OkResponse,
    PasteResponse,
    RotateResponse,
    TokenRequest,
)

__all__ = [
    # Requests
    "CreatePasteRequest",
    "TokenRequest",
    # Responses
    "CreatePasteResponse",
    "PasteResponse",
    "RotateResponse",
    "OkResponse",
    "ErrorResponse",
]
