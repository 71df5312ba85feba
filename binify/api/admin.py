"""Deployment admin routes."""

import secrets
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request, status
from sqlalchemy.exc import SQLAlchemyError

from binify.api.pastes import error_response, get_app_settings
from binify.config import Settings
from binify.core.logging import get_logger
from binify.database import init_db

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["admin"])


def _bearer_matches(authorization: str | None, secret: str) -> bool:
    expected = f"Bearer {secret}".encode("utf-8")
    presented = (authorization or "").encode("utf-8")
    return secrets.compare_digest(presented, expected)


@router.post("/init")
async def initialize_database(
    request: Request,
    settings: Annotated[Settings, Depends(get_app_settings)],
    authorization: Annotated[str | None, Header()] = None,
):
    """Create the pastes table and its indexes.

    Idempotent. Guarded by `Authorization: Bearer <INIT_SECRET>` when
    INIT_SECRET is set.
    """
    if settings.init_secret and not _bearer_matches(authorization, settings.init_secret):
        return error_response(status.HTTP_401_UNAUTHORIZED, "Unauthorized", "unauthorized")

    try:
        await init_db(request.app.state.stores.engine)
    except (SQLAlchemyError, OSError) as e:
        logger.error("Database initialization failed", error=str(e))
        return error_response(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "Failed to initialize database",
            "store_unavailable",
        )

    logger.info("Database initialized")
    return {"message": "Database initialized successfully"}
