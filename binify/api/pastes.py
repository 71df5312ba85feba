"""Paste API routes.

Thin HTTP layer over the lifecycle orchestrator. Domain errors raised by
the orchestrator are rendered as `{error, code}` JSON by the handlers
registered in `register_exception_handlers`.
"""

from typing import Annotated

from fastapi import APIRouter, Body, Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from binify.config import Settings
from binify.core.expiration import ExpirationPolicyError
from binify.core.lifecycle import PasteError, PasteLifecycle, PasteValidationError
from binify.core.logging import get_logger, set_paste_context
from binify.core.rate_limiter import RateLimiter, RateLimitExceeded, client_address
from binify.schemas.paste import (
    CreatePasteRequest,
    CreatePasteResponse,
    ErrorResponse,
    OkResponse,
    PasteResponse,
    RotateResponse,
    TokenRequest,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api/paste", tags=["pastes"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    410: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


# --- Dependencies ---

def get_lifecycle(request: Request) -> PasteLifecycle:
    return request.app.state.lifecycle


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def error_response(status_code: int, error: str, code: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "code": code},
        headers=headers,
    )


# --- Routes ---

@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=CreatePasteResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
    responses={**ERROR_RESPONSES, 413: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
)
async def create_paste(
    data: CreatePasteRequest,
    request: Request,
    lifecycle: Annotated[PasteLifecycle, Depends(get_lifecycle)],
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    settings: Annotated[Settings, Depends(get_app_settings)],
):
    """Store an encrypted paste.

    Rate limited per client address. The deletion token in the response
    is never shown again.
    """
    peer = request.client.host if request.client else None
    await limiter.enforce(client_address(request.headers, peer))

    if data.max_views is not None and data.max_views > settings.max_view_limit:
        raise PasteValidationError(f"maxViews must be at most {settings.max_view_limit}")

    try:
        draft = data.to_draft()
    except ExpirationPolicyError as e:
        raise PasteValidationError(str(e)) from e

    result = await lifecycle.create(draft)
    set_paste_context(result.paste_id)
    return CreatePasteResponse.from_result(result)


@router.get(
    "/{paste_id}",
    response_model=PasteResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
async def read_paste(
    paste_id: str,
    lifecycle: Annotated[PasteLifecycle, Depends(get_lifecycle)],
):
    """Read an encrypted paste, counting the view."""
    set_paste_context(paste_id)
    result = await lifecycle.consume(paste_id)
    return PasteResponse.from_result(result)


@router.delete(
    "/{paste_id}",
    response_model=OkResponse,
    responses=ERROR_RESPONSES,
)
async def revoke_paste(
    paste_id: str,
    lifecycle: Annotated[PasteLifecycle, Depends(get_lifecycle)],
    token: Annotated[str | None, Query()] = None,
    body: Annotated[TokenRequest | None, Body()] = None,
):
    """Delete a paste with its deletion token (query `token` or JSON body)."""
    set_paste_context(paste_id)
    await lifecycle.revoke(paste_id, token or (body.token if body else None))
    return OkResponse()


@router.post(
    "/{paste_id}/rotate",
    response_model=RotateResponse,
    response_model_by_alias=True,
    responses={**ERROR_RESPONSES, 401: {"model": ErrorResponse}},
)
async def rotate_paste(
    paste_id: str,
    lifecycle: Annotated[PasteLifecycle, Depends(get_lifecycle)],
    body: Annotated[TokenRequest | None, Body()] = None,
):
    """Move a paste to a fresh id; the old link stops working."""
    set_paste_context(paste_id)
    if body is None or not body.token:
        return error_response(
            status.HTTP_401_UNAUTHORIZED,
            "Authorization token required",
            "unauthorized",
        )
    result = await lifecycle.rotate(paste_id, body.token)
    return RotateResponse(new_id=result.new_id)


# --- Error handlers ---

async def paste_error_handler(request: Request, exc: PasteError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Paste operation failed", code=exc.code, error=exc.message)
    return error_response(exc.status_code, exc.message, exc.code)


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return error_response(
        status.HTTP_429_TOO_MANY_REQUESTS,
        exc.message,
        "rate_limited",
        headers={"Retry-After": str(exc.retry_after)},
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in exc.errors()
    )
    return error_response(
        status.HTTP_400_BAD_REQUEST,
        f"Invalid request data: {details}" if details else "Invalid request data",
        PasteValidationError.code,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Render domain, rate limit and validation errors as `{error, code}`."""
    app.add_exception_handler(PasteError, paste_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
