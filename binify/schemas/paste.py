"""Paste request and response schemas.

Wire format is camelCase; timestamps are epoch milliseconds.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from binify.core.expiration import ExpirationPolicy, ExpirationType
from binify.core.lifecycle import ConsumeResult, CreateResult, PasteDraft
from binify.core.stores.base import PayloadRecord

# Column ceiling; the configured MAX_VIEW_LIMIT is enforced by the route
MAX_VIEWS = 2**31 - 1
MAX_TAGS = 10


def to_camel(string: str) -> str:
    """Convert snake_case to camelCase."""
    components = string.split("_")
    return components[0] + "".join(x.title() for x in components[1:])


def to_epoch_ms(value: datetime | None) -> int | None:
    if value is None:
        return None
    return int(value.timestamp() * 1000)


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# --- Requests ---

class CreatePasteRequest(CamelModel):
    """Encrypted paste submitted by a client."""

    # Encrypted payload (opaque URL-safe base64)
    ciphertext: str = Field(..., min_length=1, description="Encrypted content")
    iv: str = Field(..., min_length=1, description="AES-GCM nonce")
    auth_tag: str = Field(..., min_length=1, description="AES-GCM authentication tag")
    salt: str | None = Field(default=None, description="KDF salt (password-protected only)")

    # Expiration settings
    expiration_type: ExpirationType
    max_views: int | None = Field(default=None, ge=1, le=MAX_VIEWS)

    # Display metadata
    has_password: bool = False
    language: str | None = Field(default=None, max_length=50)
    title: str | None = Field(default=None, max_length=200)
    tags: list[str] | None = Field(default=None, max_length=MAX_TAGS)

    @model_validator(mode="after")
    def _check_views_and_tags(self) -> "CreatePasteRequest":
        if self.expiration_type == ExpirationType.VIEWS and self.max_views is None:
            raise ValueError("maxViews is required for view-limited pastes")
        if self.tags and any(len(tag) > 50 for tag in self.tags):
            raise ValueError("tags must be at most 50 characters each")
        return self

    def to_draft(self) -> PasteDraft:
        """Convert to the orchestrator's input.

        maxViews is ignored for every preset except "views".
        """
        max_views = self.max_views if self.expiration_type == ExpirationType.VIEWS else None
        display = {
            key: value
            for key, value in (
                ("language", self.language),
                ("title", self.title),
                ("tags", self.tags),
            )
            if value is not None
        }
        return PasteDraft(
            payload=PayloadRecord(
                ciphertext=self.ciphertext,
                iv=self.iv,
                auth_tag=self.auth_tag,
                salt=self.salt,
            ),
            policy=ExpirationPolicy.from_type(self.expiration_type, max_views),
            has_password=self.has_password,
            display_metadata=display,
        )


class TokenRequest(CamelModel):
    """Body carrying a deletion token (revoke and rotate)."""

    token: str | None = None


# --- Responses ---

class CreatePasteResponse(CamelModel):
    """Created paste; the deletion token is shown only here."""

    paste_id: str
    deletion_token: str
    expires_at: int | None = None
    max_views: int | None = None

    @classmethod
    def from_result(cls, result: CreateResult) -> "CreatePasteResponse":
        return cls(
            paste_id=result.paste_id,
            deletion_token=result.deletion_token,
            expires_at=to_epoch_ms(result.expires_at),
            max_views=result.max_views,
        )


class PasteResponse(CamelModel):
    """Encrypted payload and metadata returned by a read."""

    ciphertext: str
    iv: str
    auth_tag: str
    salt: str | None = None

    created_at: int
    expires_at: int | None = None
    view_count: int
    max_views: int | None = None
    has_password: bool
    language: str | None = None
    title: str | None = None
    tags: list[str] | None = None

    # True when this read consumed the final view
    will_burn: bool

    @classmethod
    def from_result(cls, result: ConsumeResult) -> "PasteResponse":
        display = result.display_metadata or {}
        return cls(
            ciphertext=result.payload.ciphertext,
            iv=result.payload.iv,
            auth_tag=result.payload.auth_tag,
            salt=result.payload.salt,
            created_at=to_epoch_ms(result.created_at),
            expires_at=to_epoch_ms(result.expires_at),
            view_count=result.view_count,
            max_views=result.max_views,
            has_password=result.has_password,
            language=display.get("language"),
            title=display.get("title"),
            tags=display.get("tags"),
            will_burn=result.will_burn,
        )


class RotateResponse(CamelModel):
    new_id: str


class OkResponse(CamelModel):
    ok: bool = True


class ErrorResponse(CamelModel):
    error: str
    code: str
