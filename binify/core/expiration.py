"""Expiration policies and the shared expiry predicate.

A paste expires in one of four ways, modelled as a tagged variant:

- NEVER: no time or view limit
- FIXED_DURATION: absolute expiry at creation time + duration
- VIEW_LIMITED: destroyed after N reads
- BURN: destroyed after the first read (VIEW_LIMITED with N = 1)

Time-based expiry is enforced twice: by the metadata predicate and by the
payload store's native TTL. View-based expiry has no native TTL and relies
on the predicate plus Consume-time cleanup and the sweep.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from binify.core.stores.base import PasteMetadata


class ExpirationKind(str, Enum):
    """Discriminator for expiration policies."""

    NEVER = "never"
    FIXED_DURATION = "fixed-duration"
    VIEW_LIMITED = "view-limited"
    BURN = "burn"


class ExpirationType(str, Enum):
    """Expiration presets offered to clients."""

    NEVER = "never"
    FIVE_MINUTES = "5min"
    ONE_HOUR = "1hour"
    ONE_DAY = "1day"
    SEVEN_DAYS = "7days"
    THIRTY_DAYS = "30days"
    VIEWS = "views"
    BURN = "burn"


PRESET_DURATIONS: dict[ExpirationType, timedelta] = {
    ExpirationType.FIVE_MINUTES: timedelta(minutes=5),
    ExpirationType.ONE_HOUR: timedelta(hours=1),
    ExpirationType.ONE_DAY: timedelta(days=1),
    ExpirationType.SEVEN_DAYS: timedelta(days=7),
    ExpirationType.THIRTY_DAYS: timedelta(days=30),
}


class ExpirationPolicyError(ValueError):
    """Invalid expiration policy."""

    pass


@dataclass(frozen=True)
class ExpirationPolicy:
    """A resolved-on-demand expiration policy."""

    kind: ExpirationKind
    duration: timedelta | None = None
    max_views: int | None = None

    def __post_init__(self):
        if self.kind == ExpirationKind.FIXED_DURATION:
            if self.duration is None or self.duration <= timedelta(0):
                raise ExpirationPolicyError("fixed-duration policy requires a positive duration")
        elif self.duration is not None:
            raise ExpirationPolicyError(f"{self.kind.value} policy does not take a duration")

        if self.kind == ExpirationKind.VIEW_LIMITED:
            if self.max_views is None or self.max_views < 1:
                raise ExpirationPolicyError("view-limited policy requires max_views >= 1")
        elif self.max_views is not None:
            raise ExpirationPolicyError(f"{self.kind.value} policy does not take max_views")

    @classmethod
    def never(cls) -> "ExpirationPolicy":
        return cls(ExpirationKind.NEVER)

    @classmethod
    def fixed(cls, duration: timedelta) -> "ExpirationPolicy":
        return cls(ExpirationKind.FIXED_DURATION, duration=duration)

    @classmethod
    def views(cls, max_views: int) -> "ExpirationPolicy":
        return cls(ExpirationKind.VIEW_LIMITED, max_views=max_views)

    @classmethod
    def burn(cls) -> "ExpirationPolicy":
        return cls(ExpirationKind.BURN)

    @classmethod
    def from_type(
        cls,
        expiration_type: ExpirationType,
        max_views: int | None = None,
    ) -> "ExpirationPolicy":
        """Build a policy from a client preset.

        Args:
            expiration_type: Preset selected by the client
            max_views: View limit, used only by the VIEWS preset

        Raises:
            ExpirationPolicyError: If VIEWS is selected without a limit
        """
        if expiration_type == ExpirationType.NEVER:
            return cls.never()
        if expiration_type == ExpirationType.BURN:
            return cls.burn()
        if expiration_type == ExpirationType.VIEWS:
            if max_views is None:
                raise ExpirationPolicyError("maxViews is required for view-limited pastes")
            return cls.views(max_views)
        return cls.fixed(PRESET_DURATIONS[expiration_type])


@dataclass(frozen=True)
class ResolvedExpiration:
    """Concrete expiry rules stored on a paste."""

    expires_at: datetime | None
    max_views: int | None


def resolve_expiration(policy: ExpirationPolicy, now: datetime) -> ResolvedExpiration:
    """Resolve a policy to (expires_at, max_views) at creation time."""
    if policy.kind == ExpirationKind.FIXED_DURATION:
        return ResolvedExpiration(expires_at=now + policy.duration, max_views=None)
    if policy.kind == ExpirationKind.VIEW_LIMITED:
        return ResolvedExpiration(expires_at=None, max_views=policy.max_views)
    if policy.kind == ExpirationKind.BURN:
        return ResolvedExpiration(expires_at=None, max_views=1)
    return ResolvedExpiration(expires_at=None, max_views=None)


def compute_ttl(expires_at: datetime | None, now: datetime) -> int | None:
    """Payload TTL in whole seconds for an absolute expiry.

    Rounds up so the payload never evicts before the metadata expires;
    a payload outliving its metadata by under a second is harmless because
    the metadata predicate already reports it gone.

    Returns:
        max(0, ceil(expires_at - now)), or None when there is no time expiry
    """
    if expires_at is None:
        return None
    remaining = (expires_at - now).total_seconds()
    if remaining <= 0:
        return 0
    return math.ceil(remaining)


def is_expired(paste: PasteMetadata, now: datetime) -> bool:
    """Check whether a paste is no longer readable."""
    if paste.burned:
        return True

    if paste.expires_at is not None and now > paste.expires_at:
        return True

    if paste.max_views is not None and paste.view_count >= paste.max_views:
        return True

    return False
