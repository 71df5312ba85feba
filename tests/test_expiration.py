"""Tests for expiration policies and the expiry predicate."""

from datetime import datetime, timedelta, timezone

import pytest

from binify.core.expiration import (
    ExpirationKind,
    ExpirationPolicy,
    ExpirationPolicyError,
    ExpirationType,
    compute_ttl,
    is_expired,
    resolve_expiration,
)
from binify.core.stores import PasteMetadata

NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def paste(**kwargs) -> PasteMetadata:
    return PasteMetadata(id="p", created_at=NOW, updated_at=NOW, **kwargs)


class TestExpirationPolicy:
    """Tests for building policies."""

    @pytest.mark.parametrize("preset,duration", [
        (ExpirationType.FIVE_MINUTES, timedelta(minutes=5)),
        (ExpirationType.ONE_HOUR, timedelta(hours=1)),
        (ExpirationType.ONE_DAY, timedelta(days=1)),
        (ExpirationType.SEVEN_DAYS, timedelta(days=7)),
        (ExpirationType.THIRTY_DAYS, timedelta(days=30)),
    ])
    def test_duration_presets(self, preset, duration):
        policy = ExpirationPolicy.from_type(preset)

        assert policy.kind == ExpirationKind.FIXED_DURATION
        assert policy.duration == duration

    def test_never_preset(self):
        assert ExpirationPolicy.from_type(ExpirationType.NEVER) == ExpirationPolicy.never()

    def test_burn_preset(self):
        assert ExpirationPolicy.from_type(ExpirationType.BURN).kind == ExpirationKind.BURN

    def test_views_preset(self):
        policy = ExpirationPolicy.from_type(ExpirationType.VIEWS, max_views=7)

        assert policy.kind == ExpirationKind.VIEW_LIMITED
        assert policy.max_views == 7

    def test_views_preset_requires_limit(self):
        with pytest.raises(ExpirationPolicyError):
            ExpirationPolicy.from_type(ExpirationType.VIEWS)

    def test_never_rejects_view_limit(self):
        """Only view-limited policies carry a view limit."""
        with pytest.raises(ExpirationPolicyError):
            ExpirationPolicy(ExpirationKind.NEVER, max_views=3)

    @pytest.mark.parametrize("max_views", [0, -1])
    def test_view_limit_must_be_positive(self, max_views):
        with pytest.raises(ExpirationPolicyError):
            ExpirationPolicy.views(max_views)

    def test_duration_must_be_positive(self):
        with pytest.raises(ExpirationPolicyError):
            ExpirationPolicy.fixed(timedelta(0))


class TestResolveExpiration:
    """Tests for resolving policies at creation time."""

    def test_never(self):
        resolved = resolve_expiration(ExpirationPolicy.never(), NOW)
        assert (resolved.expires_at, resolved.max_views) == (None, None)

    def test_fixed(self):
        resolved = resolve_expiration(ExpirationPolicy.fixed(timedelta(hours=1)), NOW)
        assert resolved.expires_at == NOW + timedelta(hours=1)
        assert resolved.max_views is None

    def test_views(self):
        resolved = resolve_expiration(ExpirationPolicy.views(4), NOW)
        assert (resolved.expires_at, resolved.max_views) == (None, 4)

    def test_burn_is_single_view(self):
        resolved = resolve_expiration(ExpirationPolicy.burn(), NOW)
        assert (resolved.expires_at, resolved.max_views) == (None, 1)


class TestComputeTTL:
    """Tests for payload TTL computation."""

    def test_no_expiry(self):
        assert compute_ttl(None, NOW) is None

    def test_whole_seconds(self):
        assert compute_ttl(NOW + timedelta(minutes=5), NOW) == 300

    def test_rounds_up(self):
        """Fractional seconds round up so the payload outlives the metadata."""
        assert compute_ttl(NOW + timedelta(seconds=10, milliseconds=1), NOW) == 11

    def test_past_expiry(self):
        assert compute_ttl(NOW - timedelta(seconds=5), NOW) == 0


class TestIsExpired:
    """Tests for the expiry predicate."""

    def test_live(self):
        assert is_expired(paste(), NOW) is False

    def test_burned(self):
        assert is_expired(paste(burned=True), NOW) is True

    def test_time_expiry(self):
        expires = NOW + timedelta(minutes=5)
        assert is_expired(paste(expires_at=expires), expires) is False
        assert is_expired(paste(expires_at=expires), expires + timedelta(microseconds=1)) is True

    def test_view_limit(self):
        assert is_expired(paste(max_views=3, view_count=2), NOW) is False
        assert is_expired(paste(max_views=3, view_count=3), NOW) is True
