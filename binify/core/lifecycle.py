"""Paste Lifecycle Orchestrator.

Coordinates the durable metadata store and the volatile payload store to
create, consume, rotate, revoke and sweep pastes. The stores share no
transaction, so every multi-store sequence is ordered so that the only
possible inconsistent state is a payload without metadata, which is
always safe to delete:

- Create writes the payload first, then the metadata; a metadata failure
  deletes the payload (compensation).
- Rotate writes the new payload, relocates the metadata row, then deletes
  the old payload; a relocate failure deletes the new payload.
- Consume counts the view with a single conditional write on the metadata
  store, so concurrent readers at the view limit cannot both be served
  and the count never overshoots.

Compensation and post-read state updates are best-effort: failures are
logged and counted, never retried inline.

Security Properties:
- Never sees plaintext or keys; payload fields are opaque strings
- Deletion tokens are compared in constant time and never logged
- Paste ids carry 128 bits of randomness
"""

import re
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from binify.core.expiration import (
    ExpirationPolicy,
    compute_ttl,
    is_expired,
    resolve_expiration,
)
from binify.core.logging import get_logger
from binify.core.metrics import metrics
from binify.core.stores.base import (
    MetadataStore,
    PasteMetadata,
    PayloadRecord,
    PayloadStore,
    StoreError,
    TTL_MISSING,
    TTL_NO_EXPIRY,
)

logger = get_logger(__name__)

# 1MB of decoded ciphertext
MAX_PASTE_BYTES = 1024 * 1024

# URL-safe base64, unpadded (padding tolerated)
_BASE64URL = re.compile(r"^[A-Za-z0-9_-]+={0,2}$")


# ============================================================================
# Errors
# ============================================================================

class PasteError(Exception):
    """Base exception for paste lifecycle operations.

    Each subclass carries a stable `code` and the HTTP status it maps to.
    """

    code = "paste_error"
    status_code = 500

    def __init__(self, message: str, paste_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.paste_id = paste_id


class PasteValidationError(PasteError):
    """Malformed or oversized input, rejected before any store write."""

    code = "validation_failed"
    status_code = 400

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class PasteNotFoundError(PasteError):
    """No metadata row: never existed, revoked, or rotated away."""

    code = "not_found"
    status_code = 404


class PasteGoneError(PasteError):
    """Metadata exists but the paste expired, was burned, or ran out of views."""

    code = "gone"
    status_code = 410


class PasteForbiddenError(PasteError):
    """Deletion token missing or wrong."""

    code = "forbidden"
    status_code = 403


class PayloadMissingError(PasteError):
    """Metadata says active but the payload store has nothing."""

    code = "payload_missing"
    status_code = 404


class StoreUnavailableError(PasteError):
    """A backing store failed to respond."""

    code = "store_unavailable"
    status_code = 503

    def __init__(self, message: str, paste_id: str | None = None, store: str = ""):
        super().__init__(message, paste_id)
        self.store = store


# ============================================================================
# Inputs and results
# ============================================================================

@dataclass
class PasteDraft:
    """Everything a client submits to create a paste."""

    payload: PayloadRecord
    policy: ExpirationPolicy
    has_password: bool = False
    display_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class CreateResult:
    """A freshly created paste.

    The deletion token is only ever returned here.
    """

    paste_id: str
    deletion_token: str
    created_at: datetime
    expires_at: datetime | None = None
    max_views: int | None = None


@dataclass
class ConsumeResult:
    """A served read of a paste."""

    paste_id: str
    payload: PayloadRecord
    created_at: datetime
    view_count: int
    has_password: bool
    will_burn: bool
    expires_at: datetime | None = None
    max_views: int | None = None
    display_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class RotateResult:
    """Outcome of a link rotation."""

    old_id: str
    new_id: str


@dataclass
class SweepResult:
    """Outcome of one sweep batch."""

    scanned: int = 0
    purged: int = 0
    failed: int = 0


# ============================================================================
# Helpers
# ============================================================================

def generate_paste_id() -> str:
    """Generate a URL-safe paste id from 128 random bits."""
    return secrets.token_urlsafe(16)


def generate_deletion_token() -> str:
    """Generate a URL-safe deletion token from 256 random bits."""
    return secrets.token_urlsafe(32)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def estimate_decoded_size(encoded: str) -> int:
    """Estimate decoded bytes of base64 text without decoding it."""
    return (len(encoded.rstrip("=")) * 3) // 4


def validate_payload(
    payload: PayloadRecord,
    has_password: bool,
    max_bytes: int = MAX_PASTE_BYTES,
) -> None:
    """Check payload shape before any store write.

    Only the encoding charset and size are checked; the content stays opaque.

    Raises:
        PasteValidationError: If a field is empty, not base64url, or too large
    """
    for name, value in (
        ("ciphertext", payload.ciphertext),
        ("iv", payload.iv),
        ("authTag", payload.auth_tag),
    ):
        if not value:
            raise PasteValidationError(f"{name} is required")
        if not _BASE64URL.match(value):
            raise PasteValidationError(f"{name} must be URL-safe base64")

    if payload.salt is not None and not _BASE64URL.match(payload.salt):
        raise PasteValidationError("salt must be URL-safe base64")

    if has_password and not payload.salt:
        raise PasteValidationError("salt is required for password-protected pastes")
    if not has_password and payload.salt:
        raise PasteValidationError("salt is only accepted for password-protected pastes")

    if estimate_decoded_size(payload.ciphertext) > max_bytes:
        raise PasteValidationError(
            f"Paste size exceeds {max_bytes // 1024}KB limit",
            status_code=413,
        )


def tokens_match(stored: str | None, presented: str | None) -> bool:
    """Constant-time token comparison; a missing stored token never matches."""
    if not stored or not presented:
        return False
    try:
        return secrets.compare_digest(stored.encode("utf-8"), presented.encode("utf-8"))
    except UnicodeEncodeError:
        return False


# ============================================================================
# Orchestrator
# ============================================================================

class PasteLifecycle:
    """Lifecycle orchestrator over a metadata store and a payload store.

    Holds no mutable state of its own; one instance is shared by all
    concurrent requests.

    Usage:
        lifecycle = PasteLifecycle(metadata_store, payload_store)

        created = await lifecycle.create(PasteDraft(
            payload=PayloadRecord(ciphertext=ct, iv=iv, auth_tag=tag),
            policy=ExpirationPolicy.burn(),
        ))

        read = await lifecycle.consume(created.paste_id)   # will_burn=True
        await lifecycle.consume(created.paste_id)          # PasteGoneError
    """

    def __init__(
        self,
        metadata: MetadataStore,
        payload: PayloadStore,
        id_generator: Callable[[], str] = generate_paste_id,
        token_generator: Callable[[], str] = generate_deletion_token,
        clock: Callable[[], datetime] = utcnow,
        max_paste_bytes: int = MAX_PASTE_BYTES,
    ):
        """Initialize the orchestrator.

        Args:
            metadata: Authoritative metadata store
            payload: TTL-native payload store
            id_generator: Produces new paste ids
            token_generator: Produces deletion tokens
            clock: Returns the current UTC time
            max_paste_bytes: Upper bound on decoded ciphertext size
        """
        self._metadata = metadata
        self._payload = payload
        self._new_id = id_generator
        self._new_token = token_generator
        self._clock = clock
        self._max_paste_bytes = max_paste_bytes

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(self, draft: PasteDraft) -> CreateResult:
        """Store a new paste.

        Raises:
            PasteValidationError: If the payload is malformed or too large
            StoreUnavailableError: If either store write fails; nothing
                remains retrievable under the attempted id
        """
        with metrics.track_operation("create"):
            validate_payload(draft.payload, draft.has_password, self._max_paste_bytes)

            paste_id = self._new_id()
            deletion_token = self._new_token()
            now = self._clock()
            resolved = resolve_expiration(draft.policy, now)
            ttl = compute_ttl(resolved.expires_at, now)

            try:
                await self._payload.put(paste_id, draft.payload, ttl)
            except StoreError as e:
                raise self._unavailable(e, "create", paste_id) from e

            try:
                await self._metadata.create(
                    PasteMetadata(
                        id=paste_id,
                        created_at=now,
                        updated_at=now,
                        expires_at=resolved.expires_at,
                        max_views=resolved.max_views,
                        view_count=0,
                        burned=False,
                        has_password=draft.has_password,
                        deletion_token=deletion_token,
                        display_metadata=dict(draft.display_metadata),
                    )
                )
            except StoreError as e:
                logger.error(
                    "Metadata write failed; removing orphaned payload",
                    paste_id=paste_id,
                    error=str(e),
                )
                await self._compensate_payload(paste_id, "create", "payload_delete")
                raise self._unavailable(e, "create", paste_id) from e

            metrics.record_payload_size(len(draft.payload.ciphertext))
            logger.info(
                "Paste created",
                paste_id=paste_id,
                policy=draft.policy.kind.value,
                ttl_seconds=ttl,
                max_views=resolved.max_views,
            )

            return CreateResult(
                paste_id=paste_id,
                deletion_token=deletion_token,
                created_at=now,
                expires_at=resolved.expires_at,
                max_views=resolved.max_views,
            )

    # ------------------------------------------------------------------
    # Consume
    # ------------------------------------------------------------------

    async def consume(self, paste_id: str) -> ConsumeResult:
        """Read a paste, counting the view and burning it at its limit.

        Raises:
            PasteNotFoundError: If no metadata row exists
            PasteGoneError: If the paste expired, burned, ran out of views,
                or another reader took its last view first
            PayloadMissingError: If the metadata is live but the payload is not
            StoreUnavailableError: If a read from either store fails
        """
        with metrics.track_operation("consume"):
            meta = await self._load(paste_id, "consume")
            now = self._clock()

            if is_expired(meta, now):
                await self._purge(paste_id, "consume")
                raise PasteGoneError("Paste has expired or been deleted", paste_id)

            try:
                payload = await self._payload.get(paste_id)
            except StoreError as e:
                raise self._unavailable(e, "consume", paste_id) from e

            if payload is None:
                logger.warning(
                    "Payload missing for live paste",
                    paste_id=paste_id,
                    expires_at=meta.expires_at,
                )
                raise PayloadMissingError("Paste content not found", paste_id)

            try:
                claim = await self._metadata.record_view(paste_id, now)
            except StoreError as e:
                # The payload was read; serve it and leave counts best-effort
                logger.error(
                    "View count update failed; serving read anyway",
                    paste_id=paste_id,
                    error=str(e),
                )
                metrics.record_state_update_failure("consume", "record_view")
                view_count = meta.view_count + 1
                will_burn = meta.max_views is not None and view_count >= meta.max_views
                if will_burn:
                    await self._burn_payload(paste_id)
                return self._consume_result(meta, payload, view_count, will_burn)

            if claim is None:
                logger.info("Lost final view to a concurrent reader", paste_id=paste_id)
                raise PasteGoneError("Paste has expired or been deleted", paste_id)

            if claim.burned:
                await self._burn_payload(paste_id)
                logger.info("Paste burned", paste_id=paste_id, view_count=claim.view_count)

            return self._consume_result(meta, payload, claim.view_count, claim.burned)

    # ------------------------------------------------------------------
    # Rotate
    # ------------------------------------------------------------------

    async def rotate(self, paste_id: str, deletion_token: str | None) -> RotateResult:
        """Move a paste to a new id, keeping content, counts and remaining TTL.

        Raises:
            PasteNotFoundError: If no metadata row exists
            PasteForbiddenError: If the token does not match
            PasteGoneError: If the paste expired, burned or ran out of views
            PayloadMissingError: If the payload is already gone
            StoreUnavailableError: If a write fails; the old id stays valid
        """
        with metrics.track_operation("rotate"):
            meta = await self._load(paste_id, "rotate")
            self._authorize(meta, deletion_token)

            if is_expired(meta, self._clock()):
                await self._purge(paste_id, "rotate")
                raise PasteGoneError("Paste has expired or been deleted", paste_id)

            try:
                payload = await self._payload.get(paste_id)
                ttl = await self._payload.remaining_ttl(paste_id) if payload else TTL_MISSING
            except StoreError as e:
                raise self._unavailable(e, "rotate", paste_id) from e

            if payload is None or ttl == TTL_MISSING:
                raise PayloadMissingError("Encrypted payload missing or already purged", paste_id)

            ttl_seconds = None if ttl == TTL_NO_EXPIRY else ttl
            new_id = self._new_id()

            try:
                await self._payload.put(new_id, payload, ttl_seconds)
            except StoreError as e:
                raise self._unavailable(e, "rotate", paste_id) from e

            try:
                moved = await self._metadata.relocate(paste_id, new_id, self._clock())
            except StoreError as e:
                logger.error(
                    "Metadata relocation failed; removing new payload",
                    paste_id=paste_id,
                    new_id=new_id,
                    error=str(e),
                )
                await self._compensate_payload(new_id, "rotate", "new_payload_delete")
                raise self._unavailable(e, "rotate", paste_id) from e

            if not moved:
                # Revoked between the read and the relocation
                await self._compensate_payload(new_id, "rotate", "new_payload_delete")
                raise PasteNotFoundError("Paste not found", paste_id)

            # The new id is live; a stale old copy only waits for TTL or the sweep
            await self._compensate_payload(paste_id, "rotate", "old_payload_delete")

            logger.info("Paste rotated", paste_id=paste_id, new_id=new_id, ttl_seconds=ttl_seconds)
            return RotateResult(old_id=paste_id, new_id=new_id)

    # ------------------------------------------------------------------
    # Revoke
    # ------------------------------------------------------------------

    async def revoke(self, paste_id: str, deletion_token: str | None) -> None:
        """Delete a paste from both stores.

        The payload goes first so a failure leaves the metadata in place
        and the caller can retry with the same token.

        Raises:
            PasteNotFoundError: If no metadata row exists (including a
                repeat revoke)
            PasteForbiddenError: If the token does not match or the paste
                has no deletion token
            StoreUnavailableError: If either delete fails
        """
        with metrics.track_operation("revoke"):
            meta = await self._load(paste_id, "revoke")
            self._authorize(meta, deletion_token)

            try:
                await self._payload.delete(paste_id)
                await self._metadata.delete(paste_id)
            except StoreError as e:
                raise self._unavailable(e, "revoke", paste_id) from e

            logger.info("Paste revoked", paste_id=paste_id)

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    async def sweep(self, limit: int = 500) -> SweepResult:
        """Purge one batch of pastes matching the expiry predicate.

        Payloads are deleted before their metadata. If the payload delete
        fails the metadata is kept so the next sweep retries the pair.

        Raises:
            StoreUnavailableError: If the expired rows cannot be listed
        """
        with metrics.track_operation("sweep"):
            try:
                expired_ids = await self._metadata.list_expired_ids(self._clock(), limit)
            except StoreError as e:
                raise self._unavailable(e, "sweep") from e

            result = SweepResult(scanned=len(expired_ids))
            if not expired_ids:
                return result

            try:
                await self._payload.delete_many(expired_ids)
            except StoreError as e:
                logger.warning(
                    "Sweep could not delete payloads; keeping metadata for retry",
                    count=len(expired_ids),
                    error=str(e),
                )
                result.failed = len(expired_ids)
                return result

            for paste_id in expired_ids:
                try:
                    await self._metadata.delete(paste_id)
                    result.purged += 1
                except StoreError as e:
                    result.failed += 1
                    logger.warning("Sweep could not delete metadata", paste_id=paste_id, error=str(e))

            metrics.record_swept(result.purged)
            logger.info(
                "Sweep completed",
                scanned=result.scanned,
                purged=result.purged,
                failed=result.failed,
            )
            return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load(self, paste_id: str, operation: str) -> PasteMetadata:
        try:
            meta = await self._metadata.get(paste_id)
        except StoreError as e:
            raise self._unavailable(e, operation, paste_id) from e
        if meta is None:
            raise PasteNotFoundError("Paste not found", paste_id)
        return meta

    def _authorize(self, meta: PasteMetadata, deletion_token: str | None) -> None:
        if not tokens_match(meta.deletion_token, deletion_token):
            logger.warning("Rejected deletion token", paste_id=meta.id)
            raise PasteForbiddenError("Invalid authorization token", meta.id)

    async def _compensate_payload(self, paste_id: str, operation: str, step: str) -> bool:
        """Best-effort payload delete; failures are logged, never raised."""
        try:
            await self._payload.delete(paste_id)
        except StoreError as e:
            logger.error(
                "Best-effort payload delete failed",
                paste_id=paste_id,
                operation=operation,
                step=step,
                error=str(e),
            )
            metrics.record_compensation(operation, step, succeeded=False)
            return False
        metrics.record_compensation(operation, step, succeeded=True)
        return True

    async def _burn_payload(self, paste_id: str) -> None:
        """Destroy the payload of a paste whose last view was just served."""
        metrics.record_burn()
        try:
            taken = await self._payload.take(paste_id)
        except StoreError as e:
            logger.error(
                "Best-effort payload delete failed",
                paste_id=paste_id,
                operation="consume",
                step="burn_delete",
                error=str(e),
            )
            metrics.record_compensation("consume", "burn_delete", succeeded=False)
            return
        metrics.record_compensation("consume", "burn_delete", succeeded=True)
        if taken is None:
            logger.warning("Burned paste had no payload left", paste_id=paste_id)

    async def _purge(self, paste_id: str, operation: str) -> None:
        """Best-effort removal of an expired paste from both stores."""
        await self._compensate_payload(paste_id, operation, "expired_payload_delete")
        try:
            await self._metadata.delete(paste_id)
        except StoreError as e:
            logger.warning(
                "Could not purge expired metadata; leaving it for the sweep",
                paste_id=paste_id,
                error=str(e),
            )
            metrics.record_state_update_failure(operation, "expired_metadata_delete")

    def _consume_result(
        self,
        meta: PasteMetadata,
        payload: PayloadRecord,
        view_count: int,
        will_burn: bool,
    ) -> ConsumeResult:
        return ConsumeResult(
            paste_id=meta.id,
            payload=payload,
            created_at=meta.created_at,
            expires_at=meta.expires_at,
            view_count=view_count,
            max_views=meta.max_views,
            has_password=meta.has_password,
            display_metadata=meta.display_metadata,
            will_burn=will_burn,
        )

    @staticmethod
    def _unavailable(
        e: StoreError,
        operation: str,
        paste_id: str | None = None,
    ) -> StoreUnavailableError:
        store = e.store or "store"
        return StoreUnavailableError(
            f"{store.capitalize()} store unavailable during {operation}",
            paste_id=paste_id,
            store=e.store,
        )
