"""Tests for structured logging and lifecycle metrics."""

import json
import logging

import pytest
from prometheus_client import REGISTRY

from binify.core.expiration import ExpirationPolicy
from binify.core.lifecycle import PasteNotFoundError, StoreUnavailableError
from binify.core.logging import StructuredFormatter, get_logger, mask_sensitive
from binify.core.metrics import MetricsRecorder

from conftest import make_draft


def operation_count(operation: str, outcome: str) -> float:
    return REGISTRY.get_sample_value(
        "binify_paste_operations_total",
        {"operation": operation, "outcome": outcome},
    ) or 0.0


class TestMaskSensitive:
    """Tests for log field masking."""

    def test_masks_tokens_and_payload_fields(self):
        masked = mask_sensitive({
            "deletion_token": "abc",
            "ciphertext": "xyz",
            "iv": "nonce",
            "authTag": "tag",
            "paste_id": "p1",
        })

        assert masked == {
            "deletion_token": "[REDACTED]",
            "ciphertext": "[REDACTED]",
            "iv": "[REDACTED]",
            "authTag": "[REDACTED]",
            "paste_id": "p1",
        }

    def test_payload_fields_match_exactly(self):
        """Keys merely containing "iv" are not masked."""
        assert mask_sensitive({"drive": "c"}) == {"drive": "c"}

    def test_nested(self):
        assert mask_sensitive({"request": {"token": "t", "step": "s"}}) == {
            "request": {"token": "[REDACTED]", "step": "s"}
        }


class TestStructuredFormatter:
    """Tests for JSON log output."""

    def test_extra_fields_are_masked(self):
        logger = get_logger("binify.tests")
        record = logger.makeRecord(
            "binify.tests", logging.WARNING, __file__, 1, "Compensation failed", (), None,
            extra={"extra_fields": {"paste_id": "p1", "step": "payload_delete", "token": "secret"}},
        )

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["message"] == "Compensation failed"
        assert entry["paste_id"] == "p1"
        assert entry["step"] == "payload_delete"
        assert entry["token"] == "[REDACTED]"
        assert entry["level"] == "WARNING"
        assert "source" in entry


class TestLifecycleMetrics:
    """Tests for metrics recorded by lifecycle operations."""

    @pytest.mark.asyncio
    async def test_outcomes_use_error_codes(self, lifecycle):
        """Failed operations are counted under their error code."""
        before_success = operation_count("create", "success")
        before_missing = operation_count("consume", "not_found")

        await lifecycle.create(make_draft())
        with pytest.raises(PasteNotFoundError):
            await lifecycle.consume("missing")

        assert operation_count("create", "success") == before_success + 1
        assert operation_count("consume", "not_found") == before_missing + 1

    @pytest.mark.asyncio
    async def test_compensation_counted(self, lifecycle, metadata_store):
        labels = {"operation": "create", "step": "payload_delete", "status": "success"}
        before = REGISTRY.get_sample_value("binify_paste_compensations_total", labels) or 0.0
        metadata_store.fail_on.add("create")

        with pytest.raises(StoreUnavailableError):
            await lifecycle.create(make_draft())

        assert REGISTRY.get_sample_value("binify_paste_compensations_total", labels) == before + 1

    @pytest.mark.asyncio
    async def test_burn_counted(self, lifecycle):
        before = REGISTRY.get_sample_value("binify_pastes_burned_total") or 0.0
        created = await lifecycle.create(make_draft(ExpirationPolicy.burn()))

        await lifecycle.consume(created.paste_id)

        assert REGISTRY.get_sample_value("binify_pastes_burned_total") == before + 1

    def test_track_operation_reraises(self):
        recorder = MetricsRecorder()

        with pytest.raises(ValueError):
            with recorder.track_operation("sweep"):
                raise ValueError("boom")

    @pytest.mark.asyncio
    async def test_burn_counted_when_view_update_fails(self, lifecycle, metadata_store):
        """A burn served through the fallback path is still counted."""
        before = REGISTRY.get_sample_value("binify_pastes_burned_total") or 0.0
        created = await lifecycle.create(make_draft(ExpirationPolicy.burn()))
        metadata_store.fail_on.add("record_view")

        result = await lifecycle.consume(created.paste_id)

        assert result.will_burn is True
        assert REGISTRY.get_sample_value("binify_pastes_burned_total") == before + 1
