"""
Tests for structured logging (stock_kernel/logging_config.py).

The formatter and LogContext are exercised directly; the adjustment
events are exercised through the AdjustmentService so the fields an
operator greps for (correlation_id, operation, error_code,
violation_context) are pinned where they are produced.
"""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy import update

from stock_kernel.domain.dtos import AdjustmentRequest
from stock_kernel.domain.movement import MovementType
from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.logging_config import (
    CONTEXT_FIELDS,
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from stock_kernel.models.variant_stock import VariantStockState


@pytest.fixture(autouse=True)
def _isolated_logging():
    """Each test starts unconfigured; the suite configuration is restored after."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _capture(level: int = logging.DEBUG) -> StringIO:
    # Engine start-up may already have attached a stderr handler.
    reset_logging()
    stream = StringIO()
    configure_logging(handler=logging.StreamHandler(stream), level=level)
    return stream


def _records(stream: StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


def _structured_handlers() -> list[logging.Handler]:
    return [
        h
        for h in logging.getLogger("stock_kernel").handlers
        if isinstance(h.formatter, StructuredFormatter)
    ]


class TestStructuredFormatter:

    def test_envelope_and_extra_fields(self):
        stream = _capture()
        get_logger("services.movement_ledger").info(
            "movement_appended", extra={"seq": 7, "new_stock": 36}
        )

        (record,) = _records(stream)
        assert record["level"] == "INFO"
        assert record["logger"] == "stock_kernel.services.movement_ledger"
        assert record["message"] == "movement_appended"
        assert record["seq"] == 7
        assert record["new_stock"] == 36
        assert "ts" in record

    def test_bound_field_wins_over_extra(self):
        stream = _capture()
        with LogContext.bind(variant_id="var-1"):
            get_logger("test").info("lot_consumed", extra={"variant_id": "var-2"})

        assert _records(stream)[0]["variant_id"] == "var-1"

    def test_kernel_error_contributes_code_and_attributes(self):
        stream = _capture()
        try:
            raise InsufficientStockError("var-9", 3, 5)
        except InsufficientStockError:
            get_logger("test").error("stock_error", exc_info=True)

        record = _records(stream)[0]
        assert record["exc_type"] == "InsufficientStockError"
        assert record["exc_code"] == "INSUFFICIENT_STOCK"
        assert record["exc_variant_id"] == "var-9"
        assert record["exc_current_stock"] == 3
        assert record["exc_requested"] == 5
        assert "traceback" in record

    def test_foreign_error_has_no_code(self):
        stream = _capture()
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _records(stream)[0]
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record

    def test_enum_and_uuid_values_serialized(self):
        stream = _capture()
        actor = uuid4()
        get_logger("test").info(
            "with_values", extra={"movement_type": MovementType.OUT, "actor": actor}
        )

        record = _records(stream)[0]
        assert record["movement_type"] == "out"
        assert record["actor"] == str(actor)

    def test_level_filters_debug(self):
        stream = _capture(level=logging.INFO)
        logger = get_logger("test")
        logger.debug("dropped")
        logger.warning("kept")

        assert [r["message"] for r in _records(stream)] == ["kept"]


class TestLogContext:

    def test_set_and_clear(self):
        LogContext.set(correlation_id="c-1", variant_id="var-1")
        assert LogContext.get_all() == {"correlation_id": "c-1", "variant_id": "var-1"}
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_nested_bind_restores_outer_value(self):
        with LogContext.bind(operation="transfer", variant_id="var-a"):
            with LogContext.bind(variant_id="var-b"):
                assert LogContext.get_all()["variant_id"] == "var-b"
            assert LogContext.get_all() == {"operation": "transfer", "variant_id": "var-a"}
        assert LogContext.get_all() == {}

    def test_bind_skips_none(self):
        with LogContext.bind(variant_id="var-1", reference=None, lot_number=None):
            assert LogContext.get_all() == {"variant_id": "var-1"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(reference="order-1001"):
                raise RuntimeError("boom")
        assert "reference" not in LogContext.get_all()

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError, match="trace_id"):
            LogContext.set(trace_id="t-1")

    def test_fields_cover_what_adjustments_bind(self):
        assert {"operation", "reference", "lot_number", "variant_id"} <= set(CONTEXT_FIELDS)


class TestConfigureLogging:

    def test_idempotent_alongside_foreign_handlers(self):
        foreign = logging.NullHandler()
        logger = logging.getLogger("stock_kernel")
        logger.addHandler(foreign)
        try:
            configure_logging(handler=logging.StreamHandler(StringIO()))
            configure_logging(handler=logging.StreamHandler(StringIO()))
            assert len(_structured_handlers()) == 1
            assert foreign in logger.handlers
        finally:
            logger.removeHandler(foreign)

    def test_reset_detaches_only_structured_handlers(self):
        foreign = logging.NullHandler()
        logger = logging.getLogger("stock_kernel")
        logger.addHandler(foreign)
        try:
            configure_logging(handler=logging.StreamHandler(StringIO()))
            reset_logging()
            assert _structured_handlers() == []
            assert foreign in logger.handlers
        finally:
            logger.removeHandler(foreign)

    def test_does_not_propagate(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        assert logging.getLogger("stock_kernel").propagate is False

    def test_get_logger_namespaced(self):
        assert get_logger("services.adjustment").name == "stock_kernel.services.adjustment"


class TestAdjustmentEvents:

    def test_rejection_carries_error_code_and_correlation(self, adjustment_service, create_variant):
        variant_id = create_variant(current_stock=2)
        stream = _capture()

        adjustment_service.adjust(
            AdjustmentRequest(
                variant_id=variant_id,
                movement_type="out",
                quantity=5,
                reference="order-1001",
            )
        )

        records = _records(stream)
        started = next(r for r in records if r["message"] == "stock_adjustment_started")
        rejected = next(r for r in records if r["message"] == "stock_adjustment_rejected")
        assert rejected["error_code"] == "INSUFFICIENT_STOCK"
        assert rejected["operation"] == "adjust"
        assert rejected["reference"] == "order-1001"
        assert rejected["variant_id"] == variant_id
        assert rejected["correlation_id"] == started["correlation_id"]
        assert LogContext.get_all() == {}

    def test_bound_fields_reach_inner_services(self, adjustment_service, create_variant):
        variant_id = create_variant()
        stream = _capture()

        adjustment_service.adjust(
            AdjustmentRequest(
                variant_id=variant_id,
                movement_type="in",
                quantity=3,
                reference="PO-77",
            )
        )

        appended = next(r for r in _records(stream) if r["message"] == "movement_appended")
        assert appended["logger"] == "stock_kernel.services.movement_ledger"
        assert appended["operation"] == "adjust"
        assert appended["reference"] == "PO-77"

    def test_invariant_violation_record(self, adjustment_service, create_variant, session_factory):
        variant_id = create_variant(current_stock=10)
        with session_factory() as sess:
            sess.execute(
                update(VariantStockState)
                .where(VariantStockState.variant_id == variant_id)
                .values(current_stock=99)
            )
            sess.commit()
        stream = _capture()

        adjustment_service.adjust(
            AdjustmentRequest(variant_id=variant_id, movement_type="out", quantity=1)
        )

        (violation,) = [r for r in _records(stream) if r["message"] == "invariant_violation"]
        assert violation["level"] == "ERROR"
        assert violation["violation_context"]["cached_stock"] == 99
        assert violation["violation_context"]["ledger_stock"] == 10
        assert violation["exc_code"] == "INVARIANT_VIOLATION"
        assert violation["exc_variant_id"] == variant_id
        assert "traceback" in violation
