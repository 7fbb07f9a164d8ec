"""Tests for structured logging helpers."""

import logging

import pytest

from src.utils.logging import (
    correlation_context,
    get_correlation_id,
    get_structured_logger,
    log_timing,
    mask_sensitive_data,
    mask_user_id,
    sanitize_message_text,
    timed,
)


@pytest.mark.unit
def test_mask_sensitive_data_redacts_contacts_and_documents():
    text = (
        "Reach me at sara@example.com or +20 100 123 4567, "
        "docs at https://files.example.com/identity/01HX.pdf"
    )
    
    masked = mask_sensitive_data(text)
    
    assert "sara@example.com" not in masked
    assert "[REDACTED_EMAIL]" in masked
    assert "[REDACTED_PHONE]" in masked
    assert "[REDACTED_DOCUMENT_URL]" in masked


@pytest.mark.unit
def test_mask_user_id_keeps_short_ids_and_hashes_long_ones():
    assert mask_user_id("user-1") == "user-1"
    assert mask_user_id(None) is None
    
    masked = mask_user_id("01HXZ5Q2B7K9M3N4P5R6S7T8V9")
    assert masked.startswith("01HX...")
    assert masked == mask_user_id("01HXZ5Q2B7K9M3N4P5R6S7T8V9")


@pytest.mark.unit
def test_sanitize_message_text_truncates():
    assert sanitize_message_text("") is None
    assert sanitize_message_text("a" * 20, max_length=5) == "aaaaa..."


@pytest.mark.unit
def test_correlation_context_restores_previous_id():
    with correlation_context("req-outer"):
        with correlation_context() as inner:
            assert inner.startswith("req_")
            assert get_correlation_id() == inner
        assert get_correlation_id() == "req-outer"


@pytest.mark.unit
def test_bound_fields_and_correlation_id_reach_records(caplog):
    logger = get_structured_logger("tests.logging").bind(appointment_id="ap-1")
    
    with caplog.at_level(logging.INFO, logger="tests.logging"):
        with correlation_context("req-42"):
            logger.info("Appointment assigned", agent_id="agent-0")
    
    record = caplog.records[-1]
    assert record.appointment_id == "ap-1"
    assert record.agent_id == "agent-0"
    assert record.correlation_id == "req-42"


@pytest.mark.unit
def test_log_timing_records_failure_outcome(caplog):
    logger = get_structured_logger("tests.logging")
    
    with caplog.at_level(logging.INFO, logger="tests.logging"):
        with pytest.raises(KeyError):
            with log_timing("lookup", logger=logger, request_id="req-1"):
                raise KeyError("missing")
    
    completed = [r for r in caplog.records if r.getMessage() == "Completed lookup"]
    assert completed[0].outcome == "KeyError"
    assert completed[0].request_id == "req-1"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_timed_wraps_coroutines(caplog):
    @timed("answer", logger=get_structured_logger("tests.logging"))
    async def answer():
        return 42
    
    with caplog.at_level(logging.INFO, logger="tests.logging"):
        assert await answer() == 42
    
    assert any(r.getMessage() == "Completed answer" and r.outcome == "ok" for r in caplog.records)
