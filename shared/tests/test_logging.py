"""
Tests for structured logging helpers.
"""

from shared.logging import (
    ServiceContext, add_correlation_context, add_service_context, clear_context, set_request_id,
    set_user_context
)


def test_service_context_from_logger_name():
    event = add_service_context(None, "info", {"logger": "store.inventory"})
    assert event["service"] == "store"


def test_correlation_context_round_trip():
    clear_context()
    request_id = set_request_id()
    set_user_context("user1")

    event = add_correlation_context(None, "info", {})

    assert event["request_id"] == request_id
    assert event["user_id"] == "user1"

    clear_context()
    assert add_correlation_context(None, "info", {}) == {}


def test_explicit_request_id_is_kept():
    assert set_request_id("abc-123") == "abc-123"
    clear_context()


def test_service_context_falls_back_to_configured_name():
    processor = ServiceContext("store")
    assert processor(None, "info", {"logger": "uvicorn"})["service"] == "store"
    assert processor(None, "info", {"logger": "store.cart"})["service"] == "store"
