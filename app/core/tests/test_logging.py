"""Tests for logging configuration."""

from app.core.logging import add_service_name, configure_logging, get_logger, request_id_ctx


def test_get_logger_returns_bound_logger():
    """get_logger should return a structlog logger."""
    configure_logging()
    logger = get_logger("test")

    assert logger is not None
    assert hasattr(logger, "info")
    assert hasattr(logger, "error")


def test_request_id_context_variable():
    """request_id_ctx should store and retrieve values."""
    assert request_id_ctx.get() is None

    token = request_id_ctx.set("test-id-123")
    assert request_id_ctx.get() == "test-id-123"

    request_id_ctx.reset(token)
    assert request_id_ctx.get() is None


def test_add_service_name_tags_event():
    """Events are tagged with service name and environment."""
    event = add_service_name(None, "info", {"event": "x"})

    assert event["service"] == "CallIngest"
    assert event["env"] == "development"


def test_add_service_name_keeps_explicit_values():
    """Explicit service field is not overwritten."""
    event = add_service_name(None, "info", {"event": "x", "service": "worker"})

    assert event["service"] == "worker"
