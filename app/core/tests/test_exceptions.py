"""Tests for the exception taxonomy and RFC 7807 rendering."""

import pytest

from app.core.exceptions import (
    BadRequestError,
    MissingFieldError,
    StoreUnavailableError,
    UpsertError,
    ValidationError,
)


class TestExceptionTaxonomy:
    """Status codes and messages per exception type."""

    def test_missing_field_message_names_field(self):
        exc = MissingFieldError("callee_number", row_index=0)

        assert isinstance(exc, ValidationError)
        assert exc.status_code == 400
        assert exc.message == "Missing required field: callee_number"
        assert exc.details == {"missing_field": "callee_number", "row_index": 0}

    def test_bad_request_is_400(self):
        assert BadRequestError("nope").status_code == 400

    def test_upsert_error_carries_cause(self):
        cause = RuntimeError("constraint violated")
        exc = UpsertError(cause)

        assert exc.status_code == 500
        assert exc.cause is cause
        assert exc.details["cause"] == "constraint violated"
        assert exc.details["cause_type"] == "RuntimeError"

    def test_upsert_error_uses_type_name_for_empty_cause(self):
        exc = UpsertError(TimeoutError())

        assert exc.details["cause"] == "TimeoutError"

    def test_store_unavailable_is_distinct_upsert_error(self):
        exc = StoreUnavailableError(ConnectionRefusedError("refused"))

        assert isinstance(exc, UpsertError)
        assert exc.code == "STORE_UNAVAILABLE"
        assert exc.status_code == 500


@pytest.mark.asyncio
async def test_unknown_route_is_problem_detail(client):
    """Routing errors are rendered as problem details."""
    response = await client.get("/does-not-exist")

    assert response.status_code == 404
    assert response.headers["content-type"].startswith("application/problem+json")
    assert response.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_wrong_method_is_405_with_allow_header(client):
    """Wrong method on a known path keeps the Allow header."""
    response = await client.delete("/health")

    assert response.status_code == 405
    assert response.json()["code"] == "METHOD_NOT_ALLOWED"
    assert "GET" in response.headers["allow"]
