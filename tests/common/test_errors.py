"""Tests for common/errors.py: error taxonomy."""

from __future__ import annotations

import httpx

from common.errors import (
    ClassificationError,
    ErrorType,
    FetchError,
    PipelineError,
    StorageError,
    classify,
)


def test_pipeline_error_defaults_to_network() -> None:
    err = PipelineError("oops")
    assert err.error_type == ErrorType.NETWORK
    assert err.to_dict() == {"type": "NETWORK", "message": "oops", "details": {}}


def test_subclasses_carry_their_type() -> None:
    assert ClassificationError("x").error_type == ErrorType.AI_PROCESSING
    assert StorageError("x").error_type == ErrorType.STORAGE


def test_fetch_error_message_names_cause() -> None:
    err = FetchError("https://example.com", 3, ValueError("bad"))
    assert "3 attempt(s)" in str(err)
    assert "ValueError" in str(err)
    assert err.details["url"] == "https://example.com"


def test_classify_foreign_exceptions() -> None:
    request = httpx.Request("GET", "https://example.com")
    rate_limited = httpx.HTTPStatusError("429", request=request, response=httpx.Response(429, request=request))
    assert classify(rate_limited) == ErrorType.RATE_LIMIT
    assert classify(httpx.ConnectError("x")) == ErrorType.NETWORK
    assert classify(PermissionError("x")) == ErrorType.STORAGE
    assert classify(KeyError("x")) == ErrorType.PARSING
