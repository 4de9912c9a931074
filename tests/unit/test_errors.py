from __future__ import annotations

import asyncio

import pytest

from learny.ai.errors import AllUnitsFailedError, ErrorKind, ParseFailure, ParseFailureError, TransportError, classify_error
from learny.jobs.coordinator import GenerationOutcome


@pytest.mark.parametrize(
  ("exc", "expected"),
  [
    (asyncio.TimeoutError(), ErrorKind.TIMEOUT),
    (TimeoutError("read timed out"), ErrorKind.TIMEOUT),
    (TransportError("HTTP 502", status_code=502), ErrorKind.TRANSPORT),
    (ParseFailureError(ParseFailure(ErrorKind.SCHEMA_MISMATCH, "missing field", "{}")), ErrorKind.SCHEMA_MISMATCH),
    (ParseFailureError(ParseFailure(ErrorKind.NO_STRUCTURE_FOUND, "no payload", "hello")), ErrorKind.NO_STRUCTURE_FOUND),
    (RuntimeError("Rate limit exceeded for this key"), ErrorKind.TRANSPORT),
    (OSError("Network is unreachable"), ErrorKind.TRANSPORT),
    (KeyError("screens"), ErrorKind.UNKNOWN),
  ],
)
def test_classify_error(exc: BaseException, expected: ErrorKind) -> None:
  assert classify_error(exc) is expected


def test_all_units_failed_summarizes_kinds() -> None:
  outcomes = [
    GenerationOutcome(index=0, error=ErrorKind.TIMEOUT, detail="timed out"),
    GenerationOutcome(index=1, error=ErrorKind.TRANSPORT, detail="HTTP 503"),
    GenerationOutcome(index=2, error=ErrorKind.TIMEOUT, detail="timed out"),
  ]

  exc = AllUnitsFailedError(outcomes)

  assert exc.outcomes == outcomes
  assert "All 3 generation units failed" in str(exc)
  assert "timeout, transport" in str(exc)


def test_parse_failure_error_exposes_kind() -> None:
  failure = ParseFailure(ErrorKind.ALL_ITEMS_INVALID, "every item was invalid", "[]")
  exc = ParseFailureError(failure)
  assert exc.kind is ErrorKind.ALL_ITEMS_INVALID
  assert exc.failure.raw_text == "[]"
  assert str(exc).startswith("all_items_invalid")
