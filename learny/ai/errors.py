"""Error taxonomy for generation calls and helpers to classify worker failures."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
  from learny.jobs.coordinator import GenerationOutcome


class ErrorKind(str, Enum):
  """Classified reason a generation unit failed."""

  TRANSPORT = "transport"
  NO_STRUCTURE_FOUND = "no_structure_found"
  SCHEMA_MISMATCH = "schema_mismatch"
  ALL_ITEMS_INVALID = "all_items_invalid"
  TIMEOUT = "timeout"
  UNKNOWN = "unknown"


class TransportError(RuntimeError):
  """Raised when the remote generative service cannot be reached or answers with an HTTP failure."""

  def __init__(self, message: str, *, status_code: int | None = None) -> None:
    super().__init__(message)
    self.status_code = status_code


@dataclass(frozen=True)
class ParseFailure:
  """Classified reason a raw reply could not be turned into typed data."""

  kind: ErrorKind
  message: str
  raw_text: str


class ParseFailureError(RuntimeError):
  """Raised by agents when a parse failure must abort the current unit."""

  def __init__(self, failure: ParseFailure) -> None:
    super().__init__(f"{failure.kind.value}: {failure.message}")
    self.failure = failure

  @property
  def kind(self) -> ErrorKind:
    return self.failure.kind


class AllUnitsFailedError(RuntimeError):
  """Raised when every unit of a batch failed."""

  def __init__(self, outcomes: Sequence[GenerationOutcome]) -> None:
    kinds = ", ".join(sorted({outcome.error.value for outcome in outcomes if outcome.error is not None}))
    super().__init__(f"All {len(outcomes)} generation units failed ({kinds or 'no outcomes'}).")
    self.outcomes = list(outcomes)


class BatchCancelledError(RuntimeError):
  """Raised to callers awaiting a batch that was cancelled before it finished."""


_TRANSPORT_HINTS: tuple[str, ...] = (
  "rate limit",
  "quota",
  "too many requests",
  "connection",
  "network",
  "api key",
  "unauthorized",
  "forbidden",
  "service unavailable",
  "bad gateway",
  "gateway",
  "resource exhausted",
)


def _match_hint(message: str, hints: Iterable[str]) -> bool:
  """Return True when any hint appears in the message."""
  return any(hint in message for hint in hints)


def classify_error(exc: BaseException) -> ErrorKind:
  """Map an exception raised inside a worker to an ErrorKind."""
  if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
    return ErrorKind.TIMEOUT
  if isinstance(exc, TransportError):
    return ErrorKind.TRANSPORT
  if isinstance(exc, ParseFailureError):
    return exc.kind
  if _match_hint(str(exc).lower(), _TRANSPORT_HINTS):
    return ErrorKind.TRANSPORT
  return ErrorKind.UNKNOWN
