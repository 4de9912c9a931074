"""Lenient extraction of typed payloads from generative-service replies."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import msgspec

from learny.ai.errors import ErrorKind, ParseFailure

T = TypeVar("T")

logger = logging.getLogger(__name__)

_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_FENCED_BLOCK_RE = re.compile(r"```[A-Za-z0-9_+-]*[ \t]*\n?(.*?)```", re.DOTALL)
_FENCE_MARKER_RE = re.compile(r"```[A-Za-z0-9_+-]*")
_CLOSERS = {"{": "}", "[": "]"}
_PREVIEW_CHARS = 200


@dataclass(frozen=True)
class RecordShape(Generic[T]):
  """Target shape for a single structured record."""

  type: type[T]
  normalize: Callable[[Any], Any] | None = None


@dataclass(frozen=True)
class CollectionShape(Generic[T]):
  """Target shape for a named collection of records.

  The collection is read from ``{field: [...]}`` first, then from a bare top-level array.
  With ``allow_bare_record`` a lone object that is itself a valid item counts as a
  one-item collection.
  """

  field: str
  item_type: type[T]
  normalize: Callable[[Any], Any] | None = None
  allow_bare_record: bool = False


TargetShape = RecordShape[Any] | CollectionShape[Any]


@dataclass(frozen=True)
class ParseResult(Generic[T]):
  """Outcome of a parse: either a value or a classified failure, never both."""

  value: T | None = None
  failure: ParseFailure | None = None
  dropped: int = 0

  @property
  def ok(self) -> bool:
    return self.failure is None


def strip_code_fences(raw: str) -> str:
  """Return the first fenced block's body, or the text with stray fence markers removed."""
  match = _FENCED_BLOCK_RE.search(raw)
  if match is not None:
    return match.group(1).strip()
  # An unterminated fence still wraps the payload; drop the markers and keep the rest.
  return _FENCE_MARKER_RE.sub("", raw).strip()


def extract_payload_span(text: str) -> str:
  """Return the span from the first opening bracket to the last closer of the same kind.

  This is not a balance scan. Brace characters inside string values that follow the
  real closing brace widen the span, and decoding then relies on the prefix fallback.
  """
  starts = [index for index in (text.find("{"), text.find("[")) if index != -1]
  if not starts:
    return text
  start = min(starts)
  end = text.rfind(_CLOSERS[text[start]])
  if end <= start:
    return text
  return text[start : end + 1]


def _strip_trailing_commas(raw: str) -> str:
  """Remove trailing commas before closing brackets for lenient parsing."""
  # Keep the transform narrow so only obvious comma violations are altered.
  return _TRAILING_COMMA_RE.sub(r"\1", raw)


def _decode_json(candidate: str) -> Any:
  """Decode the candidate strictly, then with trailing commas removed, then by its leading value."""
  last_error: json.JSONDecodeError | None = None

  # Prefer strict parsing so valid JSON is preserved without mutation.
  try:
    return json.loads(candidate)
  except json.JSONDecodeError as exc:
    last_error = exc

  cleaned = _strip_trailing_commas(candidate)
  try:
    return json.loads(cleaned)
  except json.JSONDecodeError as exc:
    last_error = exc

  # Accept the first complete value and ignore whatever follows it.
  try:
    value, _ = json.JSONDecoder().raw_decode(cleaned)
    return value
  except json.JSONDecodeError as exc:
    last_error = exc

  raise last_error


def _fail(kind: ErrorKind, message: str, raw_text: str) -> ParseResult[Any]:
  preview = raw_text[:_PREVIEW_CHARS].replace("\n", " ")
  logger.warning("Payload parse failed (%s): %s | raw=%r", kind.value, message, preview)
  return ParseResult(failure=ParseFailure(kind=kind, message=message, raw_text=raw_text))


def _convert(data: Any, item_type: type[T], normalize: Callable[[Any], Any] | None) -> T:
  if normalize is not None:
    data = normalize(data)
  return msgspec.convert(data, item_type)


def _parse_record(data: Any, shape: RecordShape[T], raw_text: str) -> ParseResult[T]:
  if not isinstance(data, dict):
    return _fail(ErrorKind.SCHEMA_MISMATCH, f"expected an object, got {type(data).__name__}", raw_text)
  try:
    return ParseResult(value=_convert(data, shape.type, shape.normalize))
  except (msgspec.ValidationError, TypeError, ValueError) as exc:
    return _fail(ErrorKind.SCHEMA_MISMATCH, str(exc), raw_text)
  except RecursionError:
    return _fail(ErrorKind.SCHEMA_MISMATCH, "record is nested too deeply to convert", raw_text)


def _collection_items(data: Any, shape: CollectionShape[T]) -> list[Any] | None:
  """Locate the raw item list, trying the named field before a bare array."""
  if isinstance(data, dict):
    items = data.get(shape.field)
    if isinstance(items, list):
      return items
    if shape.allow_bare_record and shape.field not in data:
      return [data]
    return None
  if isinstance(data, list):
    return data
  return None


def _parse_collection(data: Any, shape: CollectionShape[T], raw_text: str) -> ParseResult[list[T]]:
  items = _collection_items(data, shape)
  if items is None:
    return _fail(ErrorKind.SCHEMA_MISMATCH, f"no '{shape.field}' array and no top-level array", raw_text)

  # Validate item by item so one malformed entry does not sink the rest.
  valid: list[T] = []
  dropped = 0
  for position, item in enumerate(items):
    try:
      valid.append(_convert(item, shape.item_type, shape.normalize))
    except (msgspec.ValidationError, TypeError, ValueError, RecursionError) as exc:
      dropped += 1
      logger.info("Dropped invalid %s item at position %d: %s", shape.field, position, exc)

  if not valid:
    return _fail(ErrorKind.ALL_ITEMS_INVALID, f"all {len(items)} '{shape.field}' items failed validation", raw_text)
  return ParseResult(value=valid, dropped=dropped)


def parse_payload(raw_text: str | None, shape: TargetShape) -> ParseResult[Any]:
  """Parse a raw reply into the target shape, returning a classified failure instead of raising."""
  if raw_text is None or not raw_text.strip():
    return _fail(ErrorKind.NO_STRUCTURE_FOUND, "empty reply", raw_text or "")

  candidate = extract_payload_span(strip_code_fences(raw_text))
  try:
    data = _decode_json(candidate)
  except json.JSONDecodeError as exc:
    return _fail(ErrorKind.NO_STRUCTURE_FOUND, f"no decodable JSON payload ({exc.msg})", raw_text)
  except RecursionError:
    # The stdlib decoder recurses once per nesting level.
    return _fail(ErrorKind.NO_STRUCTURE_FOUND, "payload is nested too deeply to decode", raw_text)

  if isinstance(shape, CollectionShape):
    return _parse_collection(data, shape, raw_text)
  return _parse_record(data, shape, raw_text)
