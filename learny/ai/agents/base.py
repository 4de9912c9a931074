"""Base class for AI agents."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from learny.ai.errors import ParseFailureError
from learny.ai.json_parser import ParseResult, TargetShape, parse_payload
from learny.ai.providers.base import AIModel
from learny.config import get_settings

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")
T = TypeVar("T")
UsageSink = Callable[[dict[str, Any]], None] | None


class BaseAgent(ABC, Generic[InputT, OutputT]):
  """Base agent: render a prompt, call the model once, parse the reply."""

  name: str

  def __init__(self, *, model: AIModel, max_tokens: int | None = None, use: UsageSink = None) -> None:
    self._model = model
    self._max_tokens = max_tokens or get_settings().max_completion_tokens
    self._usage_sink = use

  @abstractmethod
  async def run(self, input_data: InputT) -> OutputT:
    """Run the agent on input data."""

  async def _complete_and_parse(self, prompt: str, shape: TargetShape, *, purpose: str, call_index: str = "1/1") -> ParseResult[Any]:
    """Send the prompt and parse the reply; transport errors propagate."""
    response = await self._model.complete(prompt, max_tokens=self._max_tokens, structured_output=True)
    self._record_usage(agent=self.name, purpose=purpose, call_index=call_index, usage=response.usage)
    return parse_payload(response.content, shape)

  def _record_usage(self, *, agent: str, purpose: str, call_index: str, usage: dict[str, int] | None) -> None:
    if not usage or not self._usage_sink:
      return
    payload = {"model": getattr(self._model, "name", "unknown"), "agent": agent, "purpose": purpose, "call_index": call_index, **usage}
    self._usage_sink(payload)


def require_value(result: ParseResult[T]) -> T:
  """Return the parsed value or raise the classified failure."""
  if result.failure is not None:
    raise ParseFailureError(result.failure)
  if result.value is None:
    raise ValueError("Parse result carries neither a value nor a failure.")
  return result.value
