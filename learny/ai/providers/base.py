"""Base interfaces for remote generation providers and models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class CompletionResponse:
  """Raw text returned by a completion call plus optional token usage."""

  content: str
  usage: dict[str, int] | None = None


class AIModel(ABC):
  """Narrow capability every generation worker depends on: prompt in, raw text out."""

  name: str

  @abstractmethod
  async def complete(self, prompt: str, *, max_tokens: int, structured_output: bool = False) -> CompletionResponse:
    """Return the raw reply for the prompt, raising TransportError when the service cannot answer."""


class Provider(ABC):
  """Abstract base class for AI providers."""

  name: str

  @abstractmethod
  def get_model(self, model: str | None = None) -> AIModel:
    """Return the model client for the provider."""
