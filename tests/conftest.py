"""Shared fixtures: fake models implementing the completion capability."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import replace
from typing import Any

import pytest

from learny.ai.providers.base import AIModel, CompletionResponse
from learny.config import Settings, get_settings

Responder = Callable[[str], Any]


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


class ScriptedModel(AIModel):
  """Fake model that answers prompts through a responder callable.

  The responder may return a string (the raw reply), raise, or return an awaitable
  that resolves to a string, which lets tests control completion order.
  """

  def __init__(self, responder: Responder, name: str = "fake-model") -> None:
    self.name = name
    self._responder = responder
    self.prompts: list[str] = []

  async def complete(self, prompt: str, *, max_tokens: int, structured_output: bool = False) -> CompletionResponse:
    self.prompts.append(prompt)
    reply = self._responder(prompt)
    if asyncio.iscoroutine(reply) or isinstance(reply, asyncio.Future):
      reply = await reply
    return CompletionResponse(content=reply, usage={"prompt_tokens": 10, "completion_tokens": 20, "total_tokens": 30})


@pytest.fixture
def settings() -> Settings:
  base = get_settings()
  return replace(base, max_concurrent_units=4, unit_timeout_seconds=2.0, backfill_retry_budget=1, follow_up_batch_size=3, more_ideas_batch_size=3)


@pytest.fixture
def scripted_model() -> Callable[..., ScriptedModel]:
  return ScriptedModel
