"""OpenRouter provider implementation using the openai SDK."""

from __future__ import annotations

import logging
import os
from typing import Any, Final

from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI

from learny.ai.backoff import retry_with_backoff
from learny.ai.errors import TransportError
from learny.ai.providers.base import AIModel, CompletionResponse, Provider

logger = logging.getLogger(__name__)

_JSON_SYSTEM_PROMPT = "You are a helpful assistant that outputs valid JSON only. Do not wrap the JSON in markdown."


class OpenRouterModel(AIModel):
  """OpenRouter chat-completions client."""

  def __init__(self, name: str, api_key: str | None = None, base_url: str | None = None, client: AsyncOpenAI | None = None) -> None:
    self.name: str = name
    if client is not None:
      self._client = client
      return

    # Configure OpenRouter client
    api_key = api_key or os.getenv("OPENROUTER_API_KEY")
    if not api_key:
      raise ValueError("OPENROUTER_API_KEY environment variable is required")

    # OpenRouter uses the OpenAI-compatible API; we add optional attribution headers.
    default_headers = {}
    referer = os.getenv("OPENROUTER_HTTP_REFERER")
    if referer:
      default_headers["HTTP-Referer"] = referer
    title = os.getenv("OPENROUTER_TITLE")
    if title:
      default_headers["X-Title"] = title

    self._client = AsyncOpenAI(api_key=api_key, base_url=base_url or "https://openrouter.ai/api/v1", default_headers=default_headers or None)

  async def complete(self, prompt: str, *, max_tokens: int, structured_output: bool = False) -> CompletionResponse:
    """Send one chat completion and return the raw reply text."""
    messages: list[dict[str, str]] = [{"role": "user", "content": prompt}]
    request: dict[str, Any] = {"model": self.name, "max_tokens": max_tokens}
    if structured_output:
      messages.insert(0, {"role": "system", "content": _JSON_SYSTEM_PROMPT})
      request["response_format"] = {"type": "json_object"}

    response = await retry_with_backoff(self._create, messages=messages, **request)

    content = ""
    if response.choices:
      content = response.choices[0].message.content or ""
    logger.debug("OpenRouter response:\n%s", content)
    usage = None

    if response.usage:
      usage = {"prompt_tokens": response.usage.prompt_tokens, "completion_tokens": response.usage.completion_tokens, "total_tokens": response.usage.total_tokens}

    return CompletionResponse(content=content, usage=usage)

  async def _create(self, **request: Any) -> Any:
    """Call the SDK, mapping its failures onto TransportError."""
    try:
      return await self._client.chat.completions.create(**request)
    except APIStatusError as exc:
      raise TransportError(f"OpenRouter returned HTTP {exc.status_code}: {exc.message}", status_code=exc.status_code) from exc
    except (APIConnectionError, APITimeoutError) as exc:
      raise TransportError(f"OpenRouter request failed: {exc}") from exc


class OpenRouterProvider(Provider):
  """OpenRouter provider."""

  _DEFAULT_MODEL: Final[str] = "meta-llama/llama-4-scout"
  _AVAILABLE_MODELS: Final[set[str]] = {
    "meta-llama/llama-4-scout",
    "meta-llama/llama-4-maverick",
    "meta-llama/llama-3.3-70b-instruct",
    "openai/gpt-4o-mini",
    "google/gemini-2.0-flash-001",
  }

  def __init__(self, api_key: str | None = None, base_url: str | None = None) -> None:
    self.name: str = "openrouter"
    self._api_key = api_key
    self._base_url = base_url

  def get_model(self, model: str | None = None) -> AIModel:
    """Return an OpenRouter model client."""
    model_name = model or self._DEFAULT_MODEL
    if model_name not in self._AVAILABLE_MODELS:
      raise ValueError(f"Unsupported OpenRouter model '{model_name}'.")
    return OpenRouterModel(model_name, api_key=self._api_key, base_url=self._base_url)
