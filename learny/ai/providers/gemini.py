"""Gemini provider implementation using the google-genai SDK."""

from __future__ import annotations

import logging
import os
import warnings
from typing import Any, Final

import httpx
from pydantic.warnings import ArbitraryTypeWarning

with warnings.catch_warnings():
  warnings.filterwarnings("ignore", message=r"<built-in function any> is not a Python type.*", category=ArbitraryTypeWarning)
  from google import genai
  from google.genai import errors as genai_errors

from learny.ai.backoff import retry_with_backoff
from learny.ai.errors import TransportError
from learny.ai.providers.base import AIModel, CompletionResponse, Provider

logger = logging.getLogger(__name__)


class GeminiModel(AIModel):
  """Gemini model client."""

  def __init__(self, name: str, api_key: str | None = None, client: Any | None = None) -> None:
    self.name: str = name
    if client is not None:
      self._client = client
      return

    # Configure Gemini API
    api_key = api_key or os.getenv("GEMINI_API_KEY")
    if not api_key:
      raise ValueError("GEMINI_API_KEY environment variable is required")

    self._client = genai.Client(api_key=api_key)

  async def complete(self, prompt: str, *, max_tokens: int, structured_output: bool = False) -> CompletionResponse:
    """Generate a reply with the async client so the event loop is never blocked."""
    config: dict[str, Any] = {"max_output_tokens": max_tokens}
    if structured_output:
      config["response_mime_type"] = "application/json"

    response = await retry_with_backoff(self._generate, model=self.name, contents=prompt, config=config)

    content = response.text or ""
    logger.debug("Gemini response:\n%s", content)
    usage = None

    if response.usage_metadata:
      usage = {"prompt_tokens": response.usage_metadata.prompt_token_count, "completion_tokens": response.usage_metadata.candidates_token_count, "total_tokens": response.usage_metadata.total_token_count}
    return CompletionResponse(content=content, usage=usage)

  async def _generate(self, **request: Any) -> Any:
    """Call the SDK, mapping its failures onto TransportError."""
    try:
      return await self._client.aio.models.generate_content(**request)
    except genai_errors.APIError as exc:
      raise TransportError(f"Gemini returned HTTP {exc.code}: {exc.message}", status_code=exc.code) from exc
    except httpx.HTTPError as exc:
      raise TransportError(f"Gemini request failed: {exc}") from exc


class GeminiProvider(Provider):
  """Gemini provider."""

  _DEFAULT_MODEL: Final[str] = "gemini-2.0-flash"
  _AVAILABLE_MODELS: Final[set[str]] = {"gemini-2.0-flash", "gemini-2.5-flash", "gemini-2.5-pro"}

  def __init__(self, api_key: str | None = None) -> None:
    self.name: str = "gemini"
    self._api_key = api_key

  def get_model(self, model: str | None = None) -> AIModel:
    """Return a Gemini model client."""
    model_name = model or self._DEFAULT_MODEL
    if model_name not in self._AVAILABLE_MODELS:
      raise ValueError(f"Unsupported Gemini model '{model_name}'.")
    return GeminiModel(model_name, api_key=self._api_key)
