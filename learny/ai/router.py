"""Routing utilities for provider/model selection."""

from __future__ import annotations

from enum import Enum

from learny.ai.providers.base import AIModel, Provider
from learny.ai.providers.gemini import GeminiProvider
from learny.ai.providers.openrouter import OpenRouterProvider
from learny.config import Settings, get_settings


class ProviderMode(str, Enum):
  """Supported provider modes."""

  GEMINI = "gemini"
  OPENROUTER = "openrouter"


def get_provider_for_mode(mode: str | ProviderMode) -> Provider:
  """Return a provider instance for the given mode."""
  provider_map: dict[str, type[Provider]] = {ProviderMode.GEMINI.value: GeminiProvider, ProviderMode.OPENROUTER.value: OpenRouterProvider}
  key = mode.value if isinstance(mode, ProviderMode) else mode
  try:
    return provider_map[key]()
  except KeyError as exc:
    raise ValueError(f"Unsupported provider mode '{mode}'.") from exc


def get_model_for_mode(mode: str | ProviderMode, model: str | None = None) -> AIModel:
  """Return a model client for the given mode and model name."""
  provider = get_provider_for_mode(mode)
  return provider.get_model(model)


def get_default_model(settings: Settings | None = None) -> AIModel:
  """Return the model configured through LEARNY_LLM_PROVIDER and LEARNY_LLM_MODEL."""
  settings = settings or get_settings()
  return get_model_for_mode(settings.llm_provider, settings.llm_model)
