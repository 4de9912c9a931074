"""Provider implementations."""

from learny.ai.providers.base import AIModel, CompletionResponse, Provider
from learny.ai.providers.gemini import GeminiModel, GeminiProvider
from learny.ai.providers.openrouter import OpenRouterModel, OpenRouterProvider

__all__ = ["AIModel", "CompletionResponse", "Provider", "GeminiModel", "GeminiProvider", "OpenRouterModel", "OpenRouterProvider"]
