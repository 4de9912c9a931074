"""Clarifying question agent."""

from __future__ import annotations

import asyncio
import logging

from learny.ai.agents.base import BaseAgent, require_value
from learny.ai.agents.prompts import render_clarifier_prompt
from learny.ai.errors import ParseFailureError, TransportError
from learny.ai.json_parser import RecordShape
from learny.ai.pipeline.contracts import ClarificationRequest
from learny.schema.course import ClarifyingQuestion

logger = logging.getLogger(__name__)

FALLBACK_OPTIONS = ["The basics", "Practical examples", "Advanced details"]


def fallback_question(query: str) -> ClarifyingQuestion:
  """Generic question used when the clarifier call fails."""
  return ClarifyingQuestion(question=f"What would you like the new lessons about {query} to focus on?", options=list(FALLBACK_OPTIONS))


class ClarifierAgent(BaseAgent[ClarificationRequest, ClarifyingQuestion]):
  """Ask one clarifying question before generating lessons for a free-text request."""

  name = "Clarifier"

  async def run(self, input_data: ClarificationRequest) -> ClarifyingQuestion:
    prompt_text = render_clarifier_prompt(input_data)
    try:
      result = await self._complete_and_parse(prompt_text, RecordShape(ClarifyingQuestion), purpose="clarifying_question")
      return require_value(result)
    except (TransportError, ParseFailureError, asyncio.TimeoutError) as exc:
      logger.warning("Clarifier failed for query=%r, using fallback question: %s", input_data.query, exc)
      return fallback_question(input_data.query)
    except Exception:
      logger.exception("Clarifier raised unexpectedly for query=%r, using fallback question", input_data.query)
      return fallback_question(input_data.query)
