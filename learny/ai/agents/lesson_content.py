"""Lesson content agent."""

from __future__ import annotations

import logging

from learny.ai.agents.base import BaseAgent, require_value
from learny.ai.agents.prompts import render_lesson_prompt
from learny.ai.json_parser import CollectionShape
from learny.ai.pipeline.contracts import GenerationUnit
from learny.schema.screens import Lesson, Screen, normalize_screen

logger = logging.getLogger(__name__)

SCREENS_SHAPE: CollectionShape[Screen] = CollectionShape(field="screens", item_type=Screen, normalize=normalize_screen)


class LessonContentAgent(BaseAgent[GenerationUnit, Lesson]):
  """Generate the screens of one lesson."""

  name = "LessonContent"

  async def run(self, input_data: GenerationUnit) -> Lesson:
    prompt_text = render_lesson_prompt(input_data)
    call_index = f"{input_data.index + 1}"
    result = await self._complete_and_parse(prompt_text, SCREENS_SHAPE, purpose="lesson_content", call_index=call_index)
    screens = require_value(result)
    if result.dropped:
      logger.info("Lesson %d kept %d screens, dropped %d invalid", input_data.index + 1, len(screens), result.dropped)
    return Lesson(number=input_data.index + 1, title=input_data.title, screens=screens)
