"""Lesson idea agent."""

from __future__ import annotations

from learny.ai.agents.base import BaseAgent, require_value
from learny.ai.agents.prompts import render_idea_prompt
from learny.ai.json_parser import CollectionShape
from learny.ai.pipeline.contracts import GenerationUnit
from learny.schema.course import LessonIdea

IDEAS_SHAPE: CollectionShape[LessonIdea] = CollectionShape(field="lessons", item_type=LessonIdea, allow_bare_record=True)


class LessonIdeaAgent(BaseAgent[GenerationUnit, LessonIdea]):
  """Suggest one lesson for a topic; the first valid suggestion in the reply wins."""

  name = "LessonIdea"

  async def run(self, input_data: GenerationUnit) -> LessonIdea:
    prompt_text = render_idea_prompt(input_data)
    result = await self._complete_and_parse(prompt_text, IDEAS_SHAPE, purpose="lesson_idea", call_index=f"{input_data.index + 1}")
    return require_value(result)[0]
