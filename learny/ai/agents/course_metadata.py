"""Course metadata agent."""

from __future__ import annotations

import logging

from learny.ai.agents.base import BaseAgent, require_value
from learny.ai.agents.prompts import render_metadata_prompt
from learny.ai.json_parser import RecordShape
from learny.ai.pipeline.contracts import CourseRequest
from learny.schema.course import CourseMetadata

logger = logging.getLogger(__name__)


class CourseMetadataAgent(BaseAgent[CourseRequest, CourseMetadata]):
  """Describe a course (overview, audience, duration, objectives) from its lesson plan."""

  name = "CourseMetadata"

  async def run(self, input_data: CourseRequest) -> CourseMetadata:
    prompt_text = render_metadata_prompt(input_data)
    result = await self._complete_and_parse(prompt_text, RecordShape(CourseMetadata), purpose="course_metadata")
    metadata = require_value(result)
    logger.info("Course metadata generated for topic=%r objectives=%d", input_data.topic, len(metadata.learning_objectives))
    return metadata
