"""Agent implementations."""

from learny.ai.agents.base import BaseAgent
from learny.ai.agents.clarifier import ClarifierAgent
from learny.ai.agents.course_metadata import CourseMetadataAgent
from learny.ai.agents.lesson_content import LessonContentAgent
from learny.ai.agents.lesson_ideas import LessonIdeaAgent

__all__ = ["BaseAgent", "ClarifierAgent", "CourseMetadataAgent", "LessonContentAgent", "LessonIdeaAgent"]
