"""Course-level models: metadata, assembled course, and provisioning items."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated

import msgspec

from learny.schema.screens import Lesson


class Difficulty(str, Enum):
  BEGINNER = "beginner"
  INTERMEDIATE = "intermediate"
  ADVANCED = "advanced"


class Pace(str, Enum):
  QUICK_REVIEW = "quick_review"
  BALANCED = "balanced"
  DEEP_DIVE = "deep_dive"


class CourseMetadata(msgspec.Struct, rename="camel"):
  """Descriptive fields produced by the metadata phase."""

  overview: str
  who_is_this_for: str
  estimated_time: str
  learning_objectives: list[str] = msgspec.field(default_factory=list)

  @classmethod
  def defaults_for(cls, topic: str) -> CourseMetadata:
    """Fallback metadata used when the metadata call fails."""
    return cls(overview=f"A fantastic course about {topic}.", who_is_this_for=f"Anyone interested in {topic}.", estimated_time="45-60 minutes")


class Course(msgspec.Struct, kw_only=True):
  """A finished course: ordered, validated lessons plus metadata."""

  id: str = msgspec.field(default_factory=lambda: str(uuid.uuid4()))
  title: str
  topic: str
  difficulty: Difficulty
  pace: Pace
  metadata: CourseMetadata
  lessons: Annotated[list[Lesson], msgspec.Meta(min_length=1)]
  creation_method: str = "ai_assistant"
  created_at: datetime = msgspec.field(default_factory=lambda: datetime.now(timezone.utc))


class LessonIdea(msgspec.Struct):
  """A lesson suggestion as returned by the idea generator."""

  title: Annotated[str, msgspec.Meta(min_length=1)]
  description: str = ""


class ClarifyingQuestion(msgspec.Struct):
  """A follow-up question with tappable answer options."""

  question: Annotated[str, msgspec.Meta(min_length=1)]
  options: Annotated[list[str], msgspec.Meta(min_length=1)]
