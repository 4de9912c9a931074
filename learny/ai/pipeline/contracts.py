"""Shared data contracts for the generation pipeline."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from learny.schema.course import Difficulty, Pace


class UnitDescriptor(BaseModel):
  """Caller-supplied description of one lesson to generate."""

  title: str = Field(min_length=1)
  description: str | None = None


class CourseRequest(BaseModel):
  """Inputs for a course generation request."""

  topic: str
  difficulty: Difficulty = Difficulty.BEGINNER
  pace: Pace = Pace.BALANCED
  units: list[UnitDescriptor] = Field(min_length=1)
  max_topic_length: int = Field(default=200, ge=1, exclude=True)

  @field_validator("topic")
  @classmethod
  def _strip_topic(cls, value: str) -> str:
    topic = value.strip()
    if not topic:
      raise ValueError("topic must not be empty")
    return topic

  @model_validator(mode="after")
  def _check_topic_length(self) -> CourseRequest:
    if len(self.topic) > self.max_topic_length:
      raise ValueError(f"topic must be at most {self.max_topic_length} characters")
    return self


class GenerationUnit(BaseModel):
  """Immutable input descriptor for one unit of a batch; identity is the index."""

  model_config = ConfigDict(frozen=True)

  index: int = Field(ge=0)
  title: str
  parameters: dict[str, Any] = Field(default_factory=dict)


class ClarificationRequest(BaseModel):
  """Free-text request for more lesson ideas, awaiting a clarifying question."""

  topic: str
  query: str = Field(min_length=1)
