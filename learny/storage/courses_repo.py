"""Storage interfaces and records for finished courses."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import msgspec

from learny.schema.course import Course
from learny.schema.screens import encode_screen

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CourseRecord:
  """Serialized course as handed to a store."""

  course_id: str
  topic: str
  title: str
  created_at: str
  lesson_count: int
  payload: dict[str, Any]


def build_course_record(course: Course) -> CourseRecord:
  """Serialize a course, storing screens in their ``{"type", "payload"}`` envelope."""
  payload = msgspec.to_builtins(course)
  # Screens are written in the envelope form the clients read.
  for lesson_payload, lesson in zip(payload["lessons"], course.lessons, strict=True):
    lesson_payload["screens"] = [encode_screen(screen) for screen in lesson.screens]
  return CourseRecord(course_id=course.id, topic=course.topic, title=course.title, created_at=course.created_at.isoformat(), lesson_count=len(course.lessons), payload=payload)


class CoursesRepository(Protocol):
  """Repository contract for course persistence."""

  async def persist_completed_course(self, course: Course) -> CourseRecord:
    """Persist a finished course and return the stored record."""

  async def get_course(self, course_id: str) -> CourseRecord | None:
    """Fetch a stored course by id."""

  async def list_courses(self) -> list[CourseRecord]:
    """Return stored courses, oldest first."""


class InMemoryCoursesRepository:
  """Process-local course store; contents are lost on restart."""

  def __init__(self) -> None:
    self._records: dict[str, CourseRecord] = {}

  async def persist_completed_course(self, course: Course) -> CourseRecord:
    record = build_course_record(course)
    self._records[record.course_id] = record
    logger.info("Stored course %s (%s) with %d lessons", record.course_id, record.topic, record.lesson_count)
    return record

  async def get_course(self, course_id: str) -> CourseRecord | None:
    return self._records.get(course_id)

  async def list_courses(self) -> list[CourseRecord]:
    return list(self._records.values())
