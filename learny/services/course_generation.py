"""Multi-phase course generation: metadata, concurrent lesson content, assembly."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from enum import Enum
from typing import Any

from msgspec import structs

from learny.ai.agents.base import UsageSink
from learny.ai.agents.course_metadata import CourseMetadataAgent
from learny.ai.agents.lesson_content import LessonContentAgent
from learny.ai.errors import AllUnitsFailedError, ParseFailureError, TransportError
from learny.ai.pipeline.contracts import CourseRequest, GenerationUnit, UnitDescriptor
from learny.ai.providers.base import AIModel
from learny.ai.router import get_default_model
from learny.config import Settings, get_settings
from learny.jobs.coordinator import BatchCoordinator
from learny.jobs.progress import BatchProgress
from learny.notifications.contracts import ContentNotifier, NotificationError, WorkflowObserver
from learny.notifications.logging_notifier import LoggingNotifier
from learny.schema.course import Course, CourseMetadata, Difficulty, Pace
from learny.schema.screens import Lesson, lesson_outline
from learny.services.errors import RetryAction, WorkflowError
from learny.storage.courses_repo import CoursesRepository, InMemoryCoursesRepository

logger = logging.getLogger(__name__)

METADATA_SPAN = (0.0, 0.1)
LESSONS_SPAN = (0.1, 0.8)
FINALIZE_START = 0.9

STATUS_DESIGNING = "Designing course structure..."
STATUS_FINALIZING = "Finalizing your course..."
STATUS_DONE = "Done!"
STATUS_CANCELLED = "Generation cancelled."
GENERATION_FAILED_MESSAGE = "Something went wrong during generation. Please try again."


class GenerationStatus(str, Enum):
  IDLE = "idle"
  GENERATING = "generating"
  READY = "ready"
  FAILED = "failed"
  CANCELLED = "cancelled"


def _lesson_label(completed: int, total: int) -> str:
  return f"Creating content for lesson {min(completed + 1, total)}..."


def _has_screens(lesson: Lesson) -> bool:
  return bool(lesson.screens)


class CourseGenerationService:
  """Generate a whole course in the background and report progress to one observer.

  Each ``submit_topic`` call supersedes the previous generation: the older task is
  cancelled and none of its events reach the observer.
  """

  def __init__(
    self,
    *,
    model: AIModel | None = None,
    observer: WorkflowObserver | None = None,
    repository: CoursesRepository | None = None,
    notifier: ContentNotifier | None = None,
    coordinator: BatchCoordinator | None = None,
    settings: Settings | None = None,
    usage_sink: UsageSink = None,
  ) -> None:
    self._settings = settings or get_settings()
    model = model or get_default_model(self._settings)
    self._observer = observer
    self._repository = repository or InMemoryCoursesRepository()
    self._notifier = notifier or LoggingNotifier()
    self._coordinator = coordinator or BatchCoordinator(max_concurrency=self._settings.max_concurrent_units, unit_timeout=self._settings.unit_timeout_seconds)
    self._metadata_agent = CourseMetadataAgent(model=model, max_tokens=self._settings.max_completion_tokens, use=usage_sink)
    self._lesson_agent = LessonContentAgent(model=model, max_tokens=self._settings.max_completion_tokens, use=usage_sink)
    self._generation = 0
    self._task: asyncio.Task[Course | None] | None = None
    self.status = GenerationStatus.IDLE
    self.status_text = ""
    self.progress = 0.0
    self.error: WorkflowError | None = None
    self.course: Course | None = None

  @property
  def error_message(self) -> str | None:
    return self.error.message if self.error else None

  @property
  def task(self) -> asyncio.Task[Course | None] | None:
    """Handle on the running generation, independent of whoever submitted it."""
    return self._task

  def submit_topic(self, topic: str, difficulty: Difficulty | str, pace: Pace | str, unit_descriptors: Sequence[UnitDescriptor | str]) -> asyncio.Task[Course | None]:
    """Validate the request and start generating; returns the task handle."""
    descriptors = [UnitDescriptor(title=item) if isinstance(item, str) else item for item in unit_descriptors]
    request = CourseRequest(topic=topic, difficulty=difficulty, pace=pace, units=descriptors, max_topic_length=self._settings.max_topic_length)

    self._cancel_running()
    self._generation += 1
    generation_id = self._generation
    self.status = GenerationStatus.GENERATING
    self.progress = 0.0
    self.status_text = ""
    self.error = None
    self.course = None
    logger.info("Course generation %d started: topic=%r lessons=%d", generation_id, request.topic, len(request.units))
    self._task = asyncio.get_running_loop().create_task(self._generate(request, generation_id), name=f"course-generation-{generation_id}")
    return self._task

  def cancel(self) -> None:
    """Cancel the running generation; nothing further is reported for it."""
    if self.status != GenerationStatus.GENERATING:
      return
    self._cancel_running()
    self._generation += 1
    self.status = GenerationStatus.CANCELLED
    self.status_text = STATUS_CANCELLED
    logger.info("Course generation cancelled")

  def _cancel_running(self) -> None:
    if self._task is not None and not self._task.done():
      self._task.cancel()

  def _is_current(self, generation_id: int) -> bool:
    return generation_id == self._generation

  def _report(self, generation_id: int, fraction: float, label: str) -> None:
    if not self._is_current(generation_id):
      return
    self.progress = max(self.progress, fraction)
    self.status_text = label
    self._emit("on_progress", self.progress, label)

  def _fail(self, generation_id: int, detail: str) -> None:
    if not self._is_current(generation_id):
      return
    logger.warning("Course generation %d failed: %s", generation_id, detail)
    self.status = GenerationStatus.FAILED
    self.error = WorkflowError(message=GENERATION_FAILED_MESSAGE, retry_action=RetryAction.RESUBMIT_TOPIC)
    self._emit("workflow_failed", GENERATION_FAILED_MESSAGE)

  def _emit(self, event: str, *args: Any) -> None:
    """Deliver one observer event; a failing observer never stops generation."""
    if self._observer is None:
      return
    try:
      getattr(self._observer, event)(*args)
    except Exception:
      logger.exception("Workflow observer failed handling %s", event)

  async def _generate(self, request: CourseRequest, generation_id: int) -> Course | None:
    try:
      return await self._run_phases(request, generation_id)
    except Exception as exc:
      logger.exception("Course generation %d raised unexpectedly", generation_id)
      if self.status is GenerationStatus.GENERATING:
        self._fail(generation_id, f"unexpected error: {exc}")
      return None

  async def _run_phases(self, request: CourseRequest, generation_id: int) -> Course | None:
    self._report(generation_id, METADATA_SPAN[0], STATUS_DESIGNING)
    metadata = await self._generate_metadata(request)
    self._report(generation_id, METADATA_SPAN[0] + METADATA_SPAN[1], STATUS_DESIGNING)

    units = [
      GenerationUnit(index=index, title=descriptor.title, parameters={"topic": request.topic, "difficulty": request.difficulty.value, "pace": request.pace.value, "description": descriptor.description})
      for index, descriptor in enumerate(request.units)
    ]

    def forward(update: BatchProgress) -> None:
      self._report(generation_id, update.fractional_progress, update.last_status_label)

    try:
      lessons = await self._coordinator.run_batch(units, self._lesson_agent.run, forward, base_offset=LESSONS_SPAN[0], span_width=LESSONS_SPAN[1], status_label=_lesson_label, accept=_has_screens, name=f"course-{generation_id}")
    except AllUnitsFailedError as exc:
      self._fail(generation_id, str(exc))
      return None

    self._report(generation_id, FINALIZE_START, STATUS_FINALIZING)
    course = self._assemble(request, metadata, lessons)
    for lesson in course.lessons:
      logger.debug("Lesson %d %r: %s", lesson.number, lesson.title, "; ".join(lesson_outline(lesson)))

    try:
      await self._repository.persist_completed_course(course)
    except Exception as exc:
      logger.exception("Persisting course %s failed", course.id)
      self._fail(generation_id, f"persistence failed: {exc}")
      return None

    if not self._is_current(generation_id):
      return None
    self.course = course
    self.status = GenerationStatus.READY
    self._report(generation_id, 1.0, STATUS_DONE)
    logger.info("Course generation %d finished: %d/%d lessons", generation_id, len(course.lessons), len(units))
    self._emit("workflow_ready", course)

    try:
      await self._notifier.notify_content_ready(request.topic)
    except NotificationError as exc:
      logger.warning("Content-ready notification for %r failed: %s", request.topic, exc)
    return course

  async def _generate_metadata(self, request: CourseRequest) -> CourseMetadata:
    """Describe the course; any failure falls back to default copy."""
    try:
      return await asyncio.wait_for(self._metadata_agent.run(request), timeout=self._settings.unit_timeout_seconds)
    except (TransportError, ParseFailureError, asyncio.TimeoutError) as exc:
      logger.warning("Course metadata failed for %r, using defaults: %s", request.topic, exc)
    except Exception:
      logger.exception("Course metadata raised unexpectedly for %r, using defaults", request.topic)
    return CourseMetadata.defaults_for(request.topic)

  def _assemble(self, request: CourseRequest, metadata: CourseMetadata, lessons: list[Lesson]) -> Course:
    """Number surviving lessons 1..N and unlock only the first."""
    numbered = [structs.replace(lesson, number=position + 1, is_unlocked=position == 0) for position, lesson in enumerate(lessons)]
    return Course(title=request.topic, topic=request.topic, difficulty=request.difficulty, pace=request.pace, metadata=metadata, lessons=numbered)
