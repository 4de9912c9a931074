from __future__ import annotations

import asyncio
import json
import re
from unittest.mock import AsyncMock, MagicMock, patch

import pydantic
import pytest

from learny.jobs.coordinator import BatchCoordinator
from learny.notifications.contracts import NotificationError
from learny.notifications.logging_notifier import LoggingNotifier
from learny.schema.course import Course, CourseMetadata, Difficulty, Pace
from learny.schema.screens import InfoScreen, TitleScreen
from learny.services.course_generation import GENERATION_FAILED_MESSAGE, STATUS_CANCELLED, STATUS_DESIGNING, STATUS_DONE, STATUS_FINALIZING, CourseGenerationService, GenerationStatus
from learny.services.errors import RetryAction
from learny.storage.courses_repo import InMemoryCoursesRepository

_LESSON_NUMBER = re.compile(r"Write lesson (\d+)")

METADATA_REPLY = json.dumps({"overview": "Learn chords.", "whoIsThisFor": "Guitarists.", "estimatedTime": "30 minutes", "learningObjectives": ["Play a C chord"]})


def lesson_reply(number: int) -> str:
  screens = [
    {"type": "title", "payload": {"title": f"Lesson {number}", "hook": "Let's go"}},
    {"type": "info", "payload": {"text": f"Body of lesson {number}."}},
  ]
  return "Here you go:\n```json\n" + json.dumps({"screens": screens}) + "\n```"


class CourseScript:
  def __init__(self) -> None:
    self.metadata_reply = METADATA_REPLY
    self.metadata_error: Exception | None = None
    self.broken_lessons: set[int] = set()
    self.gate: asyncio.Event | None = None

  def __call__(self, prompt: str):
    match = _LESSON_NUMBER.search(prompt)
    if match is None:
      if self.metadata_error is not None:
        raise self.metadata_error
      return self.metadata_reply
    number = int(match.group(1))
    reply = "I could not write this lesson." if number in self.broken_lessons else lesson_reply(number)
    if self.gate is not None:
      return self._after_gate(self.gate, reply)
    return reply

  async def _after_gate(self, gate: asyncio.Event, reply: str) -> str:
    await gate.wait()
    return reply


class RecordingObserver:
  def __init__(self) -> None:
    self.progress: list[tuple[float, str]] = []
    self.ready: list[Course] = []
    self.failed: list[str] = []

  def on_progress(self, fractional_progress: float, status_label: str) -> None:
    self.progress.append((fractional_progress, status_label))

  def workflow_ready(self, course: Course) -> None:
    self.ready.append(course)

  def workflow_failed(self, reason: str) -> None:
    self.failed.append(reason)


class FailingNotifier:
  async def notify_content_ready(self, name: str) -> None:
    raise NotificationError("push service unavailable")


@pytest.fixture
def script() -> CourseScript:
  return CourseScript()


@pytest.fixture
def observer() -> RecordingObserver:
  return RecordingObserver()


@pytest.fixture
def repository() -> InMemoryCoursesRepository:
  return InMemoryCoursesRepository()


@pytest.fixture
def make_service(script, observer, repository, settings, scripted_model):
  def _make(**kwargs) -> CourseGenerationService:
    kwargs.setdefault("notifier", LoggingNotifier())
    kwargs.setdefault("coordinator", BatchCoordinator(max_concurrency=4, unit_timeout=1.0))
    return CourseGenerationService(model=scripted_model(script), observer=observer, repository=repository, settings=settings, **kwargs)

  return _make


@pytest.mark.anyio
async def test_generates_course_through_all_phases(make_service, observer, repository) -> None:
  notifier = LoggingNotifier()
  usage: list[dict] = []
  service = make_service(notifier=notifier, usage_sink=usage.append)

  course = await service.submit_topic("Guitar chords", "beginner", "balanced", ["Open chords", "Barre chords", "Chord changes"])

  assert course is not None
  assert service.status is GenerationStatus.READY
  assert service.course is course
  assert observer.ready == [course]
  assert observer.failed == []
  assert [lesson.number for lesson in course.lessons] == [1, 2, 3]
  assert [lesson.title for lesson in course.lessons] == ["Open chords", "Barre chords", "Chord changes"]
  assert [lesson.is_unlocked for lesson in course.lessons] == [True, False, False]
  assert isinstance(course.lessons[0].screens[0], TitleScreen)
  assert isinstance(course.lessons[0].screens[1], InfoScreen)
  assert course.metadata.who_is_this_for == "Guitarists."
  assert course.difficulty is Difficulty.BEGINNER
  assert course.pace is Pace.BALANCED
  assert course.creation_method == "ai_assistant"

  record = await repository.get_course(course.id)
  assert record is not None
  assert record.lesson_count == 3
  assert record.payload["lessons"][0]["screens"][0] == {"type": "title", "payload": {"title": "Lesson 1", "hook": "Let's go", "subtitle": None}}
  assert notifier.delivered == ["Guitar chords"]
  assert len(usage) == 4
  assert {entry["agent"] for entry in usage} == {"CourseMetadata", "LessonContent"}


@pytest.mark.anyio
async def test_progress_is_monotonic_with_phase_labels(make_service, observer) -> None:
  service = make_service()
  await service.submit_topic("Guitar chords", "beginner", "balanced", ["A", "B", "C", "D"])

  fractions = [fraction for fraction, _ in observer.progress]
  labels = [label for _, label in observer.progress]
  assert fractions == sorted(fractions)
  assert observer.progress[0] == (0.0, STATUS_DESIGNING)
  assert observer.progress[1] == (pytest.approx(0.1), STATUS_DESIGNING)
  lesson_updates = [(fraction, label) for fraction, label in observer.progress if label.startswith("Creating content for lesson")]
  assert len(lesson_updates) == 4
  assert all(0.1 < fraction <= 0.9 + 1e-9 for fraction, _ in lesson_updates)
  assert (pytest.approx(0.9), STATUS_FINALIZING) in observer.progress
  assert labels[-1] == STATUS_DONE
  assert fractions[-1] == 1.0
  assert service.progress == 1.0


@pytest.mark.anyio
async def test_failed_lessons_are_dropped_and_survivors_renumbered(make_service, script) -> None:
  script.broken_lessons = {2}
  service = make_service()

  course = await service.submit_topic("Guitar chords", "intermediate", "deep_dive", ["One", "Two", "Three"])

  assert course is not None
  assert [(lesson.number, lesson.title) for lesson in course.lessons] == [(1, "One"), (2, "Three")]
  assert [lesson.is_unlocked for lesson in course.lessons] == [True, False]


@pytest.mark.anyio
async def test_metadata_failure_falls_back_to_defaults(make_service, script) -> None:
  script.metadata_reply = "not json at all"
  service = make_service()

  course = await service.submit_topic("Guitar chords", "beginner", "quick_review", ["One"])

  assert course is not None
  assert course.metadata == CourseMetadata.defaults_for("Guitar chords")


@pytest.mark.anyio
async def test_unexpected_metadata_error_falls_back_to_defaults(make_service, script, observer) -> None:
  script.metadata_error = RuntimeError("SDK exploded")
  service = make_service()

  course = await service.submit_topic("Guitar chords", "beginner", "balanced", ["One", "Two"])

  assert course is not None
  assert service.status is GenerationStatus.READY
  assert course.metadata == CourseMetadata.defaults_for("Guitar chords")
  assert observer.ready == [course]


@pytest.mark.anyio
async def test_unexpected_batch_error_reports_one_failure(make_service, observer, repository) -> None:
  coordinator = MagicMock()
  coordinator.run_batch = AsyncMock(side_effect=RuntimeError("worker pool crashed"))
  service = make_service(coordinator=coordinator)

  assert await service.submit_topic("Guitar chords", "beginner", "balanced", ["One"]) is None

  assert service.status is GenerationStatus.FAILED
  assert service.error is not None
  assert service.error.retry_action is RetryAction.RESUBMIT_TOPIC
  assert observer.failed == [GENERATION_FAILED_MESSAGE]
  assert observer.ready == []
  assert await repository.list_courses() == []


@pytest.mark.anyio
async def test_raising_observer_does_not_stall_generation(make_service, observer) -> None:
  def broken_progress(fractional_progress: float, status_label: str) -> None:
    raise ValueError("widget gone")

  observer.on_progress = broken_progress
  service = make_service()

  course = await service.submit_topic("Guitar chords", "beginner", "balanced", ["One"])

  assert course is not None
  assert service.status is GenerationStatus.READY
  assert service.progress == 1.0
  assert observer.ready == [course]


@pytest.mark.anyio
async def test_default_model_is_built_from_settings(script, observer, settings, scripted_model) -> None:
  model = scripted_model(script)
  with patch("learny.services.course_generation.get_default_model", return_value=model) as default_model:
    service = CourseGenerationService(observer=observer, settings=settings, coordinator=BatchCoordinator(max_concurrency=2, unit_timeout=1.0))

  course = await service.submit_topic("Guitar chords", "beginner", "balanced", ["One"])

  default_model.assert_called_once_with(settings)
  assert course is not None
  assert len(model.prompts) == 2


@pytest.mark.anyio
async def test_all_lessons_failing_reports_one_failure(make_service, script, observer, repository) -> None:
  script.broken_lessons = {1, 2}
  notifier = LoggingNotifier()
  service = make_service(notifier=notifier)

  assert await service.submit_topic("Guitar chords", "beginner", "balanced", ["One", "Two"]) is None

  assert service.status is GenerationStatus.FAILED
  assert service.error is not None
  assert service.error.retry_action is RetryAction.RESUBMIT_TOPIC
  assert service.error_message == GENERATION_FAILED_MESSAGE
  assert observer.failed == [GENERATION_FAILED_MESSAGE]
  assert observer.ready == []
  assert await repository.list_courses() == []
  assert notifier.delivered == []


@pytest.mark.anyio
async def test_notification_failure_does_not_fail_generation(make_service, observer) -> None:
  service = make_service(notifier=FailingNotifier())

  course = await service.submit_topic("Guitar chords", "beginner", "balanced", ["One"])

  assert course is not None
  assert service.status is GenerationStatus.READY
  assert observer.ready == [course]


@pytest.mark.anyio
async def test_cancel_suppresses_late_events(make_service, script, observer, repository) -> None:
  script.gate = asyncio.Event()
  service = make_service()

  task = service.submit_topic("Guitar chords", "beginner", "balanced", ["One", "Two"])
  await asyncio.sleep(0.02)
  service.cancel()
  events_at_cancel = len(observer.progress)
  script.gate.set()

  with pytest.raises(asyncio.CancelledError):
    await task
  await asyncio.sleep(0.01)

  assert service.status is GenerationStatus.CANCELLED
  assert service.status_text == STATUS_CANCELLED
  assert len(observer.progress) == events_at_cancel
  assert observer.ready == []
  assert observer.failed == []
  assert await repository.list_courses() == []


@pytest.mark.anyio
async def test_new_submission_supersedes_the_running_one(make_service, script, observer) -> None:
  script.gate = asyncio.Event()
  service = make_service()

  first = service.submit_topic("Guitar chords", "beginner", "balanced", ["One"])
  await asyncio.sleep(0.01)
  second = service.submit_topic("Piano scales", "beginner", "balanced", ["Major scales"])
  script.gate.set()

  with pytest.raises(asyncio.CancelledError):
    await first
  course = await second

  assert course is not None
  assert [ready.topic for ready in observer.ready] == ["Piano scales"]
  assert service.task is second


@pytest.mark.anyio
@pytest.mark.parametrize(
  ("topic", "units"),
  [
    ("   ", ["One"]),
    ("Guitar chords", []),
    ("x" * 500, ["One"]),
    ("Guitar chords", [""]),
  ],
)
async def test_invalid_requests_are_rejected_before_starting(make_service, observer, topic, units) -> None:
  service = make_service()

  with pytest.raises(pydantic.ValidationError):
    service.submit_topic(topic, "beginner", "balanced", units)

  assert service.status is GenerationStatus.IDLE
  assert service.task is None
  assert observer.progress == []
