"""Command-line entry point for generating a course from a topic."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence

from learny.config import get_settings
from learny.core.logging import initialize_logging
from learny.schema.course import Course, Difficulty, Pace
from learny.services.course_generation import CourseGenerationService
from learny.storage.courses_repo import InMemoryCoursesRepository

logger = logging.getLogger(__name__)


class _ConsoleObserver:
  def on_progress(self, fractional_progress: float, status_label: str) -> None:
    print(f"[{fractional_progress:4.0%}] {status_label}", file=sys.stderr)

  def workflow_ready(self, course: Course) -> None:
    print(f"Course ready: {course.title} ({len(course.lessons)} lessons)", file=sys.stderr)

  def workflow_failed(self, reason: str) -> None:
    print(f"ERROR: {reason}", file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(prog="learny", description="Generate AI-authored courses.")
  commands = parser.add_subparsers(dest="command", required=True)

  generate = commands.add_parser("generate", help="Generate a course and print its stored record as JSON.")
  generate.add_argument("topic", help="What the course teaches.")
  generate.add_argument("--lesson", dest="lessons", action="append", required=True, help="Lesson title; repeat once per lesson, in order.")
  generate.add_argument("--difficulty", choices=[item.value for item in Difficulty], default=Difficulty.BEGINNER.value)
  generate.add_argument("--pace", choices=[item.value for item in Pace], default=Pace.BALANCED.value)
  return parser


async def _generate(args: argparse.Namespace) -> int:
  repository = InMemoryCoursesRepository()
  service = CourseGenerationService(observer=_ConsoleObserver(), repository=repository)
  course = await service.submit_topic(args.topic, args.difficulty, args.pace, args.lessons)
  if course is None:
    return 1
  record = await repository.get_course(course.id)
  print(json.dumps(record.payload, indent=2, ensure_ascii=False))
  return 0


def main(argv: Sequence[str] | None = None) -> int:
  """Parse arguments, set up logging and run the requested command."""
  args = build_parser().parse_args(argv)
  settings = get_settings()
  initialize_logging(settings)
  logger.info("Running %s for topic=%r", args.command, args.topic)
  return asyncio.run(_generate(args))


if __name__ == "__main__":
  sys.exit(main())
