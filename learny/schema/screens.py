"""Typed lesson screens: a tagged union keyed by ``type``."""

from __future__ import annotations

import logging
from typing import Annotated, Any, Union

import msgspec

logger = logging.getLogger(__name__)

# Accept snake_case spellings of the camelCase screen tags.
_TYPE_ALIASES = {"tap_to_reveal": "tapToReveal", "fill_in_the_blank": "fillInTheBlank", "fill_blank": "fillInTheBlank"}


class ScreenBase(msgspec.Struct, tag_field="type", rename="camel"):
  """Base class for all lesson screens."""

  pass


class TitleScreen(ScreenBase, tag="title"):
  title: Annotated[str, msgspec.Meta(min_length=1, description="Lesson title shown on the opening screen")]
  hook: Annotated[str, msgspec.Meta(description="One or two sentences that make the learner curious")]
  subtitle: str | None = None


class InfoScreen(ScreenBase, tag="info"):
  text: Annotated[str, msgspec.Meta(min_length=1, description="Short explanatory paragraph")]


class TapToRevealScreen(ScreenBase, tag="tapToReveal"):
  question: Annotated[str, msgspec.Meta(min_length=1)]
  answer: Annotated[str, msgspec.Meta(min_length=1)]


class FillInTheBlankScreen(ScreenBase, tag="fillInTheBlank"):
  prompt_start: str
  prompt_end: str
  correct_answer: Annotated[str, msgspec.Meta(min_length=1)]


class DialogueLine(msgspec.Struct):
  speaker: str
  text: str


class DialogueScreen(ScreenBase, tag="dialogue"):
  lines: Annotated[list[DialogueLine], msgspec.Meta(min_length=1)]


class MatchingPair(msgspec.Struct):
  term: str
  definition: str


class MatchingScreen(ScreenBase, tag="matching"):
  pairs: Annotated[list[MatchingPair], msgspec.Meta(min_length=2)]


class QuizQuestion(msgspec.Struct, rename="camel"):
  prompt: str
  options: Annotated[list[str], msgspec.Meta(min_length=2)]
  correct_index: Annotated[int, msgspec.Meta(ge=0)]

  def __post_init__(self) -> None:
    if self.correct_index >= len(self.options):
      raise ValueError(f"correctIndex {self.correct_index} is out of range for {len(self.options)} options")


class QuizScreen(ScreenBase, tag="quiz"):
  questions: Annotated[list[QuizQuestion], msgspec.Meta(min_length=1)]


Screen = Union[TitleScreen, InfoScreen, TapToRevealScreen, FillInTheBlankScreen, DialogueScreen, MatchingScreen, QuizScreen]


class Lesson(msgspec.Struct):
  """One generated lesson. A lesson without screens is never valid."""

  number: Annotated[int, msgspec.Meta(ge=1)]
  title: str
  screens: Annotated[list[Screen], msgspec.Meta(min_length=1)]
  is_unlocked: bool = False


def normalize_screen(raw: Any) -> Any:
  """Flatten the ``{"type": ..., "payload": {...}}`` envelope into a tagged object."""
  if not isinstance(raw, dict):
    return raw
  screen_type = raw.get("type")
  if isinstance(screen_type, str):
    screen_type = _TYPE_ALIASES.get(screen_type, screen_type)
  payload = raw.get("payload")
  if isinstance(payload, dict):
    return {**payload, "type": screen_type}
  return {**raw, "type": screen_type}


def encode_screen(screen: Screen) -> dict[str, Any]:
  """Encode a screen into the ``{"type", "payload"}`` envelope used for storage."""
  flat = msgspec.to_builtins(screen)
  screen_type = flat.pop("type")
  return {"type": screen_type, "payload": flat}


def describe_screen(screen: Screen) -> str:
  """Return a one-line summary of a screen for logs and outlines."""
  if isinstance(screen, TitleScreen):
    return f"title: {screen.title}"
  if isinstance(screen, InfoScreen):
    return f"info: {screen.text[:60]}"
  if isinstance(screen, TapToRevealScreen):
    return f"tap to reveal: {screen.question}"
  if isinstance(screen, FillInTheBlankScreen):
    return f"fill in the blank: {screen.prompt_start} ___ {screen.prompt_end}".strip()
  if isinstance(screen, DialogueScreen):
    return f"dialogue: {len(screen.lines)} lines"
  if isinstance(screen, MatchingScreen):
    return f"matching: {len(screen.pairs)} pairs"
  if isinstance(screen, QuizScreen):
    return f"quiz: {len(screen.questions)} questions"
  raise TypeError(f"Unsupported screen type: {type(screen).__name__}")


def lesson_outline(lesson: Lesson) -> list[str]:
  """Summarize each screen of a lesson in order."""
  return [describe_screen(screen) for screen in lesson.screens]
