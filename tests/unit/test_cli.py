from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from learny.cli import build_parser, main


def _reply(prompt: str) -> str:
  if "Write lesson" in prompt:
    return json.dumps({"screens": [{"type": "info", "payload": {"text": "Hold the pick loosely."}}]})
  return json.dumps({"overview": "Strumming basics.", "whoIsThisFor": "New players.", "estimatedTime": "20 minutes", "learningObjectives": ["Strum in time"]})


def test_generate_prints_course_record_and_initializes_logging(scripted_model, capsys) -> None:
  model = scripted_model(_reply)
  with patch("learny.cli.initialize_logging") as init_logging, patch("learny.services.course_generation.get_default_model", return_value=model):
    code = main(["generate", "Guitar strumming", "--lesson", "Down strokes", "--lesson", "Up strokes", "--pace", "quick_review"])

  assert code == 0
  init_logging.assert_called_once()
  captured = capsys.readouterr()
  payload = json.loads(captured.out)
  assert payload["topic"] == "Guitar strumming"
  assert [lesson["title"] for lesson in payload["lessons"]] == ["Down strokes", "Up strokes"]
  assert payload["lessons"][0]["screens"][0]["type"] == "info"
  assert "Course ready" in captured.err


def test_generate_exits_non_zero_when_every_lesson_fails(scripted_model, capsys) -> None:
  model = scripted_model(lambda prompt: "no lesson today" if "Write lesson" in prompt else "{}")
  with patch("learny.cli.initialize_logging"), patch("learny.services.course_generation.get_default_model", return_value=model):
    code = main(["generate", "Guitar strumming", "--lesson", "Down strokes"])

  assert code == 1
  captured = capsys.readouterr()
  assert captured.out == ""
  assert "ERROR:" in captured.err


def test_parser_rejects_unknown_difficulty_and_missing_lessons() -> None:
  parser = build_parser()
  with pytest.raises(SystemExit):
    parser.parse_args(["generate", "Guitar", "--lesson", "One", "--difficulty", "expert"])
  with pytest.raises(SystemExit):
    parser.parse_args(["generate", "Guitar"])
