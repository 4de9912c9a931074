from __future__ import annotations

import json

import pytest

from learny.ai.agents import ClarifierAgent, CourseMetadataAgent, LessonContentAgent, LessonIdeaAgent
from learny.ai.agents.clarifier import FALLBACK_OPTIONS
from learny.ai.errors import ErrorKind, ParseFailureError, TransportError
from learny.ai.pipeline.contracts import ClarificationRequest, CourseRequest, GenerationUnit, UnitDescriptor
from learny.schema.screens import InfoScreen, QuizScreen


@pytest.mark.anyio
async def test_lesson_agent_keeps_valid_screens_and_reports_usage(scripted_model) -> None:
  reply = {
    "screens": [
      {"type": "info", "payload": {"text": "Chords stack thirds."}},
      {"type": "quiz", "payload": {"questions": [{"prompt": "Notes in a triad?", "options": ["2", "3"], "correctIndex": 7}]}},
      {"type": "quiz", "payload": {"questions": [{"prompt": "Notes in a triad?", "options": ["2", "3"], "correctIndex": 1}]}},
    ]
  }
  model = scripted_model(lambda prompt: "```json\n" + json.dumps(reply) + "\n```")
  usage: list[dict] = []
  agent = LessonContentAgent(model=model, max_tokens=512, use=usage.append)

  lesson = await agent.run(GenerationUnit(index=2, title="Triads", parameters={"topic": "Guitar chords", "description": "Build a triad."}))

  assert lesson.number == 3
  assert lesson.title == "Triads"
  assert [type(screen) for screen in lesson.screens] == [InfoScreen, QuizScreen]
  assert usage == [{"model": "fake-model", "agent": "LessonContent", "purpose": "lesson_content", "call_index": "3", "prompt_tokens": 10, "completion_tokens": 20, "total_tokens": 30}]
  assert "Write lesson 3" in model.prompts[0]
  assert "Build a triad." in model.prompts[0]


@pytest.mark.anyio
async def test_lesson_agent_raises_classified_failure(scripted_model) -> None:
  agent = LessonContentAgent(model=scripted_model(lambda prompt: '{"screens": []}'), max_tokens=512)

  with pytest.raises(ParseFailureError) as excinfo:
    await agent.run(GenerationUnit(index=0, title="Empty"))

  assert excinfo.value.kind is ErrorKind.ALL_ITEMS_INVALID


@pytest.mark.anyio
async def test_idea_agent_accepts_bare_record_and_lists_titles_to_avoid(scripted_model) -> None:
  model = scripted_model(lambda prompt: 'Sure! {"title": "Power chords", "description": "Two-note chords."}')
  agent = LessonIdeaAgent(model=model, max_tokens=256)

  idea = await agent.run(GenerationUnit(index=0, title="Guitar", parameters={"topic": "Guitar", "focus": "rock", "avoid_titles": ["Open chords"]}))

  assert idea.title == "Power chords"
  assert "- Open chords" in model.prompts[0]
  assert "Focus: rock" in model.prompts[0]


@pytest.mark.anyio
async def test_metadata_agent_parses_camel_case_record(scripted_model) -> None:
  reply = {"overview": "A tour of chords.", "whoIsThisFor": "Beginners.", "estimatedTime": "1 hour", "learningObjectives": ["Play triads"]}
  model = scripted_model(lambda prompt: json.dumps(reply))
  agent = CourseMetadataAgent(model=model, max_tokens=256)
  request = CourseRequest(topic="Guitar chords", units=[UnitDescriptor(title="Open chords"), UnitDescriptor(title="Barre chords")])

  metadata = await agent.run(request)

  assert metadata.who_is_this_for == "Beginners."
  assert metadata.learning_objectives == ["Play triads"]
  assert "- Barre chords" in model.prompts[0]


@pytest.mark.anyio
async def test_clarifier_returns_question(scripted_model) -> None:
  model = scripted_model(lambda prompt: json.dumps({"question": "Which style?", "options": ["Jazz", "Blues"]}))
  agent = ClarifierAgent(model=model, max_tokens=256)

  question = await agent.run(ClarificationRequest(topic="Guitar", query="more on chords"))

  assert question.question == "Which style?"
  assert question.options == ["Jazz", "Blues"]


@pytest.mark.anyio
async def test_clarifier_falls_back_on_transport_error(scripted_model) -> None:
  def responder(prompt: str) -> str:
    raise TransportError("HTTP 503", status_code=503)

  agent = ClarifierAgent(model=scripted_model(responder), max_tokens=256)

  question = await agent.run(ClarificationRequest(topic="Guitar", query="more on chords"))

  assert "more on chords" in question.question
  assert question.options == FALLBACK_OPTIONS


@pytest.mark.anyio
async def test_clarifier_falls_back_on_unexpected_errors(scripted_model) -> None:
  def responder(prompt: str) -> str:
    raise RuntimeError("unexpected SDK error")

  agent = ClarifierAgent(model=scripted_model(responder), max_tokens=256)

  question = await agent.run(ClarificationRequest(topic="Guitar", query="scales"))

  assert question.options == FALLBACK_OPTIONS
