"""Prompt templates and renderers shared by agents."""

from __future__ import annotations

from learny.ai.pipeline.contracts import ClarificationRequest, CourseRequest, GenerationUnit

_METADATA_TEMPLATE = """You are designing a short mobile course about "{{TOPIC}}".
Learner level: {{DIFFICULTY}}. Pace: {{PACE}}.
The course contains these lessons in order:
{{LESSONS}}

Return a JSON object with the keys "overview" (2 sentences), "whoIsThisFor" (1 sentence),
"estimatedTime" (for example "45-60 minutes") and "learningObjectives" (3 to 5 short strings).
"""

_LESSON_TEMPLATE = """Write lesson {{NUMBER}} of a mobile course about "{{TOPIC}}".
Lesson title: {{TITLE}}
Lesson focus: {{DESCRIPTION}}
Learner level: {{DIFFICULTY}}. Pace: {{PACE}}.

Return a JSON object {"screens": [...]} with 5 to 8 screens. Each screen is
{"type": <kind>, "payload": {...}} where kind and payload are one of:
- "title": {"title", "subtitle", "hook"}
- "info": {"text"}
- "tapToReveal": {"question", "answer"}
- "fillInTheBlank": {"promptStart", "promptEnd", "correctAnswer"}
- "dialogue": {"lines": [{"speaker", "text"}]}
- "matching": {"pairs": [{"term", "definition"}]}
- "quiz": {"questions": [{"prompt", "options", "correctIndex"}]}
Start with a "title" screen and end with a "quiz" screen.
"""

_IDEA_TEMPLATE = """Suggest one lesson for a course about "{{TOPIC}}".
Focus: {{FOCUS}}
Do not repeat any of these existing lessons:
{{AVOID}}

Return a JSON object {"lessons": [{"title": <max 6 words>, "description": <one sentence>}]}.
"""

_CLARIFIER_TEMPLATE = """A learner building a course about "{{TOPIC}}" asked for more lessons about:
"{{QUERY}}"

Ask one short clarifying question about what they want to focus on and offer 2 to 4 short answer options.
Return a JSON object {"question": <string>, "options": [<string>, ...]}.
"""


def _replace_placeholders(template: str, values: dict[str, str]) -> str:
  """Substitute {{PLACEHOLDER}} markers with request values."""
  rendered = template
  for key, value in values.items():
    rendered = rendered.replace(f"{{{{{key}}}}}", value)

  return rendered


def _bullet_list(items: list[str]) -> str:
  if not items:
    return "-"
  return "\n".join(f"- {item}" for item in items)


def render_metadata_prompt(request: CourseRequest) -> str:
  """Render the course metadata prompt."""
  lessons = [unit.title for unit in request.units]
  return _replace_placeholders(_METADATA_TEMPLATE, {"TOPIC": request.topic, "DIFFICULTY": request.difficulty.value, "PACE": request.pace.value, "LESSONS": _bullet_list(lessons)})


def render_lesson_prompt(unit: GenerationUnit) -> str:
  """Render the prompt for one lesson's screens."""
  params = unit.parameters
  values = {
    "NUMBER": str(unit.index + 1),
    "TITLE": unit.title,
    "TOPIC": str(params.get("topic", unit.title)),
    "DESCRIPTION": str(params.get("description") or unit.title),
    "DIFFICULTY": str(params.get("difficulty", "beginner")),
    "PACE": str(params.get("pace", "balanced")),
  }
  return _replace_placeholders(_LESSON_TEMPLATE, values)


def render_idea_prompt(unit: GenerationUnit) -> str:
  """Render the prompt for a single lesson suggestion."""
  params = unit.parameters
  avoid = [str(title) for title in params.get("avoid_titles", [])]
  return _replace_placeholders(_IDEA_TEMPLATE, {"TOPIC": str(params.get("topic", unit.title)), "FOCUS": str(params.get("focus") or "core concepts"), "AVOID": _bullet_list(avoid)})


def render_clarifier_prompt(request: ClarificationRequest) -> str:
  """Render the clarifying-question prompt."""
  return _replace_placeholders(_CLARIFIER_TEMPLATE, {"TOPIC": request.topic, "QUERY": request.query})
