"""Lesson provisioning workflow: pick a target, curate suggestions, backfill to the minimum."""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from learny.ai.agents.base import UsageSink
from learny.ai.agents.clarifier import ClarifierAgent, fallback_question
from learny.ai.agents.lesson_ideas import LessonIdeaAgent
from learny.ai.errors import AllUnitsFailedError, BatchCancelledError
from learny.ai.pipeline.contracts import ClarificationRequest, GenerationUnit, UnitDescriptor
from learny.ai.providers.base import AIModel
from learny.ai.router import get_default_model
from learny.config import Settings, get_settings
from learny.jobs.coordinator import BatchCoordinator, BatchHandle
from learny.jobs.progress import BatchProgress, ProgressSink
from learny.schema.course import ClarifyingQuestion, LessonIdea
from learny.services.errors import InvalidTransitionError, RetryAction, WorkflowBusyError, WorkflowError

logger = logging.getLogger(__name__)

DEFAULT_COUNT_RANGE = (3, 5)

INITIAL_BATCH_FAILED = "Sorry, I couldn't generate lesson ideas for '{topic}' right now. Please check your connection or try again."
FOLLOW_UP_FAILED = "Sorry, I couldn't generate ideas for that. Could you try rephrasing?"
MORE_IDEAS_FAILED = "Sorry, I couldn't generate more ideas right now. Please try again in a moment."
SWAP_FAILED = "Sorry, I couldn't swap that suggestion. Please try again."
BACKFILL_FAILED = "Sorry, I couldn't add the final lessons to your plan. You can continue to the next step, or try generating more ideas manually."


class ProvisioningState(str, Enum):
  AWAITING_COUNT_TARGET = "awaiting_count_target"
  GENERATING_INITIAL_BATCH = "generating_initial_batch"
  AWAITING_USER_SELECTION = "awaiting_user_selection"
  AWAITING_CLARIFICATION = "awaiting_clarification"
  GENERATING_FOLLOW_UP_BATCH = "generating_follow_up_batch"
  BACKFILL_CHECK = "backfill_check"
  GENERATING_BACKFILL_BATCH = "generating_backfill_batch"
  READY = "ready"
  ABANDONED = "abandoned"


TERMINAL_STATES = frozenset({ProvisioningState.READY, ProvisioningState.ABANDONED})
SELECTION_STATES = frozenset({ProvisioningState.AWAITING_USER_SELECTION, ProvisioningState.BACKFILL_CHECK})


@dataclass(frozen=True)
class CountRange:
  minimum: int
  maximum: int

  @property
  def midpoint(self) -> int:
    return (self.minimum + self.maximum) // 2


def parse_count_range(label: str) -> CountRange:
  """Read a range such as "5-8 lessons" or "10+" from a count-target label.

  Two numbers give (min, max), one number ``n`` gives (n, n + 2), anything else
  falls back to (3, 5).
  """
  numbers = [int(token) for token in re.findall(r"\d+", label)]
  if len(numbers) == 2:
    low, high = sorted(numbers)
    return CountRange(minimum=low, maximum=high)
  if len(numbers) == 1:
    return CountRange(minimum=numbers[0], maximum=numbers[0] + 2)
  logger.warning("Could not read a lesson count range from %r; using %d-%d", label, *DEFAULT_COUNT_RANGE)
  return CountRange(*DEFAULT_COUNT_RANGE)


def _normalize_title(title: str) -> str:
  return " ".join(title.lower().split())


@dataclass(frozen=True)
class LessonCandidate:
  """A suggested lesson with a stable identity inside one session."""

  id: str
  title: str
  description: str

  @classmethod
  def from_idea(cls, idea: LessonIdea) -> LessonCandidate:
    return cls(id=str(uuid.uuid4()), title=idea.title.strip(), description=idea.description.strip())


@dataclass
class ProvisioningSession:
  """Mutable state of one provisioning run; owned by the workflow."""

  target_minimum: int
  initial_batch_size: int
  retry_budget: int
  candidates: list[LessonCandidate] = field(default_factory=list)
  accepted_ids: list[str] = field(default_factory=list)
  retired_ids: set[str] = field(default_factory=set)
  pending_batches: int = 0
  backfill_rounds: int = 0

  @property
  def accepted_units(self) -> list[LessonCandidate]:
    """Accepted candidates in the order they were accepted."""
    by_id = {candidate.id: candidate for candidate in self.candidates}
    return [by_id[item_id] for item_id in self.accepted_ids]

  @property
  def max_backfill_rounds(self) -> int:
    return 1 + self.retry_budget

  def index_of(self, item_id: str) -> int:
    for position, candidate in enumerate(self.candidates):
      if candidate.id == item_id:
        return position
    raise ValueError(f"Unknown lesson suggestion '{item_id}'.")

  def known_titles(self) -> set[str]:
    return {_normalize_title(candidate.title) for candidate in self.candidates}


@dataclass(frozen=True)
class ProvisioningResult:
  """Final accepted lessons and how far they fall short of the target."""

  accepted: list[LessonCandidate]
  target_minimum: int
  shortfall: int

  @property
  def has_shortfall(self) -> bool:
    return self.shortfall > 0

  def unit_descriptors(self) -> list[UnitDescriptor]:
    """Accepted lessons as course-generation inputs, in selection order."""
    return [UnitDescriptor(title=candidate.title, description=candidate.description or None) for candidate in self.accepted]


class ProvisioningWorkflow:
  """Drive lesson provisioning for one topic.

  Generation steps are awaited by the caller. While one runs, every action except
  ``cancel_workflow`` raises ``WorkflowBusyError``. Swaps are the exception: they run
  alongside selection and only block finalizing.
  """

  def __init__(
    self,
    topic: str,
    *,
    model: AIModel | None = None,
    coordinator: BatchCoordinator | None = None,
    settings: Settings | None = None,
    on_progress: ProgressSink | None = None,
    usage_sink: UsageSink = None,
  ) -> None:
    self.topic = topic.strip()
    if not self.topic:
      raise ValueError("topic must not be empty")
    self._settings = settings or get_settings()
    model = model or get_default_model(self._settings)
    self._coordinator = coordinator or BatchCoordinator(max_concurrency=self._settings.max_concurrent_units, unit_timeout=self._settings.unit_timeout_seconds)
    self._idea_agent = LessonIdeaAgent(model=model, max_tokens=self._settings.max_completion_tokens, use=usage_sink)
    self._clarifier = ClarifierAgent(model=model, max_tokens=self._settings.max_completion_tokens, use=usage_sink)
    self._on_progress = on_progress
    self.state = ProvisioningState.AWAITING_COUNT_TARGET
    self.session: ProvisioningSession | None = None
    self.result: ProvisioningResult | None = None
    self.error: WorkflowError | None = None
    self.clarification: ClarifyingQuestion | None = None
    self._pending_query: str | None = None
    self._target_selected = False
    self._busy = False
    self._epoch = 0
    self._batch: BatchHandle[Any] | None = None
    self._clarifier_task: asyncio.Task[ClarifyingQuestion] | None = None
    self._swaps: dict[str, BatchHandle[Any]] = {}

  @property
  def progress(self) -> BatchProgress | None:
    """Latest progress of the batch in flight, if any."""
    if self._batch is None:
      return None
    return self._batch.progress

  @property
  def swapping_ids(self) -> set[str]:
    return set(self._swaps)

  async def select_count_target(self, label: str) -> None:
    """Latch the lesson-count target and generate the initial suggestions; later calls are ignored."""
    if self._target_selected:
      logger.info("Lesson count target already chosen for %r; ignoring %r", self.topic, label)
      return
    self._require_state(ProvisioningState.AWAITING_COUNT_TARGET)
    self._target_selected = True
    count_range = parse_count_range(label)
    self.session = ProvisioningSession(target_minimum=count_range.minimum, initial_batch_size=max(1, count_range.midpoint), retry_budget=self._settings.backfill_retry_budget)
    logger.info("Lesson count target for %r: %d-%d, starting with %d ideas", self.topic, count_range.minimum, count_range.maximum, self.session.initial_batch_size)
    await self._run_initial_batch()

  async def retry_initial_batch(self) -> None:
    """Retry the first batch after it failed."""
    session = self._require_session(ProvisioningState.AWAITING_USER_SELECTION)
    if session.candidates or self.error is None or self.error.retry_action != RetryAction.RETRY_INITIAL_BATCH:
      raise InvalidTransitionError("The initial batch can only be retried after it failed.")
    await self._run_initial_batch()

  def toggle_acceptance(self, item_id: str) -> bool:
    """Flip acceptance of one suggestion and return its new state."""
    session = self._require_session(*SELECTION_STATES, ProvisioningState.AWAITING_CLARIFICATION)
    session.index_of(item_id)
    if item_id in session.accepted_ids:
      session.accepted_ids.remove(item_id)
      return False
    session.accepted_ids.append(item_id)
    return True

  async def request_clarification(self, text: str) -> ClarifyingQuestion | None:
    """Ask a clarifying question about a free-text request for more lessons."""
    query = text.strip()
    if not query:
      raise ValueError("Clarification text must not be empty.")
    self._require_session(*SELECTION_STATES)
    epoch = self._begin()
    try:
      self._clarifier_task = asyncio.get_running_loop().create_task(self._clarifier.run(ClarificationRequest(topic=self.topic, query=query)))
      try:
        question = await asyncio.wait_for(self._clarifier_task, timeout=self._settings.unit_timeout_seconds)
      except asyncio.TimeoutError:
        logger.warning("Clarifying question for %r timed out; using fallback", query)
        question = fallback_question(query)
      except asyncio.CancelledError:
        if self._epoch != epoch:
          return None
        raise
    finally:
      self._clarifier_task = None
      self._end(epoch)

    if self._epoch != epoch:
      return None
    self.clarification = question
    self._pending_query = query
    self._transition(ProvisioningState.AWAITING_CLARIFICATION)
    return question

  async def choose_clarification_option(self, option: str) -> list[LessonCandidate]:
    """Generate a small follow-up batch for the pending request and the chosen focus."""
    self._require_session(ProvisioningState.AWAITING_CLARIFICATION)
    choice = option.strip()
    if not choice:
      raise ValueError("Clarification option must not be empty.")
    focus = f"{self._pending_query} with a focus on {choice}"
    self.clarification = None
    self._pending_query = None
    return await self._run_follow_up(self._settings.follow_up_batch_size, focus, FOLLOW_UP_FAILED)

  def dismiss_clarification(self) -> None:
    """Drop the pending clarifying question without generating anything."""
    self._require_session(ProvisioningState.AWAITING_CLARIFICATION)
    self.clarification = None
    self._pending_query = None
    self._transition(ProvisioningState.AWAITING_USER_SELECTION)

  async def request_more_ideas(self) -> list[LessonCandidate]:
    """Append a few more suggestions without touching existing ones."""
    self._require_session(*SELECTION_STATES)
    return await self._run_follow_up(self._settings.more_ideas_batch_size, None, MORE_IDEAS_FAILED)

  async def swap_item(self, item_id: str) -> LessonCandidate | None:
    """Replace one suggestion in place with a fresh one; a swap already running for it is a no-op."""
    session = self._require_session(*SELECTION_STATES)
    position = session.index_of(item_id)
    if item_id in self._swaps:
      logger.info("Swap already in flight for %s; ignoring", item_id)
      return None

    old = session.candidates[position]
    epoch = self._epoch
    unit = GenerationUnit(index=0, title=self.topic, parameters={"topic": self.topic, "focus": f"a different lesson to replace '{old.title}'", "avoid_titles": [candidate.title for candidate in session.candidates]})
    handle = self._coordinator.start_batch([unit], self._idea_agent.run, name=f"swap-{item_id[:8]}")
    self._swaps[item_id] = handle
    try:
      ideas = await handle.result()
    except BatchCancelledError:
      return None
    except AllUnitsFailedError as exc:
      if self._epoch == epoch:
        self._surface(SWAP_FAILED, RetryAction.RETRY_SWAP, exc)
      return None
    finally:
      if self._swaps.get(item_id) is handle:
        del self._swaps[item_id]

    if self._epoch != epoch or self.session is not session:
      return None
    others = {_normalize_title(candidate.title) for candidate in session.candidates if candidate.id != item_id}
    if _normalize_title(ideas[0].title) in others:
      self._surface(SWAP_FAILED, RetryAction.RETRY_SWAP, "replacement duplicates an existing title")
      return None

    replacement = LessonCandidate.from_idea(ideas[0])
    session.candidates[position] = replacement
    if item_id in session.accepted_ids:
      session.accepted_ids[session.accepted_ids.index(item_id)] = replacement.id
    session.retired_ids.add(item_id)
    logger.info("Swapped suggestion %r for %r at position %d", old.title, replacement.title, position)
    return replacement

  async def attempt_finalize(self) -> ProvisioningResult | None:
    """Backfill up to the target minimum, then finish.

    Returns None when a backfill round failed (the error is surfaced and the
    workflow waits in BACKFILL_CHECK) or when the workflow was cancelled.
    """
    session = self._require_session(*SELECTION_STATES)
    if self._swaps:
      raise WorkflowBusyError("Wait for pending swaps before finalizing.")
    self.error = None
    epoch = self._epoch
    self._transition(ProvisioningState.BACKFILL_CHECK)

    while True:
      deficit = session.target_minimum - len(session.accepted_ids)
      if deficit <= 0:
        return self._finish(session)
      if session.backfill_rounds >= session.max_backfill_rounds:
        return self._finish(session)

      session.backfill_rounds += 1
      logger.info("Backfill round %d/%d for %r: %d lessons short", session.backfill_rounds, session.max_backfill_rounds, self.topic, deficit)
      self._transition(ProvisioningState.GENERATING_BACKFILL_BATCH)
      try:
        added = await self._generate_candidates(deficit, None, name="backfill")
      except BatchCancelledError:
        return None
      except AllUnitsFailedError as exc:
        if self._epoch != epoch:
          return None
        self._surface(BACKFILL_FAILED, RetryAction.ATTEMPT_FINALIZE, exc)
        self._transition(ProvisioningState.BACKFILL_CHECK)
        return None

      if self._epoch != epoch:
        return None
      if not added:
        self._surface(BACKFILL_FAILED, RetryAction.ATTEMPT_FINALIZE, "backfill produced only duplicate titles")
        self._transition(ProvisioningState.BACKFILL_CHECK)
        return None
      session.accepted_ids.extend(candidate.id for candidate in added)
      self._transition(ProvisioningState.BACKFILL_CHECK)

  def cancel_workflow(self) -> None:
    """Abandon the workflow, stopping any generation in flight."""
    if self.state in TERMINAL_STATES:
      return
    self._epoch += 1
    if self._batch is not None:
      self._batch.cancel()
    for handle in list(self._swaps.values()):
      handle.cancel()
    if self._clarifier_task is not None:
      self._clarifier_task.cancel()
    self._busy = False
    self._transition(ProvisioningState.ABANDONED)
    self.session = None
    self.clarification = None

  async def _run_initial_batch(self) -> None:
    session = self._active_session()
    epoch = self._epoch
    self.error = None
    self._transition(ProvisioningState.GENERATING_INITIAL_BATCH)
    try:
      added = await self._generate_candidates(session.initial_batch_size, None, name="initial")
    except BatchCancelledError:
      return
    except AllUnitsFailedError as exc:
      if self._epoch == epoch:
        self._surface(INITIAL_BATCH_FAILED.format(topic=self.topic), RetryAction.RETRY_INITIAL_BATCH, exc)
        self._transition(ProvisioningState.AWAITING_USER_SELECTION)
      return
    if self._epoch == epoch:
      logger.info("Initial batch for %r produced %d suggestions", self.topic, len(added))
      self._transition(ProvisioningState.AWAITING_USER_SELECTION)

  async def _run_follow_up(self, count: int, focus: str | None, failure_message: str) -> list[LessonCandidate]:
    epoch = self._epoch
    self.error = None
    self._transition(ProvisioningState.GENERATING_FOLLOW_UP_BATCH)
    try:
      added = await self._generate_candidates(count, focus, name="follow-up")
    except BatchCancelledError:
      return []
    except AllUnitsFailedError as exc:
      if self._epoch == epoch:
        self._surface(failure_message, RetryAction.REQUEST_MORE_IDEAS, exc)
        self._transition(ProvisioningState.AWAITING_USER_SELECTION)
      return []
    if self._epoch != epoch:
      return []
    if not added:
      self._surface(failure_message, RetryAction.REQUEST_MORE_IDEAS, "follow-up produced only duplicate titles")
    self._transition(ProvisioningState.AWAITING_USER_SELECTION)
    return added

  async def _generate_candidates(self, count: int, focus: str | None, *, name: str) -> list[LessonCandidate]:
    """Run one batch of single-idea units and append the distinct results to the session."""
    session = self._active_session()
    avoid = [candidate.title for candidate in session.candidates]
    units = [GenerationUnit(index=index, title=self.topic, parameters={"topic": self.topic, "focus": focus, "avoid_titles": avoid}) for index in range(count)]

    epoch = self._begin()
    session.pending_batches += 1
    self._batch = self._coordinator.start_batch(units, self._idea_agent.run, self._on_progress, name=f"{name}-{self.topic[:24]}")
    try:
      ideas = await self._batch.result()
    finally:
      session.pending_batches -= 1
      self._batch = None
      self._end(epoch)

    if self._epoch != epoch:
      return []
    seen = session.known_titles()
    added: list[LessonCandidate] = []
    for idea in ideas:
      key = _normalize_title(idea.title)
      if key in seen:
        logger.info("Dropped duplicate suggestion %r", idea.title)
        continue
      seen.add(key)
      added.append(LessonCandidate.from_idea(idea))
    session.candidates.extend(added)
    return added

  def _begin(self) -> int:
    if self._busy:
      raise WorkflowBusyError("Another generation step is still running.")
    self._busy = True
    return self._epoch

  def _end(self, epoch: int) -> None:
    if self._epoch == epoch:
      self._busy = False

  def _require_state(self, *states: ProvisioningState) -> None:
    if self._busy:
      raise WorkflowBusyError(f"Workflow is busy in state {self.state.value}.")
    if self.state not in states:
      allowed = ", ".join(state.value for state in states)
      raise InvalidTransitionError(f"Action not allowed in state {self.state.value} (expected one of: {allowed}).")

  def _require_session(self, *states: ProvisioningState) -> ProvisioningSession:
    self._require_state(*states)
    return self._active_session()

  def _active_session(self) -> ProvisioningSession:
    if self.session is None:
      raise InvalidTransitionError("No provisioning session is active.")
    return self.session

  def _transition(self, new_state: ProvisioningState) -> None:
    if new_state == self.state:
      return
    logger.info("Provisioning %r: %s -> %s", self.topic, self.state.value, new_state.value)
    self.state = new_state

  def _surface(self, message: str, action: RetryAction, cause: object) -> None:
    logger.warning("Provisioning %r recoverable error (%s): %s", self.topic, action.value, cause)
    self.error = WorkflowError(message=message, retry_action=action)

  def _finish(self, session: ProvisioningSession) -> ProvisioningResult:
    accepted = session.accepted_units
    shortfall = max(0, session.target_minimum - len(accepted))
    if shortfall:
      logger.warning("Provisioning %r finished %d lessons short of %d after %d backfill rounds", self.topic, shortfall, session.target_minimum, session.backfill_rounds)
    self.result = ProvisioningResult(accepted=accepted, target_minimum=session.target_minimum, shortfall=shortfall)
    self._transition(ProvisioningState.READY)
    self.session = None
    return self.result
