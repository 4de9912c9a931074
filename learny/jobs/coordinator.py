"""Fan-out/fan-in execution of independent generation units."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from learny.ai.errors import AllUnitsFailedError, BatchCancelledError, ErrorKind, classify_error
from learny.ai.pipeline.contracts import GenerationUnit
from learny.config import get_settings
from learny.jobs.progress import BatchProgress, ProgressChannel, ProgressSink

T = TypeVar("T")

logger = logging.getLogger(__name__)

Worker = Callable[[GenerationUnit], Awaitable[T]]
StatusLabel = Callable[[int, int], str]


@dataclass(frozen=True)
class GenerationOutcome(Generic[T]):
  """Result of one unit: an item, or the kind of failure that prevented it."""

  index: int
  item: T | None = None
  error: ErrorKind | None = None
  detail: str | None = None

  @property
  def ok(self) -> bool:
    return self.error is None


def _default_label(completed: int, total: int) -> str:
  return f"Completed {completed} of {total}"


class BatchHandle(Generic[T]):
  """Caller-independent handle on a running batch."""

  def __init__(self, task: asyncio.Task[list[T]], channel: ProgressChannel, outcomes: list[GenerationOutcome[T]]) -> None:
    self._task = task
    self._channel = channel
    self._outcomes = outcomes
    self._cancel_requested = False

  @property
  def done(self) -> bool:
    return self._task.done()

  @property
  def cancel_requested(self) -> bool:
    return self._cancel_requested

  @property
  def outcomes(self) -> list[GenerationOutcome[T]]:
    """Every outcome in index order once the batch has finished; empty before that or after cancellation."""
    return list(self._outcomes)

  @property
  def progress(self) -> BatchProgress | None:
    return self._channel.latest

  def cancel(self) -> None:
    """Stop every in-flight unit and silence further progress."""
    if self._task.done():
      return
    self._cancel_requested = True
    self._channel.cancel()
    self._task.cancel()

  async def result(self) -> list[T]:
    """Wait for the surviving items in submission order."""
    try:
      return await self._task
    except asyncio.CancelledError:
      if self._cancel_requested:
        raise BatchCancelledError("Batch was cancelled before it finished.") from None
      self.cancel()
      raise


class BatchCoordinator:
  """Run one worker per unit concurrently and reassemble results by unit index."""

  def __init__(self, *, max_concurrency: int | None = None, unit_timeout: float | None = None) -> None:
    if max_concurrency is None or unit_timeout is None:
      settings = get_settings()
      max_concurrency = settings.max_concurrent_units if max_concurrency is None else max_concurrency
      unit_timeout = settings.unit_timeout_seconds if unit_timeout is None else unit_timeout
    if max_concurrency < 1:
      raise ValueError("max_concurrency must be at least 1.")
    if unit_timeout <= 0:
      raise ValueError("unit_timeout must be positive.")
    self._max_concurrency = max_concurrency
    self._unit_timeout = unit_timeout

  def start_batch(
    self,
    units: Sequence[GenerationUnit],
    worker: Worker[T],
    on_progress: ProgressSink | None = None,
    *,
    base_offset: float = 0.0,
    span_width: float = 1.0,
    status_label: StatusLabel | None = None,
    accept: Callable[[T], bool] | None = None,
    name: str = "batch",
  ) -> BatchHandle[T]:
    """Schedule the batch and return immediately with a handle."""
    if not units:
      raise ValueError("A batch needs at least one unit.")
    indexes = [unit.index for unit in units]
    if len(set(indexes)) != len(indexes):
      raise ValueError("Unit indexes must be unique within a batch.")
    if base_offset < 0 or span_width < 0 or base_offset + span_width > 1.0 + 1e-9:
      raise ValueError("Progress span must lie within [0.0, 1.0].")

    channel = ProgressChannel(on_progress, name=name)
    outcomes: list[GenerationOutcome[T]] = []
    coro = self._execute(list(units), worker, channel, outcomes, base_offset=base_offset, span_width=span_width, status_label=status_label or _default_label, accept=accept, name=name)
    task = asyncio.get_running_loop().create_task(coro, name=name)
    return BatchHandle(task, channel, outcomes)

  async def run_batch(
    self,
    units: Sequence[GenerationUnit],
    worker: Worker[T],
    on_progress: ProgressSink | None = None,
    *,
    base_offset: float = 0.0,
    span_width: float = 1.0,
    status_label: StatusLabel | None = None,
    accept: Callable[[T], bool] | None = None,
    name: str = "batch",
  ) -> list[T]:
    """Run the batch to completion; cancelling the caller cancels the batch."""
    handle = self.start_batch(units, worker, on_progress, base_offset=base_offset, span_width=span_width, status_label=status_label, accept=accept, name=name)
    return await handle.result()

  async def _execute(
    self,
    units: list[GenerationUnit],
    worker: Worker[T],
    channel: ProgressChannel,
    outcomes_out: list[GenerationOutcome[T]],
    *,
    base_offset: float,
    span_width: float,
    status_label: StatusLabel,
    accept: Callable[[T], bool] | None,
    name: str,
  ) -> list[T]:
    total = len(units)
    semaphore = asyncio.Semaphore(self._max_concurrency)
    completed = 0
    logger.info("Batch %s started: %d units, concurrency=%d", name, total, min(total, self._max_concurrency))

    async def run_one(unit: GenerationUnit) -> GenerationOutcome[T]:
      nonlocal completed
      async with semaphore:
        outcome = await self._run_unit(unit, worker, accept)
      # Completions resume on the event loop one at a time, so the counter needs no lock.
      completed += 1
      fraction = base_offset + span_width * (completed / total)
      channel.publish(BatchProgress(completed=completed, total=total, fractional_progress=min(fraction, 1.0), last_status_label=status_label(completed, total)))
      return outcome

    tasks = [asyncio.create_task(run_one(unit)) for unit in units]
    try:
      results = await asyncio.gather(*tasks)
    except asyncio.CancelledError:
      channel.cancel()
      for task in tasks:
        task.cancel()
      await asyncio.gather(*tasks, return_exceptions=True)
      logger.info("Batch %s cancelled after %d/%d units", name, completed, total)
      raise

    await channel.close()
    ordered = sorted(results, key=lambda outcome: outcome.index)
    outcomes_out.extend(ordered)
    items = [outcome.item for outcome in ordered if outcome.ok and outcome.item is not None]
    logger.info("Batch %s finished: %d/%d units succeeded", name, len(items), total)
    if not items:
      raise AllUnitsFailedError(ordered)
    return items

  async def _run_unit(self, unit: GenerationUnit, worker: Worker[T], accept: Callable[[T], bool] | None) -> GenerationOutcome[T]:
    """Run one worker under the per-unit timeout and turn any failure into data."""
    try:
      item = await asyncio.wait_for(worker(unit), timeout=self._unit_timeout)
    except asyncio.TimeoutError:
      logger.warning("Unit %d (%s) failed: %s after %.1fs", unit.index, unit.title, ErrorKind.TIMEOUT.value, self._unit_timeout)
      return GenerationOutcome(index=unit.index, error=ErrorKind.TIMEOUT, detail=f"timed out after {self._unit_timeout}s")
    except Exception as exc:
      kind = classify_error(exc)
      logger.warning("Unit %d (%s) failed: %s (%s)", unit.index, unit.title, kind.value, exc)
      return GenerationOutcome(index=unit.index, error=kind, detail=str(exc))

    if item is None or (accept is not None and not accept(item)):
      logger.warning("Unit %d (%s) failed: %s (empty result)", unit.index, unit.title, ErrorKind.ALL_ITEMS_INVALID.value)
      return GenerationOutcome(index=unit.index, error=ErrorKind.ALL_ITEMS_INVALID, detail="empty result")
    return GenerationOutcome(index=unit.index, item=item)
