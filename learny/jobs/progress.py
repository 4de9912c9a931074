"""Batch progress records and serialized delivery to a single observer."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchProgress:
  """Snapshot of a batch's progress as seen by observers."""

  completed: int
  total: int
  fractional_progress: float
  last_status_label: str


ProgressSink = Callable[[BatchProgress], Awaitable[None] | None]


class ProgressChannel:
  """Deliver progress updates to one sink, one at a time and in publish order.

  Publishing never waits on the sink: updates are queued and drained by a single
  consumer task. Fractional progress is clamped so it never decreases. After
  ``cancel()`` queued and future updates are dropped.
  """

  def __init__(self, sink: ProgressSink | None, *, name: str = "batch") -> None:
    self._sink = sink
    self._name = name
    self._queue: asyncio.Queue[BatchProgress | None] = asyncio.Queue()
    self._consumer: asyncio.Task[None] | None = None
    self._latest: BatchProgress | None = None
    self._cancelled = False
    self._closed = False

  @property
  def latest(self) -> BatchProgress | None:
    """Most recent published snapshot, for read-only polling."""
    return self._latest

  @property
  def cancelled(self) -> bool:
    return self._cancelled

  def publish(self, update: BatchProgress) -> None:
    """Queue an update without blocking the caller."""
    if self._cancelled or self._closed:
      return

    # Hold progress at its previous value if a late update would move it backwards.
    if self._latest is not None and update.fractional_progress < self._latest.fractional_progress:
      update = BatchProgress(completed=max(update.completed, self._latest.completed), total=update.total, fractional_progress=self._latest.fractional_progress, last_status_label=update.last_status_label)
    self._latest = update

    if self._sink is None:
      return
    if self._consumer is None:
      self._consumer = asyncio.get_running_loop().create_task(self._drain(), name=f"progress-{self._name}")
    self._queue.put_nowait(update)

  def cancel(self) -> None:
    """Drop every pending and future update."""
    if self._cancelled:
      return
    self._cancelled = True
    while not self._queue.empty():
      self._queue.get_nowait()
    if self._consumer is not None:
      self._queue.put_nowait(None)

  async def close(self) -> None:
    """Stop accepting updates and wait until queued ones are delivered."""
    if self._closed:
      return
    self._closed = True
    if self._consumer is None:
      return
    self._queue.put_nowait(None)
    await self._consumer

  async def _drain(self) -> None:
    while True:
      update = await self._queue.get()
      if update is None:
        return
      if self._cancelled or self._sink is None:
        continue
      try:
        result = self._sink(update)
        if inspect.isawaitable(result):
          await result
      except Exception:
        # A failing observer must not stall delivery of later updates.
        logger.exception("Progress observer for %s raised; update dropped", self._name)
