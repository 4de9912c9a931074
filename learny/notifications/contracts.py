"""Contracts for outbound workflow events and user notifications."""

from __future__ import annotations

from typing import Protocol

from learny.schema.course import Course


class NotificationError(Exception):
  """Base class for notification delivery failures."""


class ContentNotifier(Protocol):
  """Delivery contract for "your content is ready" notifications."""

  async def notify_content_ready(self, name: str) -> None:
    """Tell the user that generated content called ``name`` is ready."""


class WorkflowObserver(Protocol):
  """Receives progress and terminal events from a generation workflow."""

  def on_progress(self, fractional_progress: float, status_label: str) -> None:
    """Receive one progress update; calls are never concurrent."""

  def workflow_ready(self, course: Course) -> None:
    """Receive the finished course."""

  def workflow_failed(self, reason: str) -> None:
    """Receive a user-facing failure reason."""
