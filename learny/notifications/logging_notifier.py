"""Notifier that records "content ready" events in the application log."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class LoggingNotifier:
  """Default notifier used when no delivery channel is configured."""

  def __init__(self) -> None:
    self.delivered: list[str] = []

  async def notify_content_ready(self, name: str) -> None:
    self.delivered.append(name)
    logger.info("Content ready notification: %s", name)
