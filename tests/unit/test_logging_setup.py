from __future__ import annotations

import logging
import sys
from dataclasses import replace

import pytest

from learny.core import logging as logging_setup
from learny.core.logging import TruncatedFormatter, initialize_logging, rotated_log_name


@pytest.fixture
def restore_logging(monkeypatch):
  root = logging.getLogger()
  saved_handlers = root.handlers[:]
  saved_level = root.level
  monkeypatch.setattr(logging_setup, "_LOGGING_INITIALIZED", False)
  monkeypatch.setattr(logging_setup, "_LOG_FILE_PATH", None)
  yield
  for handler in root.handlers:
    if handler not in saved_handlers:
      handler.close()
  root.handlers = saved_handlers
  root.setLevel(saved_level)
  for name in ("httpx", "openai", "google_genai"):
    sdk_logger = logging.getLogger(name)
    sdk_logger.handlers = []
    sdk_logger.propagate = True
    sdk_logger.setLevel(logging.NOTSET)


def test_rotated_log_name() -> None:
  assert rotated_log_name("/var/log/learny_20260101.log.1") == "/var/log/learny_20260101.log-1"
  assert rotated_log_name("/var/log/learny_20260101.log") == "/var/log/learny_20260101.log"


def test_truncated_formatter_keeps_tail_of_traceback() -> None:
  def nested(depth: int) -> None:
    if depth == 0:
      raise RuntimeError("deep failure")
    nested(depth - 1)

  try:
    nested(6)
  except RuntimeError:
    record = logging.LogRecord("learny", logging.ERROR, __file__, 1, "failed", None, exc_info=sys.exc_info())

  text = TruncatedFormatter("%(message)s").format(record)
  assert text.splitlines()[1] == "Traceback (most recent call last):"
  assert "    ..." in text
  assert text.rstrip().endswith("RuntimeError: deep failure")


def test_initialize_logging_writes_to_rotating_file(tmp_path, settings, restore_logging) -> None:
  configured = replace(settings, log_dir=str(tmp_path / "logs"), debug=True)

  log_path = initialize_logging(configured)

  assert log_path is not None
  assert log_path.parent == (tmp_path / "logs").resolve()
  assert log_path.name.startswith("learny_")
  assert logging.getLogger().level == logging.DEBUG
  assert initialize_logging(configured) == log_path

  logging.getLogger("learny.tests").info("hello from the test")
  for handler in logging.getLogger().handlers:
    handler.flush()
  assert "hello from the test" in log_path.read_text(encoding="utf-8")
