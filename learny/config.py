"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

SUPPORTED_PROVIDERS = ("openrouter", "gemini")
MAX_CONCURRENCY_CEILING = 16
# Only engine and provider credentials are read from a local .env file.
ENV_FILE_PREFIXES = ("LEARNY_", "OPENROUTER_", "GEMINI_")


def env_file_path() -> Path:
  """Location of the local .env file, overridable with LEARNY_ENV_FILE."""

  configured = _optional_str(os.getenv("LEARNY_ENV_FILE"))
  if configured is not None:
    return Path(configured).expanduser()
  return Path(__file__).resolve().parents[1] / ".env"


def read_env_file(path: Path) -> dict[str, str]:
  """Return the engine-relevant assignments of a .env file; a missing file reads as empty."""

  if not path.is_file():
    return {}

  values: dict[str, str] = {}
  for line in path.read_text(encoding="utf-8").splitlines():
    name, sep, value = line.strip().removeprefix("export ").partition("=")
    name = name.strip()
    if not sep or not name.startswith(ENV_FILE_PREFIXES):
      continue
    value = value.strip()
    if value[:1] in ("'", '"') and value.endswith(value[0]) and len(value) > 1:
      value = value[1:-1]
    else:
      value = value.split(" #", 1)[0].rstrip()
    values[name] = value
  return values


def apply_env_file(path: Path | None = None, *, override: bool = False) -> list[str]:
  """Copy .env assignments into ``os.environ``; returns the names that were set."""

  applied = []
  for name, value in read_env_file(path or env_file_path()).items():
    if name in os.environ and not override:
      continue
    os.environ[name] = value
    applied.append(name)
  return applied


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Learny generation engine."""

  environment: str
  debug: bool
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  llm_provider: str
  llm_model: str | None
  max_concurrent_units: int
  unit_timeout_seconds: float
  max_completion_tokens: int
  backfill_retry_budget: int
  follow_up_batch_size: int
  more_ideas_batch_size: int
  max_topic_length: int


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _parse_int(name: str, default: str) -> int:
  raw = os.getenv(name, default)
  try:
    return int(raw)
  except ValueError as exc:
    raise ValueError(f"{name} must be an integer, got {raw!r}.") from exc


def _parse_float(name: str, default: str) -> float:
  raw = os.getenv(name, default)
  try:
    return float(raw)
  except ValueError as exc:
    raise ValueError(f"{name} must be a number, got {raw!r}.") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process, after any local .env file."""

  apply_env_file()
  environment = os.getenv("LEARNY_ENV", "development").lower()

  # Toggle verbose diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("LEARNY_DEBUG"))

  log_dir = (os.getenv("LEARNY_LOG_DIR") or "./logs").strip()

  log_max_bytes = _parse_int("LEARNY_LOG_MAX_BYTES", "5242880")  # 5MB default
  if log_max_bytes <= 0:
    raise ValueError("LEARNY_LOG_MAX_BYTES must be a positive integer.")

  log_backup_count = _parse_int("LEARNY_LOG_BACKUP_COUNT", "10")
  if log_backup_count < 0:
    raise ValueError("LEARNY_LOG_BACKUP_COUNT must be zero or a positive integer.")

  llm_provider = (os.getenv("LEARNY_LLM_PROVIDER") or "openrouter").strip().lower()
  if llm_provider not in SUPPORTED_PROVIDERS:
    raise ValueError(f"LEARNY_LLM_PROVIDER must be one of {', '.join(SUPPORTED_PROVIDERS)}.")

  # Cap in-flight generation calls so large batches queue instead of flooding the provider.
  max_concurrent_units = _parse_int("LEARNY_MAX_CONCURRENT_UNITS", "8")
  if max_concurrent_units < 1 or max_concurrent_units > MAX_CONCURRENCY_CEILING:
    raise ValueError(f"LEARNY_MAX_CONCURRENT_UNITS must be between 1 and {MAX_CONCURRENCY_CEILING}.")

  unit_timeout_seconds = _parse_float("LEARNY_UNIT_TIMEOUT_SECONDS", "90")
  if unit_timeout_seconds <= 0:
    raise ValueError("LEARNY_UNIT_TIMEOUT_SECONDS must be positive.")

  max_completion_tokens = _parse_int("LEARNY_MAX_COMPLETION_TOKENS", "2048")
  if max_completion_tokens <= 0:
    raise ValueError("LEARNY_MAX_COMPLETION_TOKENS must be a positive integer.")

  backfill_retry_budget = _parse_int("LEARNY_BACKFILL_RETRY_BUDGET", "1")
  if backfill_retry_budget < 0:
    raise ValueError("LEARNY_BACKFILL_RETRY_BUDGET must be zero or a positive integer.")

  follow_up_batch_size = _parse_int("LEARNY_FOLLOW_UP_BATCH_SIZE", "3")
  if follow_up_batch_size not in (2, 3):
    raise ValueError("LEARNY_FOLLOW_UP_BATCH_SIZE must be 2 or 3.")

  more_ideas_batch_size = _parse_int("LEARNY_MORE_IDEAS_BATCH_SIZE", "3")
  if more_ideas_batch_size < 1:
    raise ValueError("LEARNY_MORE_IDEAS_BATCH_SIZE must be a positive integer.")

  max_topic_length = _parse_int("LEARNY_MAX_TOPIC_LENGTH", "200")
  if max_topic_length <= 0:
    raise ValueError("LEARNY_MAX_TOPIC_LENGTH must be a positive integer.")

  return Settings(
    environment=environment,
    debug=debug,
    log_dir=log_dir,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    llm_provider=llm_provider,
    llm_model=_optional_str(os.getenv("LEARNY_LLM_MODEL")),
    max_concurrent_units=max_concurrent_units,
    unit_timeout_seconds=unit_timeout_seconds,
    max_completion_tokens=max_completion_tokens,
    backfill_retry_budget=backfill_retry_budget,
    follow_up_batch_size=follow_up_batch_size,
    more_ideas_batch_size=more_ideas_batch_size,
    max_topic_length=max_topic_length,
  )
