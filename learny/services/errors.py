"""Recoverable workflow errors and invalid-action exceptions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class RetryAction(str, Enum):
  """The action a user can take to recover from a surfaced error."""

  RETRY_INITIAL_BATCH = "retry_initial_batch"
  REQUEST_MORE_IDEAS = "request_more_ideas"
  RETRY_SWAP = "retry_swap"
  ATTEMPT_FINALIZE = "attempt_finalize"
  RESUBMIT_TOPIC = "resubmit_topic"


@dataclass(frozen=True)
class WorkflowError:
  """A recoverable failure surfaced at a decision point, with its retry affordance."""

  message: str
  retry_action: RetryAction


class InvalidTransitionError(RuntimeError):
  """Raised when an action is not allowed in the workflow's current state."""


class WorkflowBusyError(InvalidTransitionError):
  """Raised when an action arrives while a batch is in flight."""
