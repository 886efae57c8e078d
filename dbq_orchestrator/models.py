"""Data models for the delete-by-query supervisor."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class TaskHandle:
    """Identifier of an asynchronous task accepted by the store (``node:id``)."""
    task_id: str

    def __str__(self) -> str:
        return self.task_id


@dataclass(frozen=True)
class TaskProgress:
    """Progress counters reported in a task status payload."""
    total: int = 0
    deleted: int = 0
    batches: int = 0
    version_conflicts: int = 0

    @property
    def percent(self) -> Optional[float]:
        if self.total <= 0:
            return None
        return 100.0 * self.deleted / self.total

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total': self.total,
            'deleted': self.deleted,
            'batches': self.batches,
            'version_conflicts': self.version_conflicts,
        }


class PollResult:
    """Base class for the outcome of a single task status check."""


@dataclass(frozen=True)
class Running(PollResult):
    progress: TaskProgress = field(default_factory=TaskProgress)


@dataclass(frozen=True)
class Succeeded(PollResult):
    documents_deleted: int = 0
    progress: TaskProgress = field(default_factory=TaskProgress)


@dataclass(frozen=True)
class SucceededWithFailures(PollResult):
    """The task completed but reported per-shard or per-batch failures."""
    failure_details: List[Any] = field(default_factory=list)
    documents_deleted: int = 0


@dataclass(frozen=True)
class TransportError(PollResult):
    """The status check itself failed (unreachable store, bad payload, ...)."""
    cause: str = ""


class LoopState(Enum):
    """States of the supervision loop."""
    SUBMITTING = "submitting"
    POLLING = "polling"
    RETRYING = "retrying"
    DONE = "done"
    CANCELLING = "cancelling"
    ABORTED = "aborted"


@dataclass(frozen=True)
class RunOutcome:
    """Terminal result of a supervised run."""

    @property
    def success(self) -> bool:
        return isinstance(self, Completed)


@dataclass(frozen=True)
class Completed(RunOutcome):
    documents_deleted: int = 0
    attempts: int = 1


@dataclass(frozen=True)
class Aborted(RunOutcome):
    reason: str = ""
