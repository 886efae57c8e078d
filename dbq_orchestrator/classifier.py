"""
Classification of task status payloads.
Turns the body of a ``GET _tasks/<id>`` response into a PollResult.
"""

import json
import logging
from typing import Any, Dict, List, Mapping

from .models import PollResult, Running, Succeeded, SucceededWithFailures, TaskProgress, TransportError

logger = logging.getLogger(__name__)


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0


def extract_progress(payload: Mapping[str, Any]) -> TaskProgress:
    """Read the progress counters from ``task.status``; missing fields count as 0."""
    task = payload.get("task")
    status = task.get("status") if isinstance(task, Mapping) else None
    if not isinstance(status, Mapping):
        return TaskProgress()
    return TaskProgress(
        total=_as_int(status.get("total")),
        deleted=_as_int(status.get("deleted")),
        batches=_as_int(status.get("batches")),
        version_conflicts=_as_int(status.get("version_conflicts")),
    )


def _collect_failures(payload: Mapping[str, Any], response: Mapping[str, Any]) -> List[Any]:
    failures: List[Any] = []

    reported = response.get("failures")
    if isinstance(reported, list):
        failures.extend(reported)
    elif reported:
        failures.append(reported)

    # A task that blew up as a whole reports an "error" next to "completed"
    error = payload.get("error")
    if error:
        failures.append(error)

    # Cancelled by someone else (operator, node shutdown): the deletion is incomplete
    canceled = response.get("canceled")
    if canceled:
        failures.append({"canceled": canceled})

    return failures


def classify(payload: Any) -> PollResult:
    """Classify a raw task status payload.

    A completed task with no reported failures is a success; a completed
    task with any failure at all (a single shard is enough) must be
    relaunched. Anything without a completion flag is still running.
    """
    if not isinstance(payload, Mapping):
        return TransportError(cause=f"Unexpected task payload of type {type(payload).__name__}")

    completed = payload.get("completed", False)
    if not isinstance(completed, bool):
        return TransportError(cause=f"Unexpected 'completed' value: {completed!r}")

    progress = extract_progress(payload)
    if not completed:
        return Running(progress=progress)

    response = payload.get("response")
    if response is None:
        logger.warning(
            "No 'response' field in completed task response: \n"
            f"{json.dumps(dict(payload), indent=2, default=str)}"
        )
        response = {}
    elif not isinstance(response, Mapping):
        return TransportError(cause=f"Unexpected 'response' value of type {type(response).__name__}")

    deleted = _as_int(response.get("deleted", progress.deleted))
    failures = _collect_failures(payload, response)

    if failures:
        return SucceededWithFailures(failure_details=failures, documents_deleted=deleted)
    return Succeeded(documents_deleted=deleted, progress=progress)


def format_failures(failures: List[Any]) -> str:
    """Pretty-print failure details for the log."""
    return json.dumps(failures, indent=2, default=str)


def summarize(result: PollResult) -> Dict[str, Any]:
    """Short dictionary view of a poll result, used in debug logs."""
    summary: Dict[str, Any] = {"result": type(result).__name__}
    if isinstance(result, (Running, Succeeded)):
        summary.update(result.progress.to_dict())
    if isinstance(result, (Succeeded, SucceededWithFailures)):
        summary["documents_deleted"] = result.documents_deleted
    if isinstance(result, SucceededWithFailures):
        summary["failure_count"] = len(result.failure_details)
    if isinstance(result, TransportError):
        summary["cause"] = result.cause
    return summary
