"""Shared fixtures for the dbq_orchestrator test suite."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from dbq_orchestrator.cancellation import CancellationToken
from dbq_orchestrator.config import RunConfig
from dbq_orchestrator.models import PollResult, TaskHandle
import pytest

# ---------------------------------------------------------------------------
# Factory functions (plain functions, importable from conftest)
# ---------------------------------------------------------------------------

DEFAULT_QUERY: dict[str, Any] = {"range": {"lastIndexingDate": {"lte": "now-3y"}}}


def make_config(**overrides: Any) -> RunConfig:
    """Build a valid RunConfig with distinct, recognisable wait durations.

    Args:
        **overrides: Field values to override.

    Returns:
        A fully constructed RunConfig instance.
    """
    defaults: dict[str, Any] = {
        "query": DEFAULT_QUERY,
        "index": "logs-*",
        "url": "http://es.test:9200",
        "requests_per_second": 100,
        "pause_on_errors": 300.0,
        "poll_interval": 10.0,
        "initial_poll_delay": 2.0,
        "cancel_timeout": 5.0,
    }
    defaults.update(overrides)
    return RunConfig(**defaults)


def running_payload(total: int = 1000, deleted: int = 250) -> dict[str, Any]:
    """Task status body of a delete-by-query still in progress."""
    return {
        "completed": False,
        "task": {
            "node": "r8ojEXAMPLE",
            "id": 4242,
            "type": "transport",
            "action": "indices:data/write/delete/byquery",
            "status": {
                "total": total,
                "updated": 0,
                "created": 0,
                "deleted": deleted,
                "batches": 3,
                "version_conflicts": 1,
                "noops": 0,
                "retries": {"bulk": 0, "search": 0},
                "throttled_millis": 0,
                "requests_per_second": 100.0,
                "throttled_until_millis": 0,
            },
            "cancellable": True,
        },
    }


def completed_payload(deleted: int = 1000, failures: list[Any] | None = None) -> dict[str, Any]:
    """Task status body of a finished delete-by-query."""
    payload = running_payload(total=deleted, deleted=deleted)
    payload["completed"] = True
    payload["response"] = {
        "took": 1234,
        "timed_out": False,
        "total": deleted,
        "deleted": deleted,
        "batches": 10,
        "version_conflicts": 0,
        "noops": 0,
        "retries": {"bulk": 0, "search": 0},
        "throttled": "0s",
        "throttled_until": "0s",
        "failures": failures if failures is not None else [],
    }
    return payload


SHARD_FAILURE: dict[str, Any] = {
    "index": "logs-2021.01",
    "shard": 3,
    "node": "r8ojEXAMPLE",
    "reason": {"type": "es_rejected_execution_exception", "reason": "rejected execution"},
}


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class ScriptedTaskClient:
    """In-memory stand-in for RemoteTaskClient.

    ``submits`` items are TaskHandles or exceptions to raise; once exhausted
    fresh handles are generated. ``polls`` items are PollResults or
    zero-argument callables returning one (used to inject side effects such
    as a cancellation). ``default_poll`` is returned once ``polls`` runs out.
    """

    def __init__(
        self,
        submits: list[Any] | None = None,
        polls: list[PollResult | Callable[[], PollResult]] | None = None,
        default_poll: PollResult | None = None,
        cancel_error: Exception | None = None,
        cancel_delay: float = 0.0,
        on_submit: Callable[[], None] | None = None,
    ) -> None:
        self.submits = list(submits or [])
        self.polls = list(polls or [])
        self.default_poll = default_poll
        self.cancel_error = cancel_error
        self.cancel_delay = cancel_delay
        self.on_submit = on_submit

        self.submit_calls: list[tuple[Any, ...]] = []
        self.poll_calls: list[TaskHandle] = []
        self.cancel_calls: list[TaskHandle] = []

    async def submit(self, query, index, throttle, batch_size=None) -> TaskHandle:
        self.submit_calls.append((query, index, throttle, batch_size))
        if self.on_submit is not None:
            self.on_submit()
        if self.submits:
            item = self.submits.pop(0)
        else:
            item = TaskHandle(f"node:{len(self.submit_calls)}")
        if isinstance(item, Exception):
            raise item
        return item

    async def poll(self, handle: TaskHandle) -> PollResult:
        self.poll_calls.append(handle)
        if self.polls:
            item = self.polls.pop(0)
            return item() if callable(item) else item
        if self.default_poll is not None:
            return self.default_poll
        raise AssertionError(f"unexpected poll of {handle}")

    async def cancel(self, handle: TaskHandle) -> dict[str, Any]:
        self.cancel_calls.append(handle)
        if self.cancel_delay:
            await asyncio.sleep(self.cancel_delay)
        if self.cancel_error is not None:
            raise self.cancel_error
        return {"nodes": {}, "node_failures": []}


class RecordingToken(CancellationToken):
    """CancellationToken that records every wait and never actually sleeps."""

    def __init__(self) -> None:
        super().__init__()
        self.waits: list[float] = []

    async def wait(self, timeout: float) -> bool:
        self.waits.append(timeout)
        return await super().wait(0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def restore_root_logging():
    """Restore root logger handlers and level after a test reconfigures them."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
