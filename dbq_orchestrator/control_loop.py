"""
Supervision loop for the delete-by-query orchestrator.
Submits the task, polls it until it reaches a terminal state, relaunches it
after a cooldown when it fails and cancels it when the run is interrupted.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional

from .cancellation import CancellationToken
from .classifier import format_failures, summarize
from .config import RunConfig
from .errors import CancelError, SubmissionError
from .logging_config import set_current_attempt, set_current_task
from .models import (
    Aborted,
    Completed,
    LoopState,
    Running,
    RunOutcome,
    Succeeded,
    SucceededWithFailures,
    TaskHandle,
    TaskProgress,
    TransportError,
)
from .task_client import RemoteTaskClient

logger = logging.getLogger(__name__)

TERMINAL_STATES = (LoopState.DONE, LoopState.ABORTED)


class DeleteByQuerySupervisor:
    """Relaunch a delete-by-query until it completes without failures."""

    def __init__(self, config: RunConfig, client: RemoteTaskClient, token: CancellationToken):
        self.config = config
        self.client = client
        self.token = token

        self.state = LoopState.SUBMITTING
        self.handle: Optional[TaskHandle] = None

        # Counters for the final summary
        self.attempts = 0
        self.retries = 0
        self.documents_deleted = 0

        self.last_failure: Optional[str] = None
        self.abort_reason: Optional[str] = None
        self._last_progress: Optional[TaskProgress] = None

        self._handlers: Dict[LoopState, Callable[[], Awaitable[LoopState]]] = {
            LoopState.SUBMITTING: self._submit,
            LoopState.POLLING: self._poll,
            LoopState.RETRYING: self._retry,
            LoopState.CANCELLING: self._cancel,
        }

    async def run(self) -> RunOutcome:
        """Drive the state machine until it reaches DONE or ABORTED."""
        started = time.monotonic()
        logger.info(
            f"Starting delete-by-query on index '{self.config.index}' at {self.config.url} "
            f"({self.config.requests_per_second} req/s, pause on errors {self.config.pause_on_errors:g}s)"
        )

        while self.state not in TERMINAL_STATES:
            previous = self.state
            self.state = await self._handlers[previous]()
            if self.state is not previous:
                logger.debug(f"State transition: {previous.value} -> {self.state.value}")

        set_current_task(None)
        set_current_attempt(None)
        duration = time.monotonic() - started

        if self.state is LoopState.DONE:
            logger.info(
                f"Task completed without failures: {self.documents_deleted} documents deleted "
                f"in {duration:.1f}s over {self.attempts} attempt(s)"
            )
            return Completed(documents_deleted=self.documents_deleted, attempts=self.attempts)

        reason = self.abort_reason or "aborted"
        logger.warning(f"Run aborted after {duration:.1f}s: {reason}")
        return Aborted(reason=reason)

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------

    async def _submit(self) -> LoopState:
        if self.token.cancelled:
            # Nothing outstanding remotely
            self.abort_reason = self.token.reason
            return LoopState.ABORTED

        self.attempts += 1
        set_current_attempt(self.attempts)
        config = self.config

        try:
            handle = await self.client.submit(
                config.query, config.index, config.requests_per_second, config.scroll_size
            )
        except SubmissionError as e:
            self.last_failure = f"Submission failed: {e}"
            return LoopState.RETRYING

        self.handle = handle
        self._last_progress = None
        set_current_task(handle.task_id)
        logger.info(f"[SUBMIT] Task ID: {handle} (attempt {self.attempts})")

        if self.token.cancelled:
            # Signal arrived while the submission was in flight
            return LoopState.CANCELLING
        return LoopState.POLLING

    async def _poll(self) -> LoopState:
        delay = self.config.initial_poll_delay

        while True:
            if await self.token.wait(delay):
                return LoopState.CANCELLING
            delay = self.config.poll_interval

            result = await self.client.poll(self.handle)
            logger.debug(f"[POLL] {summarize(result)}")

            if isinstance(result, Running):
                self._report_progress(result.progress)
                continue

            if isinstance(result, Succeeded):
                self.documents_deleted += result.documents_deleted
                self._release_handle()
                return LoopState.DONE

            if isinstance(result, SucceededWithFailures):
                self.documents_deleted += result.documents_deleted
                logger.error(
                    f"[POLL] Failure detected in task {self.handle}: \n"
                    f"{format_failures(result.failure_details)}"
                )
                self.last_failure = f"Task completed with {len(result.failure_details)} failure(s)"
                self._release_handle()
                return LoopState.RETRYING

            if isinstance(result, TransportError):
                self.last_failure = f"Polling task {self.handle} failed: {result.cause}"
                # The task may still be running remotely
                logger.warning(f"[POLL] Status of task {self.handle} unknown, abandoning it")
                await self._send_cancel(self.handle)
                self._release_handle()
                return LoopState.RETRYING

            raise TypeError(f"Unexpected poll result: {result!r}")

    async def _retry(self) -> LoopState:
        if self.token.cancelled:
            self.abort_reason = self.token.reason
            logger.info(f"[RETRY] {self.last_failure}. Not retrying, run was cancelled")
            return LoopState.ABORTED

        self.retries += 1
        cooldown = self.config.pause_on_errors
        logger.warning(f"[RETRY] {self.last_failure}. Will retry in {cooldown:g}s (retry #{self.retries})")

        if await self.token.wait(cooldown):
            self.abort_reason = self.token.reason
            logger.info("[RETRY] Cancelled during cooldown, no task to cancel")
            return LoopState.ABORTED
        return LoopState.SUBMITTING

    async def _cancel(self) -> LoopState:
        self.abort_reason = self.token.reason
        handle = self.handle
        if handle is None:
            return LoopState.ABORTED

        await self._send_cancel(handle)
        self._release_handle()
        return LoopState.ABORTED

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _send_cancel(self, handle: TaskHandle) -> None:
        """Best-effort cancel bounded by ``cancel_timeout``; failures are logged."""
        logger.warning(f"[CANCEL] Cancelling task {handle}...")
        try:
            ack = await asyncio.wait_for(self.client.cancel(handle), self.config.cancel_timeout)
        except CancelError as e:
            logger.error(f"[CANCEL] Could not cancel task {handle}: {e}")
            return
        except asyncio.TimeoutError:
            logger.error(
                f"[CANCEL] No acknowledgment for task {handle} after {self.config.cancel_timeout:g}s, "
                "it may still be running"
            )
            return

        logger.info(f"[CANCEL] Task {handle} cancelled")
        logger.debug(f"[CANCEL] Acknowledgment: {ack}")

    def _release_handle(self) -> None:
        self.handle = None
        set_current_task(None)

    def _report_progress(self, progress: TaskProgress) -> None:
        if progress == self._last_progress:
            return
        self._last_progress = progress

        percent = progress.percent
        if percent is None:
            logger.debug("[POLL] Waiting for task...")
            return
        logger.debug(
            f"[POLL] Deleting... {progress.deleted}/{progress.total} ({percent:.1f}%), "
            f"{progress.batches} batches, {progress.version_conflicts} version conflicts"
        )
