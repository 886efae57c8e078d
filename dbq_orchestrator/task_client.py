"""
Remote task client for the document store.
Handles delete-by-query submission, task status polling and task cancellation.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from .classifier import classify
from .config import RunConfig
from .errors import CancelError, SubmissionError
from .models import PollResult, TaskHandle, TransportError

logger = logging.getLogger(__name__)

# Keep error bodies readable in logs
_MAX_BODY_CHARS = 2000


def _truncate(text: str) -> str:
    if len(text) > _MAX_BODY_CHARS:
        return text[:_MAX_BODY_CHARS] + "...(truncated)"
    return text


class RemoteTaskClient:
    """Thin wrapper around the three task endpoints the supervisor needs."""

    def __init__(self, base_url: str, client: httpx.AsyncClient):
        self.base_url = base_url.rstrip("/")
        self.client = client

    @classmethod
    @asynccontextmanager
    async def create(cls, config: RunConfig) -> AsyncIterator["RemoteTaskClient"]:
        """Open an HTTP client configured from *config* and close it on exit."""
        headers = {"Content-Type": "application/json"}
        async with httpx.AsyncClient(timeout=config.http_timeout, headers=headers) as client:
            yield cls(config.url, client)

    async def submit(
        self,
        query: Dict[str, Any],
        index: str,
        throttle: int,
        batch_size: Optional[int] = None,
    ) -> TaskHandle:
        """Start an asynchronous delete-by-query and return its task handle.

        Raises:
            SubmissionError: the store is unreachable, rejected the request
                or answered without a task id.
        """
        url = f"{self.base_url}/{index}/_delete_by_query"
        params: Dict[str, Any] = {
            "wait_for_completion": "false",
            "conflicts": "proceed",
            "requests_per_second": throttle,
        }
        if batch_size is not None:
            params["scroll_size"] = batch_size

        logger.debug(f"[SUBMIT] POST {url} params={params}")

        try:
            resp = await self.client.post(url, params=params, json={"query": query})
        except httpx.HTTPError as e:
            raise SubmissionError(f"Delete-by-query request to {url} failed: {e}") from e

        if not resp.is_success:
            error_text = _truncate(resp.text)
            logger.error(f"[SUBMIT] Delete-by-query rejected with status {resp.status_code}: {error_text}")
            raise SubmissionError("Delete-by-query rejected", status_code=resp.status_code, body=error_text)

        try:
            data = resp.json()
        except ValueError as e:
            raise SubmissionError(
                f"Delete-by-query returned an undecodable body: {e}",
                status_code=resp.status_code,
                body=_truncate(resp.text),
            ) from e

        task_id = data.get("task") if isinstance(data, dict) else None
        if not task_id:
            raise SubmissionError(
                "Delete-by-query response has no task id",
                status_code=resp.status_code,
                body=_truncate(resp.text),
            )

        return TaskHandle(str(task_id))

    async def poll(self, handle: TaskHandle) -> PollResult:
        """Check the status of *handle* once. Never raises."""
        url = f"{self.base_url}/_tasks/{handle.task_id}"
        try:
            resp = await self.client.get(url)
        except httpx.HTTPError as e:
            return TransportError(cause=f"Unable to get task: {e}")

        if not resp.is_success:
            return TransportError(
                cause=f"Unable to get task: HTTP {resp.status_code}: {_truncate(resp.text)}"
            )

        try:
            payload = resp.json()
        except ValueError as e:
            return TransportError(cause=f"Unable to decode task status: {e}")

        return classify(payload)

    async def cancel(self, handle: TaskHandle) -> Dict[str, Any]:
        """Ask the store to cancel *handle* and return its acknowledgment.

        Raises:
            CancelError: the cancel request failed. Callers treat this as
                best effort and only log it.
        """
        url = f"{self.base_url}/_tasks/{handle.task_id}/_cancel"
        try:
            resp = await self.client.post(url)
        except httpx.HTTPError as e:
            raise CancelError(f"Cancel request for task {handle} failed: {e}") from e

        if not resp.is_success:
            raise CancelError(
                f"Cancel request for task {handle} rejected",
                status_code=resp.status_code,
                body=_truncate(resp.text),
            )

        try:
            ack = resp.json()
        except ValueError:
            ack = {}
        return ack if isinstance(ack, dict) else {"response": ack}
