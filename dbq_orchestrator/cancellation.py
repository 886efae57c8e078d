"""
Cancellation plumbing between the signal handlers and the supervision loop.

The loop never sleeps unconditionally: every wait goes through
CancellationToken.wait() so a termination signal ends it right away.
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Callable, Dict, Iterable, Optional

logger = logging.getLogger(__name__)

# Conventional exit status for a process ended by SIGINT
FORCED_EXIT_CODE = 130


class CancellationToken:
    """One-shot cancellation flag that can be awaited with a timeout."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancellation requested") -> bool:
        """Request cancellation. Returns False if it was already requested."""
        if self._event.is_set():
            return False
        self.reason = reason
        self._event.set()
        return True

    async def wait(self, timeout: float) -> bool:
        """Wait up to *timeout* seconds; True if cancellation arrived first."""
        if self._event.is_set():
            return True
        if timeout <= 0:
            # Still yield so a pending signal callback gets a chance to run
            await asyncio.sleep(0)
            return self._event.is_set()
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True


def _default_force_exit() -> None:
    sys.stderr.flush()
    os._exit(FORCED_EXIT_CODE)


class SignalWatcher:
    """Install SIGINT/SIGTERM handlers that feed a CancellationToken.

    Use as a context manager from inside the running event loop; the
    previous handlers are restored on exit. The first signal requests
    cancellation, a second one calls *force_exit* so a hung cancel request
    cannot keep the process alive forever.
    """

    def __init__(
        self,
        token: CancellationToken,
        signals: Iterable[int] = (signal.SIGINT, signal.SIGTERM),
        force_exit: Callable[[], None] = _default_force_exit,
    ):
        self.token = token
        self.signals = tuple(signals)
        self.force_exit = force_exit
        self.received = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_handlers: list = []
        self._previous: Dict[int, object] = {}

    def __enter__(self) -> "SignalWatcher":
        self._loop = asyncio.get_running_loop()
        for sig in self.signals:
            try:
                self._loop.add_signal_handler(sig, self._handle, sig)
                self._loop_handlers.append(sig)
            except (NotImplementedError, RuntimeError):
                # Event loop without signal support (e.g. Windows)
                self._install_fallback(sig)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        for sig in self._loop_handlers:
            self._loop.remove_signal_handler(sig)
        self._loop_handlers = []
        for sig, previous in self._previous.items():
            try:
                signal.signal(sig, previous)
            except ValueError:
                pass
        self._previous = {}

    def _install_fallback(self, sig: int) -> None:
        loop = self._loop

        def _handler(signum, _frame):
            loop.call_soon_threadsafe(self._handle, signum)

        try:
            self._previous[sig] = signal.getsignal(sig)
            signal.signal(sig, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            self._previous.pop(sig, None)
            logger.warning(f"Could not install handler for signal {sig}; interrupts will not cancel the task")

    def _handle(self, signum: int) -> None:
        self.received += 1
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)

        if self.token.cancel(f"received {name}"):
            logger.warning(f"[CANCEL] Received {name}, cancelling the running task before exit (send again to force exit)")
            return

        logger.error(f"[CANCEL] Received {name} again while cancelling, forcing exit")
        self.force_exit()
