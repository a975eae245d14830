# device_agent/core/cancellation.py
import threading
from concurrent.futures import Future, wait
from typing import Any, Callable

from device_agent.core.errors import CancelledError

POLL_INTERVAL = 0.1


class CancellationToken:
    """
    Abort signal owned by the caller of a run.

    The agent only observes it: at the top of every round, between retry
    attempts, and while waiting on an in-flight call started through `run`.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, where: str = ""):
        if self._event.is_set():
            raise CancelledError(f"cancelled{' during ' + where if where else ''}")

    def wait(self, seconds: float) -> bool:
        """Block up to `seconds`; True if the token was cancelled meanwhile."""
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)

    def sleep(self, seconds: float):
        """Like `wait`, but raises CancelledError instead of returning True."""
        if self.wait(seconds):
            raise CancelledError("cancelled while sleeping")

    def run(self, fn: Callable[..., Any], *args, poll_interval: float = POLL_INTERVAL, **kwargs) -> Any:
        """
        Run `fn` on a daemon worker thread and wait for it, giving up as soon as
        the token is cancelled. An abandoned call finishes in the background and
        its result is discarded.
        """
        self.raise_if_cancelled(getattr(fn, "__name__", "call"))

        future: Future = Future()

        def _target():
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(fn(*args, **kwargs))
            except BaseException as exc:
                future.set_exception(exc)

        worker = threading.Thread(target=_target, name="device-agent-call", daemon=True)
        worker.start()

        while True:
            done, _ = wait([future], timeout=poll_interval)
            if done:
                return future.result()
            if self._event.is_set():
                raise CancelledError(f"cancelled during {getattr(fn, '__name__', 'call')}")
