"""
Background metering tasks.

Every metered call hands its metering work to a daemon thread so the caller
never waits on the metering backend. ``PendingTasks`` counts the tasks in
flight (wait-group semantics) so the host can drain them explicitly with
``flush()`` before exiting. Draining is never implicit.
"""

import logging
import threading
from typing import Any, Callable

logger = logging.getLogger("revenium")


class PendingTasks:
    """Spawns background tasks and tracks the ones still running."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._pending = 0
        self._succeeded = 0
        self._failed = 0

    def spawn(self, fn: Callable[..., Any], *args: Any, name: str = "revenium-metering") -> None:
        """
        Run ``fn(*args)`` on a daemon thread.

        Exceptions raised by ``fn`` are logged and counted, never propagated.
        """
        with self._cond:
            self._pending += 1

        thread = threading.Thread(target=self._run, args=(fn, args), name=name, daemon=True)
        try:
            thread.start()
        except RuntimeError as e:
            # Raised while the interpreter is shutting down.
            logger.error(f"[revenium] Could not start metering task: {e}")
            self._finish(succeeded=False)

    def _run(self, fn: Callable[..., Any], args: tuple[Any, ...]) -> None:
        succeeded = False
        try:
            fn(*args)
            succeeded = True
        except Exception as e:
            logger.error(f"[revenium] Failed to send metering data: {e}")
        finally:
            self._finish(succeeded)

    def _finish(self, succeeded: bool) -> None:
        with self._cond:
            self._pending -= 1
            if succeeded:
                self._succeeded += 1
            else:
                self._failed += 1
            if self._pending == 0:
                self._cond.notify_all()

    def wait(self, timeout: float | None = None) -> bool:
        """
        Block until no task is in flight.

        Returns:
            True if all tasks finished, False if ``timeout`` expired first
        """
        with self._cond:
            return self._cond.wait_for(lambda: self._pending == 0, timeout=timeout)

    @property
    def pending(self) -> int:
        with self._cond:
            return self._pending

    def stats(self) -> dict[str, int]:
        """Counts of pending, succeeded and failed tasks."""
        with self._cond:
            return {
                "pending": self._pending,
                "succeeded": self._succeeded,
                "failed": self._failed,
            }
