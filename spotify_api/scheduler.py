import logging
import time
from typing import Callable, Optional

import schedule

logger = logging.getLogger(__name__)

MIN_DELAY_SECONDS = 0.001


class CancellationHandle:
    """Returned by ``Scheduler.after``; lets a pending task be withdrawn."""

    def __init__(self, on_cancel: Optional[Callable[[], None]] = None):
        self._on_cancel = on_cancel
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()


class Scheduler:
    """Runs a task once, ``ms`` milliseconds from now."""

    def after(self, ms: float, task: Callable[[], object]) -> CancellationHandle:
        raise NotImplementedError


class JobScheduler(Scheduler):
    """Single-threaded scheduler on top of the ``schedule`` library.

    Every task becomes a one-shot job. Nothing runs until ``run_pending`` or
    ``run_forever`` is called on the owning thread.
    """

    def __init__(self, *, sleep: Callable[[float], None] = time.sleep, max_sleep: float = 1.0):
        self._scheduler = schedule.Scheduler()
        self._sleep = sleep
        self._max_sleep = float(max_sleep)

    @property
    def pending_count(self) -> int:
        return len(self._scheduler.get_jobs())

    def after(self, ms: float, task: Callable[[], object]) -> CancellationHandle:
        # schedule cannot advance a zero-length interval; 0 ms runs on the next run_pending.
        delay_seconds = max(MIN_DELAY_SECONDS, float(ms) / 1000.0)

        def run_once():
            try:
                task()
            except Exception:
                # A failed task ends its own chain; the loop keeps going.
                logger.exception("Scheduled task %s failed", getattr(task, "__name__", task))
            return schedule.CancelJob

        job = self._scheduler.every(delay_seconds).seconds.do(run_once)
        logger.debug("Scheduled %s in %.0f ms", getattr(task, "__name__", task), float(ms))
        return CancellationHandle(lambda: self._scheduler.cancel_job(job))

    def run_pending(self) -> None:
        self._scheduler.run_pending()

    def run_forever(self, *, stop_when_idle: bool = True) -> None:
        """Drive the job loop until Ctrl+C, or until no job is left when ``stop_when_idle``."""

        try:
            while True:
                self._scheduler.run_pending()
                if stop_when_idle and not self._scheduler.get_jobs():
                    break
                idle = self._scheduler.idle_seconds
                wait = self._max_sleep if idle is None else min(self._max_sleep, max(0.0, idle))
                self._sleep(wait)
        except KeyboardInterrupt:
            logger.info("Scheduler stopped")

    def clear(self) -> None:
        self._scheduler.clear()
