"""Periodic refresh of the aggregation cycle."""

import logging
import threading
from enum import Enum
from typing import Callable, Optional, Sequence

from .aggregator import GENERIC_ERROR_MESSAGE
from .config import DEFAULT_INTERVAL_DAYS, SECONDS_PER_DAY
from .models import AggregateResult

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = DEFAULT_INTERVAL_DAYS * SECONDS_PER_DAY

RunCycle = Callable[[list[str]], Optional[AggregateResult]]
ResultCallback = Callable[[AggregateResult, "ScheduleHandle"], None]


class ScheduleState(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"


class ScheduleHandle:
    """
    One running schedule for a fixed subreddit list.

    The list never changes after creation; to switch subreddits, stop this
    handle and start a new one.
    """

    def __init__(self, source_names: Sequence[str], interval: float):
        self.source_names = tuple(source_names)
        self.interval = interval
        self.state = ScheduleState.IDLE
        self.cycles = 0  # 已执行的轮次
        self._timer = None
        self._in_progress = False
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self.state == ScheduleState.SCHEDULED

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    def __repr__(self) -> str:
        return f"ScheduleHandle({list(self.source_names)!r}, state={self.state.value}, cycles={self.cycles})"


class Scheduler:
    """
    Run a cycle immediately on start, then every ``interval`` seconds.

    Usage:
        scheduler = Scheduler(aggregate, on_result=print)
        handle = scheduler.start(["python", "rust"])
        ...
        scheduler.stop(handle)

    Triggers that arrive while the previous cycle is still running are
    skipped. Stopping cancels future triggers only; a running cycle
    finishes and still reports its result.

    ``on_result`` receives the result together with the handle that
    produced it, so a caller can tell results of a superseded handle apart.
    A ``run_cycle`` returning None declines the trigger and nothing is
    reported.
    """

    def __init__(
        self,
        run_cycle: RunCycle,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        on_result: Optional[ResultCallback] = None,
        timer_factory=threading.Timer,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")
        self.interval = interval
        self._run_cycle = run_cycle
        self._on_result = on_result
        self._timer_factory = timer_factory
        self._current: Optional[ScheduleHandle] = None
        self._lock = threading.Lock()

    @property
    def current(self) -> Optional[ScheduleHandle]:
        return self._current

    def start(self, source_names: Sequence[str]) -> ScheduleHandle:
        """Start a schedule, superseding any running one."""
        with self._lock:
            previous = self._current
        if previous is not None:
            self.stop(previous)

        handle = ScheduleHandle(source_names, self.interval)
        if not handle.source_names:
            logger.info("No subreddits, schedule not started")
            return handle

        handle.state = ScheduleState.SCHEDULED
        with self._lock:
            self._current = handle
        logger.info(f"Schedule started for {list(handle.source_names)} every {self.interval:g}s")
        self._arm(handle, 0)
        return handle

    def stop(self, handle: Optional[ScheduleHandle] = None) -> None:
        """Cancel pending triggers of ``handle`` (default: the current one)."""
        if handle is None:
            handle = self._current
        if handle is None:
            return

        with handle._lock:
            was_active = handle.active
            handle.state = ScheduleState.IDLE
            timer, handle._timer = handle._timer, None
        if timer is not None:
            timer.cancel()

        with self._lock:
            if self._current is handle:
                self._current = None
        if was_active:
            logger.info(f"Schedule stopped for {list(handle.source_names)} after {handle.cycles} cycles")

    def _arm(self, handle: ScheduleHandle, delay: float) -> None:
        timer = self._timer_factory(delay, self._tick, args=(handle,))
        timer.daemon = True
        with handle._lock:
            if not handle.active:
                return
            handle._timer = timer
        timer.start()

    def _tick(self, handle: ScheduleHandle) -> None:
        with handle._lock:
            if not handle.active:
                return
            skip = handle._in_progress
            if not skip:
                handle._in_progress = True
                handle.cycles += 1

        # 固定频率: 先排下一次, 再跑本轮
        self._arm(handle, handle.interval)

        if skip:
            logger.warning(f"Previous cycle for {list(handle.source_names)} still running, skipping trigger")
            return

        try:
            result = self._run_cycle(list(handle.source_names))
        except Exception as e:
            logger.exception(f"Cycle failed: {e}")
            result = AggregateResult.failure(GENERIC_ERROR_MESSAGE)
        finally:
            with handle._lock:
                handle._in_progress = False

        # None: run_cycle 自己放弃了本轮
        if result is not None and self._on_result is not None:
            self._on_result(result, handle)
