"""Digest session - the state the UI reads, plus the schedule that updates it."""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional, Sequence

from pydantic import BaseModel

from .aggregator import EMPTY_SOURCES_MESSAGE, FetchFn, aggregate
from .config import Settings
from .models import AggregateResult, Post
from .scheduler import ScheduleHandle, Scheduler
from .sources import parse_source_names

logger = logging.getLogger(__name__)

REFRESH_BUSY_MESSAGE = "A refresh is already running."


class SessionState(BaseModel):
    """Snapshot of what the UI shows."""
    sources: list[str] = []
    items: list[Post] = []
    error: Optional[str] = None
    loading: bool = False
    scheduled: bool = False
    last_updated: Optional[datetime] = None


class DigestSession:
    """
    Owns the current subreddit list, the last merged posts, the last error,
    the loading flag and the schedule handle.

    Usage:
        session = DigestSession(settings)
        session.set_sources("python, rust")   # starts the weekly schedule
        session.refresh()                     # one cycle now
        state = session.snapshot()
        session.close()

    A failed cycle keeps the previously shown posts and sets ``error``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        fetch: Optional[FetchFn] = None,
        on_result: Optional[Callable[[AggregateResult], None]] = None,
        timer_factory=threading.Timer,
    ):
        self.settings = settings or Settings()
        self._fetch = fetch
        self._on_result = on_result
        self._lock = threading.Lock()

        self._sources: list[str] = []
        self._items: list[Post] = []
        self._error: Optional[str] = None
        self._in_flight: list[tuple[str, ...]] = []  # 正在执行的轮次 (各自的列表)
        self._last_updated: Optional[datetime] = None

        self.scheduler = Scheduler(
            self._scheduled_cycle,
            interval=self.settings.interval_seconds,
            on_result=self._scheduled_result,
            timer_factory=timer_factory,
        )

    @property
    def sources(self) -> list[str]:
        return list(self._sources)

    @property
    def loading(self) -> bool:
        return bool(self._in_flight)

    def set_sources(self, raw: str | Sequence[str]) -> list[str]:
        """
        Replace the subreddit list and restart the schedule.

        Args:
            raw: Comma-separated text, or an already split list

        Returns:
            Parsed subreddit names (empty -> validation error, schedule stopped)
        """
        if isinstance(raw, str):
            names = parse_source_names(raw)
        else:
            names = parse_source_names(",".join(raw))

        with self._lock:
            self._sources = names

        if not names:
            self.scheduler.stop()
            with self._lock:
                self._error = EMPTY_SOURCES_MESSAGE
            return names

        self.scheduler.start(names)
        return names

    def reserve_refresh(self, names: Optional[Sequence[str]] = None) -> Optional[list[str]]:
        """
        Mark a cycle for ``names`` (default: the current list) as running.

        Check and mark happen under one lock, so two callers can never both
        start a cycle for the same list.

        Returns:
            The reserved names, or None when a cycle for that list is
            already running
        """
        with self._lock:
            key = tuple(self._sources if names is None else names)
            if key in self._in_flight:
                return None
            self._in_flight.append(key)
            self._error = None
            return list(key)

    def refresh(self, reserved: Optional[list[str]] = None) -> AggregateResult:
        """
        Run one cycle now with the current list.

        Args:
            reserved: Names returned by ``reserve_refresh`` when the caller
                reserved the cycle itself (the API does, to answer 409)

        Returns:
            The cycle result; a busy failure, with session state untouched,
            when a cycle for the same list is already running
        """
        names = reserved if reserved is not None else self.reserve_refresh()
        if names is None:
            logger.warning(f"Refresh for {self.sources} already running, not starting another")
            return AggregateResult.failure(REFRESH_BUSY_MESSAGE)

        result = self._execute(names)
        self._apply_result(result, names)
        return result

    def snapshot(self) -> SessionState:
        with self._lock:
            current = self.scheduler.current
            return SessionState(
                sources=list(self._sources),
                items=list(self._items),
                error=self._error,
                loading=bool(self._in_flight),
                scheduled=current is not None and current.active,
                last_updated=self._last_updated,
            )

    def close(self) -> None:
        """Stop the schedule; a running cycle still completes."""
        self.scheduler.stop()

    def _scheduled_cycle(self, names: list[str]) -> Optional[AggregateResult]:
        if self.reserve_refresh(names) is None:
            logger.warning(f"Cycle for {names} already running, skipping scheduled trigger")
            return None
        return self._execute(names)

    def _scheduled_result(self, result: AggregateResult, handle: ScheduleHandle) -> None:
        self._apply_result(result, list(handle.source_names))

    def _execute(self, names: list[str]) -> AggregateResult:
        """Run a reserved cycle and release the reservation."""
        try:
            return aggregate(names, self._fetch, settings=self.settings)
        finally:
            with self._lock:
                self._in_flight.remove(tuple(names))

    def _apply_result(self, result: AggregateResult, names: list[str]) -> None:
        with self._lock:
            current = list(self._sources)
            stale = names != current
            if not stale:
                if result.ok:
                    self._items = list(result.items)
                    self._error = None
                else:
                    self._error = result.error
                self._last_updated = datetime.now()

        # 列表已更换, 旧列表的结果不能覆盖
        if stale:
            logger.info(f"Dropping result for {names}, subreddits are now {current}")
            return

        if result.ok:
            logger.info(f"Session updated: {len(result.items)} posts")
        else:
            logger.warning(f"Session error: {result.error}")

        if self._on_result is not None:
            self._on_result(result)
