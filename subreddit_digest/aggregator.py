"""Aggregate top posts from multiple subreddits."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Callable, Optional, Sequence

import httpx

from . import fetcher
from .config import Settings
from .models import AggregateResult, FailureReason, FetchFailure, FetchOutcome, Post

logger = logging.getLogger(__name__)

__all__ = ["aggregate", "merge_outcomes", "FetchFn"]

FetchFn = Callable[[str], FetchOutcome]

EMPTY_SOURCES_MESSAGE = "Please enter at least one subreddit."
GENERIC_ERROR_MESSAGE = "An error occurred while fetching posts. Please try again later."
TIMEOUT_MESSAGE = "Timed out fetching posts. Please try again later."


def aggregate(
    source_names: Sequence[str],
    fetch: Optional[FetchFn] = None,
    *,
    settings: Optional[Settings] = None,
    max_workers: Optional[int] = None,
    timeout: Optional[float] = None,
) -> AggregateResult:
    """
    Fetch every subreddit concurrently and merge the results.

    Args:
        source_names: Subreddit names, in display order
        fetch: Single-source fetch function (default: fetcher.fetch over a
            shared httpx.Client)
        settings: Settings (default: Settings())
        max_workers: Cap on in-flight fetches (default: settings.max_workers,
            None = one worker per subreddit)
        timeout: Seconds to wait for the whole cycle (default:
            settings.cycle_timeout, None = no limit)

    Returns:
        AggregateResult - all posts in subreddit order, or a single error
        if the list is empty or any subreddit failed
    """
    settings = settings or Settings()
    names = [n.strip() for n in source_names if n and n.strip()]
    if not names:
        return AggregateResult.failure(EMPTY_SOURCES_MESSAGE)

    if max_workers is None:
        max_workers = settings.max_workers
    if timeout is None:
        timeout = settings.cycle_timeout

    if fetch is not None:
        return _run_cycle(names, fetch, max_workers, timeout)

    with httpx.Client(follow_redirects=True, timeout=settings.request_timeout) as client:
        return _run_cycle(
            names,
            lambda name: fetcher.fetch(name, client=client, settings=settings),
            max_workers,
            timeout,
        )


def _run_cycle(
    names: list[str],
    fetch: FetchFn,
    max_workers: Optional[int],
    timeout: Optional[float],
) -> AggregateResult:
    workers = _resolve_max_workers(len(names), max_workers)
    outcomes: list[Optional[FetchOutcome]] = [None] * len(names)
    cancelled = threading.Event()

    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fetch")
    try:
        future_map = {
            executor.submit(_fetch_single_source, fetch, name, cancelled): idx
            for idx, name in enumerate(names)
        }
        # 等待全部完成 (不因单个失败提前结束)
        for future in as_completed(future_map, timeout=timeout):
            outcomes[future_map[future]] = future.result()
    except FuturesTimeoutError:
        pending = [names[i] for i, o in enumerate(outcomes) if o is None]
        cancelled.set()
        logger.warning(f"Cycle timed out after {timeout}s, still waiting on: {', '.join(pending)}")
        return AggregateResult.failure(TIMEOUT_MESSAGE)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    return merge_outcomes(outcomes)


def _resolve_max_workers(total_sources: int, configured: Optional[int]) -> int:
    if configured is None:
        configured = total_sources  # 默认全并发
    configured = max(1, configured)
    return min(configured, total_sources)


def _fetch_single_source(
    fetch: FetchFn,
    name: str,
    cancelled: Optional[threading.Event] = None,
) -> FetchOutcome:
    """
    Run one fetch; an unexpected exception becomes a failure for that source.

    Once the cycle has timed out the shared client is closed under the
    fetches still running, so their errors are expected and logged without
    a traceback.
    """
    try:
        return fetch(name)
    except Exception as exc:
        if cancelled is not None and cancelled.is_set():
            logger.info(f"[r/{name}] Fetch abandoned after cycle timeout: {type(exc).__name__}: {exc}")
        else:
            logger.exception(f"[r/{name}] Fetch failed: {exc}")
        return FetchFailure(
            source_name=name,
            reason=FailureReason.NETWORK,
            detail=f"Failed to fetch posts from r/{name}. {type(exc).__name__}: {exc}",
        )


def merge_outcomes(outcomes: Sequence[FetchOutcome]) -> AggregateResult:
    """
    Merge per-subreddit outcomes, all-or-nothing.

    Any failure discards every fetched post. A missing subreddit is named
    in the message; other failures get a generic message.
    """
    failures = [o for o in outcomes if not o.ok]
    if failures:
        names = ", ".join(f"r/{f.source_name} ({f.message})" for f in failures)
        logger.warning(f"{len(failures)}/{len(outcomes)} subreddits failed: {names}")

        not_found = next((f for f in failures if f.reason == FailureReason.NOT_FOUND), None)
        if not_found is not None:
            return AggregateResult.failure(
                f"Subreddit not found: Failed to fetch posts from r/{not_found.source_name}. Status: 404",
                failures,
            )
        return AggregateResult.failure(GENERIC_ERROR_MESSAGE, failures)

    items: list[Post] = []
    for outcome in outcomes:
        items.extend(outcome.items)
    logger.info(f"Aggregated {len(items)} posts from {len(outcomes)} subreddits")
    return AggregateResult.success(items)
