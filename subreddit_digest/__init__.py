"""SubredditDigest - merged top posts from a list of subreddits."""

from .aggregator import aggregate, merge_outcomes
from .config import Settings, load_settings
from .fetcher import fetch
from .models import AggregateResult, FailureReason, FetchFailure, FetchSuccess, Post
from .scheduler import ScheduleHandle, Scheduler, ScheduleState
from .session import DigestSession, SessionState
from .sources import parse_source_names

__all__ = [
    # Models
    "Post",
    "FailureReason",
    "FetchSuccess",
    "FetchFailure",
    "AggregateResult",
    # Core
    "fetch",
    "aggregate",
    "merge_outcomes",
    "Scheduler",
    "ScheduleHandle",
    "ScheduleState",
    # Session
    "DigestSession",
    "SessionState",
    "parse_source_names",
    # Config
    "Settings",
    "load_settings",
]
