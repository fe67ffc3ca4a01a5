"""Shared fixtures: fake timers and canned posts."""

import sys
import threading
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from subreddit_digest.models import FailureReason, FetchFailure, FetchSuccess, Post


class FakeTimer:
    """Stand-in for threading.Timer driven by FakeClock."""

    def __init__(self, clock, interval, function, args=None):
        self.clock = clock
        self.deadline = clock.now + interval
        self.function = function
        self.args = args or ()
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True
        self.clock.timers.append(self)

    def cancel(self):
        self.cancelled = True


class FakeClock:
    """Simulated time: ``advance`` fires due timers in deadline order."""

    def __init__(self):
        self.now = 0.0
        self.timers: list[FakeTimer] = []

    def timer(self, interval, function, args=None):
        return FakeTimer(self, interval, function, args)

    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float):
        target = self.now + seconds
        while True:
            due = [t for t in self.pending() if t.deadline <= target]
            if not due:
                break
            t = min(due, key=lambda x: x.deadline)
            self.now = max(self.now, t.deadline)
            t.fired = True
            t.function(*t.args)
        self.now = max(self.now, target)


class FakeFetch:
    """
    Canned per-subreddit outcomes; records every call.

    ``posts`` maps name -> number of posts, ``failures`` maps name -> reason.
    """

    def __init__(self, posts=None, failures=None):
        self.posts = posts or {}
        self.failures = failures or {}
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def __call__(self, name: str):
        with self._lock:
            self.calls.append(name)
        if name in self.failures:
            reason = self.failures[name]
            return FetchFailure(
                source_name=name,
                reason=reason,
                status_code=404 if reason == FailureReason.NOT_FOUND else None,
            )
        count = self.posts.get(name, 0)
        return FetchSuccess(
            source_name=name,
            items=[make_post(f"{name}{i}", name, score=100 - i) for i in range(count)],
        )


def make_post(post_id: str, source_name: str, score: int = 1) -> Post:
    return Post(
        id=post_id,
        title=f"Post {post_id}",
        score=score,
        comment_count=3,
        permalink=f"/r/{source_name}/comments/{post_id}/post/",
        source_name=source_name,
    )


def listing(count: int, subreddit: str = "Upstream") -> dict:
    """Reddit listing JSON with ``count`` children."""
    return {
        "kind": "Listing",
        "data": {
            "children": [
                {
                    "kind": "t3",
                    "data": {
                        "id": f"id{i}",
                        "title": f"Title {i}",
                        "ups": 1000 - i,
                        "num_comments": i,
                        "permalink": f"/r/{subreddit}/comments/id{i}/title_{i}/",
                        "subreddit": subreddit,
                        "author": "someone",
                    },
                }
                for i in range(count)
            ]
        },
    }


@pytest.fixture
def clock():
    return FakeClock()
