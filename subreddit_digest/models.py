"""Data models for SubredditDigest."""

from enum import Enum

from pydantic import BaseModel, Field, computed_field

REDDIT_WEB = "https://reddit.com"


class FailureReason(str, Enum):
    """Why a single source fetch failed."""
    NOT_FOUND = "not_found"      # 404, subreddit 不存在
    HTTP_STATUS = "http_status"  # 其他非 2xx
    NETWORK = "network"          # 连接/超时
    PARSE = "parse"              # 响应体无法解析


class Post(BaseModel):
    """
    One top-ranked post of a subreddit.

    ``source_name`` is always the name the post was requested under,
    never a value read from the upstream payload.
    """

    id: str
    title: str = ""
    score: int = 0              # ups
    comment_count: int = Field(default=0, ge=0)  # num_comments
    permalink: str = ""         # 相对路径 /r/.../comments/...
    source_name: str

    @computed_field
    @property
    def url(self) -> str:
        """Absolute link to the post."""
        return f"{REDDIT_WEB}{self.permalink}"


class FetchSuccess(BaseModel):
    """Posts fetched from one source, in upstream ranking order."""
    source_name: str
    items: list[Post] = []

    @property
    def ok(self) -> bool:
        return True


class FetchFailure(BaseModel):
    """A failed fetch for one source."""
    source_name: str
    reason: FailureReason
    status_code: int | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return False

    @property
    def message(self) -> str:
        if self.reason == FailureReason.NOT_FOUND:
            return "not found"
        if self.reason == FailureReason.HTTP_STATUS:
            return f"http status {self.status_code}"
        if self.reason == FailureReason.NETWORK:
            return "network error"
        return "parse error"


FetchOutcome = FetchSuccess | FetchFailure


class AggregateResult(BaseModel):
    """
    Outcome of one aggregation cycle.

    Either ``ok`` with the merged items, or not ``ok`` with a single
    human-readable ``error``. ``failures`` lists the per-source failures
    behind an aggregate error (empty for validation errors).
    """

    ok: bool
    items: list[Post] = []
    error: str | None = None
    failures: list[FetchFailure] = []

    @classmethod
    def success(cls, items: list[Post]) -> "AggregateResult":
        return cls(ok=True, items=items)

    @classmethod
    def failure(cls, error: str, failures: list[FetchFailure] | None = None) -> "AggregateResult":
        return cls(ok=False, error=error, failures=failures or [])
