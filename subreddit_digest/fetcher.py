"""Subreddit top-posts fetcher.

One call = one GET of /r/{name}/top.json for the configured time window.
No retries: a failed request becomes a FetchFailure for that subreddit.
"""

import logging
from urllib.parse import quote

import httpx

from .config import Settings
from .models import FailureReason, FetchFailure, FetchOutcome, FetchSuccess, Post

logger = logging.getLogger(__name__)

TOP_PATH = "/r/{name}/top.json"


def build_url(source_name: str, settings: Settings) -> str:
    """Top-posts endpoint for a subreddit."""
    return settings.base_url.rstrip("/") + TOP_PATH.format(name=quote(source_name, safe=""))


def fetch(
    source_name: str,
    client: httpx.Client | None = None,
    settings: Settings | None = None,
) -> FetchOutcome:
    """
    Fetch the top posts of one subreddit.

    Args:
        source_name: Subreddit name, non-empty
        client: Optional shared client (one connection pool per cycle)
        settings: Window/limit/timeout settings (default: Settings())

    Returns:
        FetchSuccess with at most ``settings.limit`` posts, or FetchFailure
    """
    settings = settings or Settings()
    url = build_url(source_name, settings)
    params = {"t": settings.time_window, "limit": settings.limit}
    headers = {"User-Agent": settings.user_agent}

    # Fetch
    try:
        if client is not None:
            resp = client.get(url, params=params, headers=headers)
        else:
            resp = httpx.get(
                url,
                params=params,
                headers=headers,
                follow_redirects=True,
                timeout=settings.request_timeout,
            )
    except httpx.HTTPError as e:
        logger.warning(f"[r/{source_name}] Fetch error: {e}")
        return FetchFailure(
            source_name=source_name,
            reason=FailureReason.NETWORK,
            detail=f"Failed to fetch posts from r/{source_name}. {type(e).__name__}: {e}",
        )

    if resp.status_code == 404:
        logger.warning(f"[r/{source_name}] HTTP 404")
        return FetchFailure(
            source_name=source_name,
            reason=FailureReason.NOT_FOUND,
            status_code=404,
            detail=f"Failed to fetch posts from r/{source_name}. Status: 404",
        )
    if not resp.is_success:
        logger.warning(f"[r/{source_name}] HTTP {resp.status_code}")
        return FetchFailure(
            source_name=source_name,
            reason=FailureReason.HTTP_STATUS,
            status_code=resp.status_code,
            detail=f"Failed to fetch posts from r/{source_name}. Status: {resp.status_code}",
        )

    # Parse
    try:
        items = parse_listing(resp.json(), source_name)
    except (ValueError, KeyError, TypeError) as e:
        logger.warning(f"[r/{source_name}] Parse error: {e}")
        return FetchFailure(
            source_name=source_name,
            reason=FailureReason.PARSE,
            status_code=resp.status_code,
            detail=f"Failed to parse posts from r/{source_name}.",
        )

    items = items[: settings.limit]
    logger.info(f"[r/{source_name}] {len(items)} posts")
    return FetchSuccess(source_name=source_name, items=items)


def parse_listing(payload: dict, source_name: str) -> list[Post]:
    """
    Parse a reddit listing into posts.

    Expects ``{"data": {"children": [{"data": {...}}]}}``; only
    id/title/ups/num_comments/permalink are read. Any other subreddit
    field in the payload is ignored in favour of ``source_name``.

    Raises:
        KeyError / TypeError / ValueError: payload is not a listing
    """
    children = payload["data"]["children"]
    if not isinstance(children, list):
        raise TypeError(f"children is {type(children).__name__}, expected list")

    posts = []
    for child in children:
        data = child["data"]
        posts.append(Post(
            id=str(data["id"]),
            title=data.get("title") or "",
            score=data.get("ups") or 0,
            comment_count=data.get("num_comments") or 0,
            permalink=data.get("permalink") or "",
            source_name=source_name,
        ))
    return posts
