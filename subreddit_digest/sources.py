"""Parse the comma-separated subreddit input."""

import re

_PREFIX = re.compile(r"^/?r/", re.IGNORECASE)


def parse_source_names(raw: str | None) -> list[str]:
    """
    Split raw text into subreddit names.

    "reactjs, r/python,,  webdev " -> ["reactjs", "python", "webdev"]

    Order and duplicates are kept; blank entries are dropped.
    """
    if not raw:
        return []
    names = []
    for part in raw.split(","):
        name = _PREFIX.sub("", part.strip()).strip()
        if name:
            names.append(name)
    return names
