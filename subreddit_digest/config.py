"""Settings - load from config/digest.yaml.

All tunables are externalized to the config file:
- upstream: base URL, time window, per-source limit, request timeout
- aggregate: worker cap, cycle timeout
- schedule: refresh interval
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
SETTINGS_PATH = CONFIG_DIR / "digest.yaml"

DEFAULT_INTERVAL_DAYS = 7
SECONDS_PER_DAY = 24 * 60 * 60


def _is_int(value) -> bool:
    # bool 是 int 的子类, YAML 的 true/false 不算数字
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return _is_int(value) or isinstance(value, float)


@dataclass
class Settings:
    """Runtime settings for fetch, aggregate and schedule."""
    base_url: str = "https://www.reddit.com"
    time_window: str = "week"
    limit: int = 10
    request_timeout: float = 30.0
    user_agent: str = "python:subreddit-digest:0.1 (top posts aggregator)"

    max_workers: Optional[int] = None       # None = 全并发 (一个源一个线程)
    cycle_timeout: Optional[float] = None   # None = 等待所有源返回

    interval_days: float = DEFAULT_INTERVAL_DAYS
    default_subreddits: list[str] = field(default_factory=list)

    def __post_init__(self):
        for name in ("base_url", "time_window", "user_agent"):
            if not isinstance(getattr(self, name), str):
                raise ValueError(f"{name} must be a string, got {getattr(self, name)!r}")
        if not _is_int(self.limit):
            raise ValueError(f"limit must be an integer, got {self.limit!r}")
        for name in ("request_timeout", "interval_days"):
            if not _is_number(getattr(self, name)):
                raise ValueError(f"{name} must be a number, got {getattr(self, name)!r}")
        if self.max_workers is not None and not _is_int(self.max_workers):
            raise ValueError(f"max_workers must be an integer, got {self.max_workers!r}")
        if self.cycle_timeout is not None and not _is_number(self.cycle_timeout):
            raise ValueError(f"cycle_timeout must be a number, got {self.cycle_timeout!r}")
        # 标量会被 ",".join 拆成单个字符
        if not isinstance(self.default_subreddits, list) or not all(
            isinstance(name, str) for name in self.default_subreddits
        ):
            raise ValueError(
                f"default_subreddits must be a list of strings, got {self.default_subreddits!r}"
            )

        if self.limit < 1:
            raise ValueError(f"limit must be >= 1, got {self.limit}")
        if self.interval_days <= 0:
            raise ValueError(f"interval_days must be > 0, got {self.interval_days}")
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")

    @property
    def interval_seconds(self) -> float:
        return self.interval_days * SECONDS_PER_DAY


def load_settings(path: str | Path | None = None) -> Settings:
    """
    Load settings from YAML.

    Args:
        path: Config file path (default: config/digest.yaml)

    Returns:
        Settings; defaults when the file does not exist

    Raises:
        ValueError: file is not a mapping, has unknown keys or bad values
    """
    path = Path(path) if path else SETTINGS_PATH
    if not path.exists():
        return Settings()

    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping, got {type(data).__name__}")

    known = {f.name for f in fields(Settings)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown settings in {path}: {', '.join(sorted(unknown))}")

    return Settings(**data)
