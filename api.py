"""SubredditDigest API - backend for the digest page."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from subreddit_digest import DigestSession, SessionState, load_settings
from subreddit_digest.aggregator import EMPTY_SOURCES_MESSAGE
from subreddit_digest.session import REFRESH_BUSY_MESSAGE

# ─────────────────────────────────────────────────────────────
# 日志配置
# ─────────────────────────────────────────────────────────────

def setup_api_logging():
    """Configure logging for API process."""
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    log_file = log_dir / "api.log"

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)
    root_logger.addHandler(file_handler)

    return log_file


_log_file = setup_api_logging()
logger = logging.getLogger(__name__)

# 全局会话 (单进程适用)
session: Optional[DigestSession] = None


def get_session() -> DigestSession:
    """Get global session, created on first use."""
    global session
    if session is None:
        session = DigestSession(load_settings())
        defaults = session.settings.default_subreddits
        if defaults:
            session.set_sources(defaults)
    return session


@asynccontextmanager
async def lifespan(_app: FastAPI):
    get_session()
    yield
    if session is not None:
        session.close()
        logger.info("Schedule stopped on shutdown")


app = FastAPI(
    title="SubredditDigest API",
    description="Top posts of the week from a list of subreddits",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─────────────────────────────────────────────────────────────
# 请求模型
# ─────────────────────────────────────────────────────────────

class SubredditsRequest(BaseModel):
    """Raw input field value, e.g. "reactjs, javascript, webdev"."""
    subreddits: str


class RefreshResponse(BaseModel):
    status: str
    sources: list[str]


# ─────────────────────────────────────────────────────────────
# Endpoints
# ─────────────────────────────────────────────────────────────

@app.get("/api/health")
async def health_check():
    """Health check."""
    return {"status": "ok", "time": datetime.now().isoformat()}


@app.get("/api/posts", response_model=SessionState)
async def get_posts():
    """Current posts, error and loading flag."""
    return get_session().snapshot()


@app.put("/api/subreddits", response_model=SessionState)
async def update_subreddits(request: SubredditsRequest):
    """Replace the subreddit list and restart the weekly schedule."""
    current = get_session()
    names = current.set_sources(request.subreddits)
    if not names:
        raise HTTPException(status_code=400, detail=current.snapshot().error)
    logger.info(f"Subreddits set: {names}")
    return current.snapshot()


@app.post("/api/refresh", response_model=RefreshResponse, status_code=202)
async def refresh(background_tasks: BackgroundTasks):
    """Run one cycle now in the background."""
    current = get_session()
    if not current.sources:
        raise HTTPException(status_code=400, detail=EMPTY_SOURCES_MESSAGE)
    # 占位在返回前完成, 后台任务尚未启动时的重复请求同样 409
    names = current.reserve_refresh()
    if names is None:
        raise HTTPException(status_code=409, detail=REFRESH_BUSY_MESSAGE)
    background_tasks.add_task(current.refresh, reserved=names)
    return RefreshResponse(status="started", sources=names)
