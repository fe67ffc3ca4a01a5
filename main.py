"""SubredditDigest - top posts of the week from a list of subreddits."""

import argparse
import json
import logging
import sys
import threading
from datetime import datetime
from pathlib import Path

from subreddit_digest import (
    AggregateResult,
    DigestSession,
    aggregate,
    load_settings,
    parse_source_names,
)


# ─────────────────────────────────────────────────────────────
# Logging setup
# ─────────────────────────────────────────────────────────────

def setup_logging():
    """Configure logging to file."""
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    today = datetime.now().strftime("%Y-%m-%d")
    log_file = log_dir / f"{today}.log"

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%H:%M:%S"
    ))

    logging.basicConfig(
        level=logging.INFO,
        handlers=[file_handler]
    )

    return log_file


# ─────────────────────────────────────────────────────────────
# Output formatting
# ─────────────────────────────────────────────────────────────

def print_header(sources: list[str]):
    """Print run header."""
    now = datetime.now().strftime("%Y-%m-%d %H:%M")
    print()
    print("=" * 62)
    print("            SubredditDigest - Top Posts of the Week          ")
    print(f"                     {now}                       ")
    print("=" * 62)
    print(f"  Subreddits: {', '.join(f'r/{s}' for s in sources)}")
    print()


def print_result(result: AggregateResult):
    """Print merged posts, or the error."""
    if not result.ok:
        print(f"[ERROR] {result.error}")
        for failure in result.failures:
            print(f"  - r/{failure.source_name}: {failure.message}")
        print()
        return

    if not result.items:
        print("No posts found.")
        print()
        return

    current = None
    for post in result.items:
        if post.source_name != current:
            current = post.source_name
            print(f"r/{current}")
            print("-" * 50)
        title = post.title[:70] + "..." if len(post.title) > 70 else post.title
        print(f"  {title}")
        print(f"  |  Upvotes: {post.score}  Comments: {post.comment_count}  {post.url}")
    print()


def save_json(result: AggregateResult, path: str):
    """Write the result as JSON."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with open(out, "w", encoding="utf-8") as f:
        json.dump(result.model_dump(mode="json"), f, ensure_ascii=False, indent=2)
    print(f"  Saved to {out}")


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="SubredditDigest - merged top posts from a list of subreddits",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --subreddits "reactjs, javascript, webdev"
  python main.py --subreddits python --json output/digest.json
  python main.py --subreddits "python,rust" --watch       # refresh every week
        """
    )

    parser.add_argument(
        "--subreddits",
        type=str,
        default=None,
        help="Comma-separated subreddit names (default: default_subreddits from config)"
    )

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Settings file (default: config/digest.yaml)"
    )

    parser.add_argument(
        "--json",
        type=str,
        default=None,
        help="Also write the result to this JSON file"
    )

    parser.add_argument(
        "--watch",
        action="store_true",
        help="Keep running and refresh on the configured interval until Ctrl-C"
    )

    parser.add_argument(
        "--interval-days",
        type=float,
        default=None,
        help="Refresh interval in days for --watch (default: from config, 7)"
    )

    parser.add_argument(
        "--max-workers",
        type=int,
        default=None,
        help="Maximum concurrent subreddit fetches (default: one per subreddit)"
    )

    return parser.parse_args(argv)


def run(args=None) -> int:
    """Run one cycle (or keep refreshing with --watch). Returns exit code."""
    if args is None:
        args = parse_args()

    log_file = setup_logging()
    logger = logging.getLogger(__name__)
    logger.info("=" * 60)
    logger.info("SubredditDigest started")

    settings = load_settings(args.config)
    if args.interval_days is not None:
        settings.interval_days = args.interval_days
    if args.max_workers is not None:
        settings.max_workers = args.max_workers

    raw = args.subreddits if args.subreddits is not None else ",".join(settings.default_subreddits)
    sources = parse_source_names(raw)

    def _report(result: AggregateResult):
        print_result(result)
        if args.json:
            save_json(result, args.json)

    if not args.watch:
        print_header(sources)
        result = aggregate(sources, settings=settings)
        _report(result)
        logger.info(f"SubredditDigest finished (ok={result.ok})")
        print(f"[{'OK' if result.ok else 'FAILED'}] Done! (log: {log_file})")
        return 0 if result.ok else 1

    # --watch: the schedule runs the first cycle immediately
    print_header(sources)
    session = DigestSession(settings, on_result=_report)
    if not session.set_sources(sources):
        print(f"[ERROR] {session.snapshot().error}")
        return 1
    print(f"Refreshing every {settings.interval_days:g} days, Ctrl-C to stop.")
    try:
        threading.Event().wait()
    finally:
        session.close()
        logger.info("SubredditDigest stopped")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(run())
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(1)
    except Exception as e:
        print(f"\n\nError: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
