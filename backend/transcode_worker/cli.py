"""Command line entry point.

Usage:
    python -m transcode_worker run event.json
    python -m transcode_worker run --key uploads/demo.mp4 --bucket media-in
    python -m transcode_worker worker --concurrency 2
"""

import argparse
import json
import sys
from typing import Optional, Sequence

from transcode_worker.core.config import get_settings
from transcode_worker.core.logging import setup_logging


def build_event(bucket: str, key: str) -> dict:
    """Minimal storage notification for a single object."""
    return {"Records": [{"s3": {"bucket": {"name": bucket}, "object": {"key": key}}}]}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="transcode_worker", description="Transcode pipeline worker")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run one pipeline in this process")
    run_parser.add_argument("event_file", nargs="?", help="JSON storage notification ('-' for stdin)")
    run_parser.add_argument("--bucket", default="", help="Source bucket when no event file is given")
    run_parser.add_argument("--key", help="Source key when no event file is given")

    worker_parser = subparsers.add_parser("worker", help="Start a Celery worker")
    worker_parser.add_argument("--concurrency", type=int, default=1, help="Worker processes")
    worker_parser.add_argument("--loglevel", default="INFO", help="Celery log level")

    return parser


def _load_event(args: argparse.Namespace, parser: argparse.ArgumentParser) -> dict:
    if args.event_file == "-":
        return json.load(sys.stdin)
    if args.event_file:
        with open(args.event_file, "r", encoding="utf-8") as f:
            return json.load(f)
    if args.key:
        return build_event(args.bucket or get_settings().SOURCE_BUCKET, args.key)
    parser.error("run needs an event file or --key")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()
    setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

    if args.command == "worker":
        from transcode_worker.core.celery_app import celery_app

        celery_app.worker_main([
            "worker",
            f"--loglevel={args.loglevel}",
            f"--concurrency={args.concurrency}",
        ])
        return 0

    from transcode_worker.modules.pipeline.service import run_pipeline

    result = run_pipeline(_load_event(args, parser))
    print(json.dumps(result.model_dump(mode="json"), indent=2))
    return 0 if result.succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
