#!/usr/bin/env python3
"""
MatriMatch — Task worker entry point

  python scripts/run_worker.py
  python scripts/run_worker.py --queues notifications,emails --concurrency 2

Equivalent to ``celery -A matrimatch.tasks.celery_app worker`` with the
queue list and log level taken from settings.  A warm shutdown (SIGTERM)
lets the tasks in hand finish first.
"""

from __future__ import annotations

import argparse
import sys

# Ensure the project root is importable
sys.path.insert(0, ".")

from matrimatch.config import get_settings
from matrimatch.tasks.celery_app import celery_app


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Run the MatriMatch task worker.")
    parser.add_argument(
        "--queues",
        type=str,
        default=settings.WORKER_QUEUES,
        help=f"Comma-separated queue names (default: {settings.WORKER_QUEUES}).",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=settings.WORKER_CONCURRENCY,
        help=f"Worker processes (default: {settings.WORKER_CONCURRENCY}).",
    )
    args = parser.parse_args()
    queues = [q.strip() for q in args.queues.split(",") if q.strip()]
    if not queues:
        parser.error("at least one queue is required")
    if args.concurrency < 1:
        parser.error("--concurrency must be positive")

    celery_app.worker_main(
        [
            "worker",
            "--queues", ",".join(queues),
            "--loglevel", settings.LOG_LEVEL.upper(),
            "--concurrency", str(args.concurrency),
        ]
    )


if __name__ == "__main__":
    main()
