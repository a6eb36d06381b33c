#!/usr/bin/env python3
"""
MatriMatch — Daily match generation CLI

Queues (default) or runs in-process (``--inline``) daily match generation
for one member or for every eligible member.  The all-members run also
queues expiry of stale pending suggestions.

Usage examples
--------------
  # Queue generation for everyone
  python scripts/generate_matches.py

  # Queue generation for one member with a custom limit
  python scripts/generate_matches.py --user-id 5b7c... --limit 10

  # Run the all-members pass in this process, 50 members per chunk
  python scripts/generate_matches.py --inline --chunk-size 50
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import uuid
from dataclasses import asdict

# Ensure the project root is importable
sys.path.insert(0, ".")

from matrimatch.config import get_settings
from matrimatch.database import async_session_factory, engine
from matrimatch.redis_client import close_redis, connect_redis
from matrimatch.tasks.definitions import (
    ExpireStaleMatches,
    GenerateMatchesForAll,
    GenerateMatchesForUser,
)
from matrimatch.tasks.celery_app import celery_app
from matrimatch.tasks.handlers import build_generator
from matrimatch.tasks.queue import CeleryTaskQueue
from matrimatch.utils.clock import SystemClock
from matrimatch.utils.logging import configure_logging


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    clock = SystemClock()
    redis = await connect_redis(settings.REDIS_URL)
    queue = CeleryTaskQueue(celery_app, clock)
    try:
        if not args.inline:
            if args.user_id is not None:
                task = GenerateMatchesForUser(user_id=args.user_id, limit=args.limit)
            else:
                expiry = await queue.enqueue(ExpireStaleMatches())
                print(f"Queued {expiry.kind} as task {expiry.id}")
                task = GenerateMatchesForAll(chunk_size=args.chunk_size, limit=args.limit)
            queued = await queue.enqueue(task)
            print(f"Queued {queued.kind} as task {queued.id}")
            return 0

        generator = build_generator(async_session_factory, redis, queue, clock, settings)
        if args.user_id is not None:
            async with async_session_factory() as session:
                result = await generator.generate_for_user(args.user_id, session, args.limit)
        else:
            result = await generator.generate_for_all(args.chunk_size, args.limit)
        print(json.dumps(asdict(result), default=str, indent=2))
        return 0
    finally:
        await close_redis()
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Generate daily match suggestions for one or all members.",
    )
    parser.add_argument(
        "--user-id",
        type=uuid.UUID,
        default=None,
        help="Generate for this member only (default: all eligible members).",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Override the subscription-tier candidate limit.",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=None,
        help="Members per chunk on the all-members pass.",
    )
    parser.add_argument(
        "--inline",
        action="store_true",
        default=False,
        help="Run in this process instead of queueing a task.",
    )
    args = parser.parse_args()

    if args.limit is not None and args.limit < 1:
        parser.error("--limit must be positive")
    if args.chunk_size is not None and args.chunk_size < 1:
        parser.error("--chunk-size must be positive")

    configure_logging(get_settings().LOG_LEVEL)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
