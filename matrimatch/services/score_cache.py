"""
MatriMatch — Per-day score cache

Compatibility results keyed by ordered pair and calendar day.  Entries expire
at the end of the UTC day; the cache is an optimisation only and a miss or a
Redis error simply means the pair is scored again.
"""

from __future__ import annotations

import json
import uuid

import structlog
from redis.exceptions import RedisError

from matrimatch.services.scoring_service import ScoreBreakdown
from matrimatch.utils.clock import Clock, seconds_until_end_of_day

logger = structlog.get_logger("matrimatch.score_cache")


class ScoreCache:
    def __init__(self, redis, clock: Clock) -> None:
        self.redis = redis
        self.clock = clock

    def key(self, seeker_id: uuid.UUID, candidate_id: uuid.UUID) -> str:
        day = self.clock.today().isoformat()
        return f"score:{seeker_id}:{candidate_id}:{day}"

    async def get(self, seeker_id: uuid.UUID, candidate_id: uuid.UUID) -> ScoreBreakdown | None:
        try:
            raw = await self.redis.get(self.key(seeker_id, candidate_id))
        except RedisError as exc:
            logger.warning("score_cache_read_failed", error=str(exc))
            return None
        if raw is None:
            return None
        return ScoreBreakdown.from_dict(json.loads(raw))

    async def put(
        self,
        seeker_id: uuid.UUID,
        candidate_id: uuid.UUID,
        breakdown: ScoreBreakdown,
    ) -> None:
        ttl = seconds_until_end_of_day(self.clock.now())
        try:
            await self.redis.set(
                self.key(seeker_id, candidate_id),
                json.dumps(breakdown.to_dict()),
                ex=ttl,
            )
        except RedisError as exc:
            logger.warning("score_cache_write_failed", error=str(exc))
