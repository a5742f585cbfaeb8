"""
Redis-backed usage ledger.

Counters for one organization live in a single hash keyed
``usage:{org_id}``; each field encodes ``feature|period_start|period_end``
(epoch seconds). Consumption runs as a Lua script so the limit check and
the increment are one atomic step on the server.
"""

from datetime import datetime, timezone
from typing import List, Optional

import redis.asyncio as redis

from shared.logging import get_logger
from shared.errors import ExternalServiceError
from ..billing.models import UsageCounter
from .base import UsageLedger, ConsumeResult


CONSUME_SCRIPT = """
local used = tonumber(redis.call('HGET', KEYS[1], ARGV[1]) or '0')
local limit = tonumber(ARGV[2])
local amount = tonumber(ARGV[3])
if limit >= 0 and used + amount > limit then
    return {0, used}
end
used = redis.call('HINCRBY', KEYS[1], ARGV[1], amount)
return {1, used}
"""

REFUND_SCRIPT = """
local used = tonumber(redis.call('HGET', KEYS[1], ARGV[1]) or '0')
used = used - tonumber(ARGV[2])
if used < 0 then
    used = 0
end
redis.call('HSET', KEYS[1], ARGV[1], used)
return used
"""

UNLIMITED = -1


class RedisUsageLedger(UsageLedger):
    """Usage ledger stored in Redis hashes."""

    KEY_PREFIX = "usage:"

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.logger = get_logger("gating.ledger.redis")
        self.redis: Optional[redis.Redis] = None

    async def start(self):
        """Connect to Redis."""
        try:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )
            await self.redis.ping()
            self.logger.info("Redis usage ledger started")
        except Exception as e:
            self.logger.error("Failed to start Redis usage ledger", error=str(e))
            raise ExternalServiceError("redis", str(e))

    async def stop(self):
        if self.redis:
            await self.redis.close()
            self.logger.info("Redis usage ledger stopped")

    async def health_check(self) -> bool:
        try:
            return bool(self.redis) and bool(await self.redis.ping())
        except Exception as e:
            self.logger.warning("Redis health check failed", error=str(e))
            return False

    def _key(self, org_id: str) -> str:
        return f"{self.KEY_PREFIX}{org_id}"

    @staticmethod
    def _field(feature_key: str, period_start: datetime, period_end: datetime) -> str:
        return f"{feature_key}|{int(period_start.timestamp())}|{int(period_end.timestamp())}"

    @staticmethod
    def _parse_field(field: str, value: str) -> Optional[UsageCounter]:
        parts = field.split("|")
        if len(parts) != 3:
            return None
        feature_key, start, end = parts
        try:
            return UsageCounter(
                feature_key=feature_key,
                used=max(0, int(value)),
                period_start=datetime.fromtimestamp(int(start), tz=timezone.utc),
                period_end=datetime.fromtimestamp(int(end), tz=timezone.utc),
            )
        except ValueError:
            return None

    async def usage(self, org_id: str) -> List[UsageCounter]:
        raw = await self.redis.hgetall(self._key(org_id))
        counters = []
        for field, value in raw.items():
            counter = self._parse_field(field, value)
            if counter is None:
                self.logger.warning("Skipping malformed usage field", org_id=org_id, field=field)
                continue
            counters.append(counter)
        return counters

    async def consume(
        self,
        org_id: str,
        feature_key: str,
        period_start: datetime,
        period_end: datetime,
        limit: Optional[int],
        amount: int = 1,
    ) -> ConsumeResult:
        consumed, used = await self.redis.eval(
            CONSUME_SCRIPT,
            1,
            self._key(org_id),
            self._field(feature_key, period_start, period_end),
            UNLIMITED if limit is None else limit,
            amount,
        )
        if not int(consumed):
            self.logger.info("Usage limit reached", org_id=org_id, feature_key=feature_key, used=used, limit=limit)
        return ConsumeResult(consumed=bool(int(consumed)), used=int(used))

    async def refund(
        self,
        org_id: str,
        feature_key: str,
        period_start: datetime,
        period_end: datetime,
        amount: int = 1,
    ) -> int:
        used = await self.redis.eval(
            REFUND_SCRIPT,
            1,
            self._key(org_id),
            self._field(feature_key, period_start, period_end),
            amount,
        )
        return int(used)
