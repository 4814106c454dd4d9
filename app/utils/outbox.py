"""
SSO Link Outbox
Redis-backed queue of SSO integration rows pending reconciliation

Uses async Redis (redis.asyncio) to avoid blocking the event loop.
Entries are moved atomically from the pending list into a processing list
while a reconciler works on them and removed from it only once the outcome
(written, requeued or dead-lettered) has been recorded.
"""

import json
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError
import structlog

from app.models.outbox import OutboxEntry
from shared.schemas.sso import SSOIntegrationRow

logger = structlog.get_logger(__name__)


def create_redis_client(redis_url: str) -> aioredis.Redis:
    """Create async Redis client; connections are opened lazily"""
    return aioredis.from_url(
        redis_url,
        decode_responses=True,
        socket_timeout=5.0,
        socket_connect_timeout=5.0,
        socket_keepalive=True,
        health_check_interval=30
    )


class SSOLinkOutbox:
    """Pending, processing and dead-lettered SSO links kept in Redis lists"""

    # Key prefixes
    PENDING_KEY = "sso_outbox:pending"
    PROCESSING_KEY = "sso_outbox:processing"
    DEAD_KEY = "sso_outbox:dead"

    def __init__(self, redis_client: aioredis.Redis):
        self.redis = redis_client

    @staticmethod
    def _serialize(entry: OutboxEntry) -> str:
        return json.dumps(entry.to_dict())

    @staticmethod
    def _deserialize(data: str) -> Optional[OutboxEntry]:
        try:
            entry = OutboxEntry.from_dict(json.loads(data))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error("Malformed outbox entry", error=str(e), raw=data)
            return None
        entry.raw = data
        return entry

    async def enqueue(self, row: SSOIntegrationRow, error: Optional[str] = None) -> bool:
        """
        Queue an SSO link for a later retry

        Returns:
            bool: whether the entry was stored
        """
        entry = OutboxEntry(row=row, last_error=error)
        try:
            await self.redis.rpush(self.PENDING_KEY, self._serialize(entry))
        except RedisError as e:
            logger.error(
                "Failed to enqueue SSO link",
                user_id=row.user_id,
                provider=row.provider,
                error=str(e)
            )
            return False

        logger.info("SSO link queued for reconciliation", user_id=row.user_id, provider=row.provider)
        return True

    async def pop(self) -> Optional[OutboxEntry]:
        """
        Claim the oldest pending entry

        The entry stays in the processing list until ack, requeue or
        dead_letter records what happened to it. Malformed entries go
        straight to the dead letter list and None is returned.
        """
        data = await self.redis.lmove(self.PENDING_KEY, self.PROCESSING_KEY, "LEFT", "RIGHT")
        if data is None:
            return None

        entry = self._deserialize(data)
        if entry is None:
            await self.redis.rpush(self.DEAD_KEY, data)
            await self.redis.lrem(self.PROCESSING_KEY, 1, data)
        return entry

    async def ack(self, entry: OutboxEntry) -> None:
        """Release a claimed entry"""
        if entry.raw is not None:
            await self.redis.lrem(self.PROCESSING_KEY, 1, entry.raw)

    async def requeue(self, entry: OutboxEntry) -> None:
        await self.redis.rpush(self.PENDING_KEY, self._serialize(entry))
        await self.ack(entry)

    async def dead_letter(self, entry: OutboxEntry) -> None:
        await self.redis.rpush(self.DEAD_KEY, self._serialize(entry))
        await self.ack(entry)
        logger.error(
            "SSO link moved to dead letter list",
            user_id=entry.row.user_id,
            provider=entry.row.provider,
            attempts=entry.attempts,
            last_error=entry.last_error
        )

    async def recover(self) -> int:
        """
        Return entries stranded in the processing list to the pending list

        Only safe while no reconciler is draining; called once at startup.
        """
        moved = 0
        try:
            while await self.redis.lmove(self.PROCESSING_KEY, self.PENDING_KEY, "LEFT", "RIGHT") is not None:
                moved += 1
        except RedisError as e:
            logger.error("Failed to recover processing SSO links", moved=moved, error=str(e))
            return moved

        if moved:
            logger.warning("Recovered stranded SSO links", count=moved)
        return moved

    async def pending_count(self) -> int:
        return int(await self.redis.llen(self.PENDING_KEY))

    async def processing_count(self) -> int:
        return int(await self.redis.llen(self.PROCESSING_KEY))

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError as e:
            logger.warning("Outbox Redis ping failed", error=str(e))
            return False

    async def close(self) -> None:
        await self.redis.aclose()
