"""
SSO Link Reconciler
Retries SSO integration rows parked in the outbox
"""

import asyncio
from dataclasses import dataclass, asdict
from typing import Dict

from redis.exceptions import RedisError
import structlog

from app.models.outbox import OutboxEntry
from app.utils.exceptions import IdentityPlatformError
from app.utils.outbox import SSOLinkOutbox
from app.utils.supabase_client import SupabaseClient

logger = structlog.get_logger(__name__)


@dataclass
class DrainResult:
    processed: int = 0
    succeeded: int = 0
    requeued: int = 0
    dead_lettered: int = 0
    unrecorded: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class SSOLinkReconciler:
    """Drains the outbox with the same idempotent upsert used at signup"""

    def __init__(self, outbox: SSOLinkOutbox, identity: SupabaseClient, max_attempts: int = 5):
        self.outbox = outbox
        self.identity = identity
        self.max_attempts = max_attempts

    async def recover(self) -> int:
        """Put links claimed by a previous process back in the pending list"""
        return await self.outbox.recover()

    async def drain(self, limit: int = 50) -> DrainResult:
        """
        Retry up to `limit` pending links

        Each failure bumps the attempt count; entries reaching
        max_attempts move to the dead letter list. When Redis fails while
        recording an outcome the entry stays in the processing list, its
        row is logged and the drain stops.
        """
        result = DrainResult()
        try:
            # Requeued entries go to the tail; stop before reaching them again
            pending = await self.outbox.pending_count()
        except RedisError as e:
            logger.error("Outbox unavailable, skipping drain", error=str(e))
            return result

        for _ in range(min(limit, pending)):
            try:
                entry = await self.outbox.pop()
            except RedisError as e:
                logger.error("Outbox pop failed, stopping drain", error=str(e))
                break
            if entry is None:
                continue

            result.processed += 1
            try:
                await self._record(entry, result)
            except RedisError as e:
                result.unrecorded += 1
                logger.error(
                    "Failed to record SSO link outcome, entry left in processing list",
                    row=entry.row.insert_payload(),
                    attempts=entry.attempts,
                    error=str(e)
                )
                break

        if result.processed:
            logger.info("Outbox drain finished", **result.to_dict())
        return result

    async def _record(self, entry: OutboxEntry, result: DrainResult) -> None:
        try:
            await self.identity.insert_sso_integration(entry.row)
        except IdentityPlatformError as e:
            failed = entry.failed(e.message)
            if failed.attempts >= self.max_attempts:
                await self.outbox.dead_letter(failed)
                result.dead_lettered += 1
            else:
                await self.outbox.requeue(failed)
                result.requeued += 1
            return

        await self.outbox.ack(entry)
        result.succeeded += 1
        logger.info(
            "Reconciled SSO link",
            user_id=entry.row.user_id,
            provider=entry.row.provider,
            attempts=entry.attempts + 1
        )

    async def run_forever(self, interval: float, batch_size: int) -> None:
        """Background loop started from the app lifespan"""
        logger.info("SSO link reconciler started", interval=interval, batch_size=batch_size)
        while True:
            try:
                await self.drain(batch_size)
            except Exception as e:
                logger.error("Outbox drain failed", error=str(e), exc_info=True)
            await asyncio.sleep(interval)
