"""
Courier webhook de-duplication.

Couriers redeliver webhooks; a (tracking number, status, event time) triple
is applied once. The first delivery claims a Redis key with SET NX EX; later
deliveries inside the TTL find it taken.

Updates without an event time cannot be told apart from a genuine repeat of
the same status (a second delivery attempt), so they are never claimed and
every one of them is recorded.
"""

import logging
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)

WEBHOOK_KEY_PREFIX = "courier-webhook:"


def webhook_key(tracking_number: str, status: str, event_time: datetime) -> str:
    return f"{WEBHOOK_KEY_PREFIX}{tracking_number}:{status.strip().lower()}:{event_time.isoformat()}"


class WebhookDeduplicator:

    def __init__(self, redis_client, ttl_seconds: int):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    async def claim(self, tracking_number: str, status: str, event_time: Optional[datetime]) -> bool:
        """
        True for the first delivery of this update, False for a repeat.

        Unstamped updates and updates arriving while Redis is unreachable
        are always processed (at-least-once).
        """
        if event_time is None:
            return True
        key = webhook_key(tracking_number, status, event_time)
        try:
            claimed = await self.redis.set(key, "1", nx=True, ex=self.ttl_seconds)
        except Exception as exc:
            logger.warning("Webhook de-duplication unavailable: %s", exc, extra={"key": key})
            return True
        return bool(claimed)

    async def release(self, tracking_number: str, status: str, event_time: Optional[datetime]) -> None:
        """Forget a claim so a failed update can be redelivered."""
        if event_time is None:
            return
        key = webhook_key(tracking_number, status, event_time)
        try:
            await self.redis.delete(key)
        except Exception as exc:
            logger.warning("Could not release webhook claim: %s", exc, extra={"key": key})
