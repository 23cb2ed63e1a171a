from typing import Optional

import redis.asyncio as redis_async

from convopilot.logging_config import get_logger

logger = get_logger("dedup")

_redis_client = None
_redis_url = None


def get_redis(redis_url: Optional[str], socket_timeout_seconds: float = 0.3):
    global _redis_client, _redis_url

    if not redis_url:
        return None

    if _redis_client is None or _redis_url != redis_url:
        _redis_url = redis_url
        _redis_client = redis_async.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=socket_timeout_seconds,
            socket_timeout=socket_timeout_seconds,
        )

    return _redis_client


class MessageDeduplicator:
    """Drops webhook deliveries whose message id was already seen."""

    def __init__(self, redis_client=None, ttl_seconds: int = 3600, key_prefix: str = "convopilot:dedup"):
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    async def is_duplicate(self, message_id: str | None) -> bool:
        if not message_id or self.redis_client is None:
            return False

        key = f"{self.key_prefix}:{message_id}"
        try:
            was_set = await self.redis_client.set(key, "1", ex=self.ttl_seconds, nx=True)
        except Exception as e:
            logger.warning(f"Dedup redis unavailable, processing message: {e}")
            return False
        if not was_set:
            logger.info("Duplicate message dropped", extra={"context": {"message_id": message_id}})
            return True
        return False
