import asyncio
from typing import AsyncIterator, Dict, Set, Tuple

import redis.asyncio as aioredis

from pdf_chat.logger import GLOBAL_LOGGER as log


def _channel(user_id: str, document_id: str) -> str:
    """
    example : transcript:user_2abc:1b9d6bcd-bbfd-4b2d-9b5d-ab8dfbbd4bed
    """
    return f"transcript:{user_id}:{document_id}"


class RedisTranscriptFeed:
    """
    Transcript change notifications over Redis pub/sub.

    Works across API worker processes: whichever worker appends a turn
    publishes on the (user, document) channel and every subscriber, in any
    process, re-reads the ordered transcript.
    """

    def __init__(self, client: aioredis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisTranscriptFeed":
        return cls(aioredis.from_url(url, decode_responses=True))

    async def publish(self, user_id: str, document_id: str) -> None:
        # a lost notification only delays the subscriber's next refresh
        try:
            await self.client.publish(_channel(user_id, document_id), "changed")
        except aioredis.RedisError as e:
            log.warning(
                "Failed to publish transcript change | document_id=%s | error=%s",
                document_id,
                str(e),
            )

    async def subscribe(self, user_id: str, document_id: str) -> AsyncIterator[str]:
        pubsub = self.client.pubsub()
        channel = _channel(user_id, document_id)
        await pubsub.subscribe(channel)
        log.info("Transcript subscription opened | channel=%s", channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") == "message":
                    yield message["data"]
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
            log.info("Transcript subscription closed | channel=%s", channel)

    async def close(self) -> None:
        await self.client.aclose()


class LocalTranscriptFeed:
    """
    Single-process transcript notifications built on asyncio queues.
    Used when no Redis URL is configured.
    """

    def __init__(self, max_pending: int = 16):
        self.max_pending = max_pending
        self._subscribers: Dict[Tuple[str, str], Set[asyncio.Queue]] = {}

    async def publish(self, user_id: str, document_id: str) -> None:
        for queue in list(self._subscribers.get((user_id, document_id), ())):
            # a full queue already holds an unread "changed" for this subscriber
            if not queue.full():
                queue.put_nowait("changed")

    async def subscribe(self, user_id: str, document_id: str) -> AsyncIterator[str]:
        key = (user_id, document_id)
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_pending)
        self._subscribers.setdefault(key, set()).add(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            subscribers = self._subscribers.get(key)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    del self._subscribers[key]

    def subscriber_count(self, user_id: str, document_id: str) -> int:
        return len(self._subscribers.get((user_id, document_id), ()))

    async def close(self) -> None:
        self._subscribers.clear()
