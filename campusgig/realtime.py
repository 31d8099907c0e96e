"""Publish/subscribe bus for live message and notification events.

Consumers depend only on ``EventBus``: ``subscribe(topic, callback)`` returns an
unsubscribe function and ``publish(topic, event)`` fans the event out to every
callback registered for the topic. Two backends exist:

- ``InMemoryEventBus`` delivers within the current process (single worker, tests).
- ``RedisEventBus`` relays through Redis pub/sub so that subscribers attached to
  any API worker receive events published by any other worker.

Topics are ``conversation:<id>`` (everything inserted into one conversation) and
``user:<id>`` (everything relevant to one user's inbox).
"""

import asyncio
import inspect
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Annotated, Literal

import pydantic
import redis.asyncio as aioredis
from fastapi import Request
from pydantic import BaseModel, Field, TypeAdapter

from campusgig.config import settings
from campusgig.models.conversation import MessageKind

logger = logging.getLogger(__name__)


class MessageInserted(BaseModel):
    type: Literal["message_inserted"] = "message_inserted"
    message_id: int
    conversation_id: uuid.UUID
    job_id: uuid.UUID
    job_title: str
    poster_id: uuid.UUID
    worker_id: uuid.UUID
    sender_id: uuid.UUID
    sender_name: str
    kind: MessageKind
    content: str
    created_at: datetime

    def involves(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.poster_id, self.worker_id)


class NotificationsRead(BaseModel):
    """The user dismissed their unread badge. Not persisted."""

    type: Literal["notifications_read"] = "notifications_read"
    user_id: uuid.UUID


Event = Annotated[MessageInserted | NotificationsRead, Field(discriminator="type")]
event_adapter: TypeAdapter[Event] = TypeAdapter(Event)

Callback = Callable[[Event], Awaitable[None] | None]


def conversation_topic(conversation_id: uuid.UUID) -> str:
    return f"conversation:{conversation_id}"


def user_topic(user_id: uuid.UUID) -> str:
    return f"user:{user_id}"


class EventBus(ABC):
    def __init__(self) -> None:
        self._subscribers: dict[str, list[Callback]] = {}

    def subscribe(self, topic: str, callback: Callback) -> Callable[[], None]:
        self._subscribers.setdefault(topic, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(topic)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)
                if not callbacks:
                    del self._subscribers[topic]

        return unsubscribe

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    @abstractmethod
    async def publish(self, topic: str, event: Event) -> None: ...

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def _dispatch(self, topic: str, event: Event) -> None:
        for callback in list(self._subscribers.get(topic, ())):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Subscriber for %s failed on %s", topic, event.type)


class InMemoryEventBus(EventBus):
    async def publish(self, topic: str, event: Event) -> None:
        await self._dispatch(topic, event)


class RedisEventBus(EventBus):
    """Relays events through Redis pub/sub.

    ``publish`` only writes to Redis; local subscribers are fed by the listener
    task started in ``start()``, including for events published by this process.
    """

    def __init__(self, redis: aioredis.Redis, prefix: str | None = None) -> None:
        super().__init__()
        self._redis = redis
        self._prefix = prefix if prefix is not None else settings.realtime_channel_prefix
        self._pubsub = None
        self._listener: asyncio.Task | None = None

    async def publish(self, topic: str, event: Event) -> None:
        await self._redis.publish(self._prefix + topic, event.model_dump_json())

    async def start(self) -> None:
        self._pubsub = self._redis.pubsub()
        await self._pubsub.psubscribe(self._prefix + "*")
        self._listener = asyncio.create_task(self._listen())
        logger.info("Realtime relay subscribed to %s*", self._prefix)

    async def stop(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
        await self._redis.aclose()

    async def _listen(self) -> None:
        while True:
            try:
                async for message in self._pubsub.listen():
                    await self.handle_message(message)
            except asyncio.CancelledError:
                logger.info("Realtime relay shutting down")
                break
            except Exception:
                logger.exception("Realtime relay error, retrying in 1s")
                await asyncio.sleep(1)

    async def handle_message(self, message: dict) -> None:
        if message.get("type") != "pmessage":
            return
        channel = message["channel"]
        if isinstance(channel, bytes):
            channel = channel.decode()
        topic = channel[len(self._prefix):]
        try:
            event = event_adapter.validate_json(message["data"])
        except pydantic.ValidationError:
            logger.warning("Dropping malformed event on %s", channel)
            return
        await self._dispatch(topic, event)


def build_event_bus() -> EventBus:
    if settings.realtime_backend == "redis":
        from campusgig.redis import redis_client

        return RedisEventBus(redis_client())
    return InMemoryEventBus()


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.event_bus


@asynccontextmanager
async def subscription(bus: EventBus, topic: str) -> AsyncIterator[asyncio.Queue]:
    """Subscribe a queue to ``topic`` for the duration of the block."""
    queue: asyncio.Queue = asyncio.Queue()
    unsubscribe = bus.subscribe(topic, queue.put_nowait)
    try:
        yield queue
    finally:
        unsubscribe()


async def publish_quietly(bus: EventBus, topics: list[str], event: Event) -> None:
    """Publish to several topics; relay failures are logged, never raised."""
    for topic in topics:
        try:
            await bus.publish(topic, event)
        except (aioredis.RedisError, OSError):
            logger.exception("Failed to publish %s to %s", event.type, topic)
