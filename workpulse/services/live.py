"""
Live notification delivery.

``ConnectionManager`` is the in-process registry of open WebSockets keyed
by receiver id. It is only mutated by connect / disconnect. When several
API workers run behind a load balancer, ``RedisRelay`` publishes every
event on a pub/sub channel and each worker forwards it to its own local
sockets.

Delivery is best-effort: nothing here retries, and a receiver with no open
socket simply gets nothing pushed (the stored notification is still listed
on the next poll).
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

import redis.asyncio as aioredis

from workpulse.core.config import settings

logger = logging.getLogger(__name__)


class SocketLike(Protocol):
    async def send_json(self, data: Any) -> None: ...


class ConnectionManager:
    def __init__(self) -> None:
        self._connections: dict[int, set[SocketLike]] = {}

    def connect(self, receiver_id: int, socket: SocketLike) -> None:
        self._connections.setdefault(receiver_id, set()).add(socket)
        logger.debug("Live channel opened for receiver %d", receiver_id)

    def disconnect(self, receiver_id: int, socket: SocketLike) -> None:
        sockets = self._connections.get(receiver_id)
        if not sockets:
            return
        sockets.discard(socket)
        if not sockets:
            del self._connections[receiver_id]

    def connection_count(self, receiver_id: int) -> int:
        return len(self._connections.get(receiver_id, ()))

    @property
    def total(self) -> int:
        return sum(len(sockets) for sockets in self._connections.values())

    async def send_to(self, receiver_id: int, payload: dict) -> int:
        """Push *payload* to every socket of *receiver_id*; returns how many got it."""
        delivered = 0
        for socket in list(self._connections.get(receiver_id, ())):
            try:
                await socket.send_json(payload)
                delivered += 1
            except Exception as exc:  # dead socket, drop it
                logger.warning("Dropping live socket for receiver %d: %s", receiver_id, exc)
                self.disconnect(receiver_id, socket)
        return delivered


class RedisRelay:
    """Cross-process fan-out over Redis pub/sub."""

    def __init__(self, manager: ConnectionManager, url: str, channel: str) -> None:
        self.manager = manager
        self.channel = channel
        self._redis = aioredis.from_url(url)

    async def publish(self, receiver_id: int, payload: dict) -> None:
        message = json.dumps({"receiver_id": receiver_id, "payload": payload}, default=str)
        await self._redis.publish(self.channel, message)

    async def listen(self) -> None:
        """Forward relayed events to local sockets until cancelled."""
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self.channel)
        logger.info("Live relay subscribed to %s", self.channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    data = json.loads(message["data"])
                    await self.manager.send_to(int(data["receiver_id"]), data["payload"])
                except (KeyError, TypeError, ValueError) as exc:
                    logger.warning("Ignoring malformed relay message: %s", exc)
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()

    async def close(self) -> None:
        await self._redis.aclose()


class LiveChannel:
    """Publish-only facade the notification engine talks to."""

    def __init__(self, manager: ConnectionManager) -> None:
        self.manager = manager
        self.relay: RedisRelay | None = None
        self._listener: asyncio.Task | None = None

    async def publish(self, receiver_id: int, payload: dict) -> None:
        if self.relay is not None:
            await self.relay.publish(receiver_id, payload)
        else:
            await self.manager.send_to(receiver_id, payload)

    async def start_relay(self, url: str, channel: str) -> None:
        self.relay = RedisRelay(self.manager, url, channel)
        self._listener = asyncio.create_task(self.relay.listen(), name="live-relay")

    async def stop_relay(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self.relay is not None:
            await self.relay.close()
            self.relay = None


connections = ConnectionManager()
live_channel = LiveChannel(connections)


async def start_live_channel() -> None:
    if settings.LIVE_RELAY_ENABLED:
        await live_channel.start_relay(settings.REDIS_URL, settings.LIVE_RELAY_CHANNEL)


async def stop_live_channel() -> None:
    await live_channel.stop_relay()
