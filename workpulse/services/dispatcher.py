"""
Notification intents queue.

Engines commit their own state change first and then ``enqueue`` an
intent. A background worker resolves the audience, persists the records
in its own session and pushes them live. Nothing that happens here can
roll back or fail the business operation that produced the intent.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workpulse.core.exceptions import NoValidReceivers
from workpulse.models.notification import Notification
from workpulse.services import directory, notifications
from workpulse.services.live import LiveChannel, live_channel
from workpulse.services.notifications import NotificationContent

logger = logging.getLogger(__name__)


@dataclass
class NotificationIntent:
    """Who should hear about an event, resolved lazily by the worker."""

    content: NotificationContent
    receiver_ids: list[int] = field(default_factory=list)
    roles: tuple[str, ...] = ()
    employee_id: str | None = None
    exclude_ids: set[int] = field(default_factory=set)

    @classmethod
    def to_users(cls, receiver_ids: Iterable[int | None], content: NotificationContent, **kw) -> NotificationIntent:
        return cls(content=content, receiver_ids=[r for r in receiver_ids if r is not None], **kw)

    @classmethod
    def to_roles(cls, roles: Iterable[str], content: NotificationContent, **kw) -> NotificationIntent:
        return cls(content=content, roles=tuple(roles), **kw)

    @classmethod
    def to_employee(cls, employee_id: str, content: NotificationContent) -> NotificationIntent:
        return cls(content=content, employee_id=employee_id)


class NotificationDispatcher:
    def __init__(self) -> None:
        self.session_factory: async_sessionmaker[AsyncSession] | None = None
        self.channel: LiveChannel = live_channel
        self._queue: asyncio.Queue[NotificationIntent] = asyncio.Queue()
        self._worker: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def configure(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        channel: LiveChannel | None = None,
    ) -> None:
        self.session_factory = session_factory
        if channel is not None:
            self.channel = channel

    def enqueue(self, intent: NotificationIntent) -> None:
        """Hand off an intent without waiting. The queue is unbounded so an intent is never refused."""
        self._queue.put_nowait(intent)

    async def start(self) -> None:
        if self.running:
            return
        if self.session_factory is None:
            raise RuntimeError("NotificationDispatcher.configure() must be called before start()")
        # Queues bind to the loop that first waits on them; carry pending intents over
        pending = []
        while not self._queue.empty():
            pending.append(self._queue.get_nowait())
        self._queue = asyncio.Queue()
        for intent in pending:
            self._queue.put_nowait(intent)
        self._worker = asyncio.create_task(self._run(), name="notification-dispatcher")
        logger.info("Notification dispatcher started")

    async def stop(self, drain: bool = True) -> None:
        if self._worker is None:
            return
        if drain and self.running:
            await self._queue.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Notification dispatcher stopped")

    async def join(self) -> None:
        """Wait until every queued intent has been processed."""
        await self._queue.join()

    async def drain(self) -> int:
        """Process whatever is queued right now in the caller's task.

        Used when no worker is running (shutdown without a loop, scripts).
        """
        processed = 0
        while not self._queue.empty():
            await self._handle(self._queue.get_nowait())
            processed += 1
        return processed

    async def _run(self) -> None:
        while True:
            await self._handle(await self._queue.get())

    async def _handle(self, intent: NotificationIntent) -> None:
        try:
            await self.process(intent)
        except Exception:
            logger.error("Notification intent '%s' failed", intent.content.title, exc_info=True)
        finally:
            self._queue.task_done()

    async def process(self, intent: NotificationIntent) -> list[Notification]:
        """Resolve, persist and push one intent."""
        if self.session_factory is None:
            raise RuntimeError("NotificationDispatcher.configure() must be called before processing intents")
        async with self.session_factory() as db:
            receivers = await self._resolve(db, intent)
            if not receivers:
                logger.debug("No receivers for intent '%s'", intent.content.title)
                return []
            try:
                created = await notifications.notify_many(db, receivers, intent.content)
            except NoValidReceivers:
                logger.info("Intent '%s' had no valid receivers", intent.content.title)
                return []
        await notifications.deliver_all(created, self.channel)
        return created

    @staticmethod
    async def _resolve(db: AsyncSession, intent: NotificationIntent) -> list[int]:
        receivers = list(intent.receiver_ids)
        if intent.roles:
            receivers.extend(await directory.user_ids_with_roles(db, intent.roles))
        if intent.employee_id:
            user = await directory.find_by_employee_id(db, intent.employee_id)
            if user is not None:
                receivers.append(user.id)
        seen: set[int] = set()
        resolved = []
        for uid in receivers:
            if uid in intent.exclude_ids or uid in seen:
                continue
            seen.add(uid)
            resolved.append(uid)
        return resolved


dispatcher = NotificationDispatcher()
