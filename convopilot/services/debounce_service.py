"""Per-user message batching.

Messages that arrive in a burst are held until the user pauses, then handed to
the model as one prompt. The wait grows by ``delay_per_message`` with every
message but never runs past ``max_wait`` from the first one, and never fires in
under ``min_wait``.

While a batch is with the model the user is locked: new messages are parked in
an overflow list and start the next batch once the lock is released.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional
from uuid import uuid4

from convopilot.logging_config import get_logger

logger = get_logger("debounce")

DELAY_PER_MESSAGE_SECONDS = 5.0
MAX_WAIT_SECONDS = 30.0
MIN_WAIT_SECONDS = 1.0
COOLDOWN_SECONDS = 2.0
MAX_LOCK_SECONDS = 120.0


@dataclass(frozen=True)
class QueuedMessage:
    text: str
    received_at: datetime


@dataclass(frozen=True)
class BatchResult:
    should_process: bool
    combined_text: str = ""
    count: int = 0
    batch_id: Optional[str] = None
    texts: tuple[str, ...] = ()
    started_at: Optional[datetime] = None
    deferred: bool = False


@dataclass
class PendingBatch:
    batch_id: str
    first_seen: float
    messages: list[QueuedMessage] = field(default_factory=list)
    waiters: list[asyncio.Future] = field(default_factory=list)
    deadline: float = 0.0
    timer: Optional[asyncio.TimerHandle] = None


@dataclass
class _BatchLock:
    batch_id: str
    cooldown_done: bool = False
    released: bool = False
    timers: list[asyncio.TimerHandle] = field(default_factory=list)


OverflowHandler = Callable[[str, BatchResult], Awaitable[None]]


def combine_texts(messages: list[QueuedMessage]) -> str:
    if len(messages) == 1:
        return messages[0].text
    return " ".join(m.text.strip() for m in messages if m.text.strip())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageAggregator:
    """Debounces messages per user and guarantees one in-flight batch per user.

    ``enqueue`` resolves for every caller once the batch fires; only the first
    caller still waiting gets ``should_process=True`` and must call ``release``
    when it is done with the model. Batches that nobody is waiting for (the
    re-queued overflow) are passed to ``overflow_handler``.
    """

    def __init__(
        self,
        *,
        delay_per_message: float = DELAY_PER_MESSAGE_SECONDS,
        max_wait: float = MAX_WAIT_SECONDS,
        min_wait: float = MIN_WAIT_SECONDS,
        cooldown: float = COOLDOWN_SECONDS,
        max_lock: float = MAX_LOCK_SECONDS,
        await_release: bool = True,
        overflow_handler: Optional[OverflowHandler] = None,
    ):
        self.delay_per_message = delay_per_message
        self.max_wait = max_wait
        self.min_wait = min_wait
        self.cooldown = cooldown
        self.max_lock = max_lock
        self.await_release = await_release
        self.overflow_handler = overflow_handler

        self._pending: dict[str, PendingBatch] = {}
        self._locks: dict[str, _BatchLock] = {}
        self._overflow: dict[str, list[QueuedMessage]] = {}
        self._tasks: set[asyncio.Task] = set()

    # ---------- inspection ----------

    def is_locked(self, user_id: str) -> bool:
        return user_id in self._locks

    def pending_count(self, user_id: str) -> int:
        batch = self._pending.get(user_id)
        return len(batch.messages) if batch else 0

    def overflow_count(self, user_id: str) -> int:
        return len(self._overflow.get(user_id, []))

    # ---------- public API ----------

    async def enqueue(self, user_id: str, text: str) -> BatchResult:
        if user_id in self._locks:
            queue = self._overflow.setdefault(user_id, [])
            queue.append(QueuedMessage(text=text, received_at=_utcnow()))
            logger.info(
                "Message deferred to next batch",
                extra={"context": {"user_id": user_id, "waiting": len(queue)}},
            )
            return BatchResult(should_process=False, deferred=True)

        future = self._add_to_batch(user_id, text)
        return await future

    def release(self, user_id: str, batch_id: Optional[str]) -> None:
        """Owner finished with the model for ``batch_id``."""
        lock = self._locks.get(user_id)
        if lock is None or batch_id is None or lock.batch_id != batch_id:
            return
        lock.released = True
        self._maybe_unlock(user_id, lock)

    async def shutdown(self) -> None:
        for batch in self._pending.values():
            if batch.timer:
                batch.timer.cancel()
            for waiter in batch.waiters:
                if not waiter.done():
                    waiter.cancel()
        for lock in self._locks.values():
            for timer in lock.timers:
                timer.cancel()
        self._pending.clear()
        self._locks.clear()
        self._overflow.clear()

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ---------- internals ----------

    def _add_to_batch(self, user_id: str, text: str, received_at: Optional[datetime] = None) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        batch = self._pending.get(user_id)
        if batch is None:
            batch = PendingBatch(batch_id=uuid4().hex, first_seen=loop.time())
            self._pending[user_id] = batch

        batch.messages.append(QueuedMessage(text=text, received_at=received_at or _utcnow()))
        future = loop.create_future()
        batch.waiters.append(future)

        total_wait = min(len(batch.messages) * self.delay_per_message, self.max_wait)
        elapsed = loop.time() - batch.first_seen
        remaining = max(total_wait - elapsed, self.min_wait)

        if batch.timer is not None:
            batch.timer.cancel()
        batch.deadline = loop.time() + remaining
        batch.timer = loop.call_later(remaining, self._fire, user_id, batch.batch_id)

        logger.debug(
            "Queued message",
            extra={
                "context": {
                    "user_id": user_id,
                    "position": len(batch.messages),
                    "total_wait": total_wait,
                    "remaining": round(remaining, 3),
                }
            },
        )
        return future

    def _fire(self, user_id: str, batch_id: str) -> None:
        batch = self._pending.get(user_id)
        if batch is None or batch.batch_id != batch_id:
            return
        del self._pending[user_id]
        batch.timer = None

        loop = asyncio.get_running_loop()
        lock = _BatchLock(batch_id=batch_id)
        lock.timers.append(loop.call_later(self.cooldown, self._cooldown_elapsed, user_id, batch_id))
        lock.timers.append(loop.call_later(self.max_lock, self._force_unlock, user_id, batch_id))
        self._locks[user_id] = lock

        combined = combine_texts(batch.messages)
        texts = tuple(m.text for m in batch.messages)
        started_at = batch.messages[0].received_at

        logger.info(
            "Batch ready",
            extra={"context": {"user_id": user_id, "batch_id": batch_id, "count": len(batch.messages)}},
        )

        owner_assigned = False
        for waiter in batch.waiters:
            if waiter.done():
                continue
            waiter.set_result(
                BatchResult(
                    should_process=not owner_assigned,
                    combined_text=combined,
                    count=len(batch.messages),
                    batch_id=batch_id,
                    texts=texts,
                    started_at=started_at,
                )
            )
            owner_assigned = True

        if not owner_assigned:
            orphan = BatchResult(
                should_process=True,
                combined_text=combined,
                count=len(batch.messages),
                batch_id=batch_id,
                texts=texts,
                started_at=started_at,
            )
            self._spawn(self._dispatch_orphan(user_id, orphan))

    def _cooldown_elapsed(self, user_id: str, batch_id: str) -> None:
        lock = self._locks.get(user_id)
        if lock is None or lock.batch_id != batch_id:
            return
        lock.cooldown_done = True
        self._maybe_unlock(user_id, lock)

    def _force_unlock(self, user_id: str, batch_id: str) -> None:
        lock = self._locks.get(user_id)
        if lock is None or lock.batch_id != batch_id:
            return
        logger.warning(
            "Batch lock held too long, releasing",
            extra={"context": {"user_id": user_id, "batch_id": batch_id, "max_lock": self.max_lock}},
        )
        self._unlock(user_id)

    def _maybe_unlock(self, user_id: str, lock: _BatchLock) -> None:
        if not lock.cooldown_done:
            return
        if self.await_release and not lock.released:
            return
        self._unlock(user_id)

    def _unlock(self, user_id: str) -> None:
        lock = self._locks.pop(user_id, None)
        if lock is None:
            return
        for timer in lock.timers:
            timer.cancel()

        overflow = self._overflow.pop(user_id, [])
        if not overflow:
            return

        logger.info(
            "Starting next batch from deferred messages",
            extra={"context": {"user_id": user_id, "count": len(overflow)}},
        )
        futures = [self._add_to_batch(user_id, m.text, received_at=m.received_at) for m in overflow]
        self._spawn(self._drain_requeued(user_id, futures))

    async def _drain_requeued(self, user_id: str, futures: list[asyncio.Future]) -> None:
        results = await asyncio.gather(*futures, return_exceptions=True)
        for result in results:
            if isinstance(result, BatchResult) and result.should_process:
                await self._dispatch_orphan(user_id, result)

    async def _dispatch_orphan(self, user_id: str, result: BatchResult) -> None:
        if self.overflow_handler is None:
            logger.warning(
                "No handler for deferred batch, dropping lock",
                extra={"context": {"user_id": user_id, "batch_id": result.batch_id}},
            )
            self.release(user_id, result.batch_id)
            return
        try:
            await self.overflow_handler(user_id, result)
        except Exception as e:
            logger.error(
                f"Deferred batch handler failed: {e}",
                extra={"context": {"user_id": user_id, "batch_id": result.batch_id}},
            )
            self.release(user_id, result.batch_id)

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
