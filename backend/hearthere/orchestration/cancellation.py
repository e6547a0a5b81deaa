"""Session cancellation.

A session is cancelled by setting ``cancelled`` = "true" on the
``session:{session_id}`` hash. The pipeline checks the flag before each node
and before each external call, and races long calls against a poll task.
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import Protocol, TypeVar

from redis.asyncio import Redis
from redis.exceptions import RedisError

from backend.hearthere.errors import GenerationCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_POLL_INTERVAL_SECONDS = 0.5


class CancellationSignal(Protocol):
    async def is_cancelled(self, session_id: str) -> bool: ...

    async def cancel(self, session_id: str) -> None: ...


class InMemoryCancellationSignal:
    """Process-local cancellation flags (tests and local runs)."""

    def __init__(self) -> None:
        self._cancelled: set[str] = set()
        self.checks = 0

    async def is_cancelled(self, session_id: str) -> bool:
        self.checks += 1
        return session_id in self._cancelled

    async def cancel(self, session_id: str) -> None:
        self._cancelled.add(session_id)

    def reset(self) -> None:
        self._cancelled.clear()


class RedisCancellationSignal:
    """Cancellation flag stored in the session hash."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    @staticmethod
    def key_for(session_id: str) -> str:
        return f"session:{session_id}"

    async def is_cancelled(self, session_id: str) -> bool:
        """True if the session was cancelled. Lookup errors count as not cancelled."""
        if not session_id:
            return False
        try:
            value = await self._client.hget(self.key_for(session_id), "cancelled")
        except RedisError as e:
            logger.error("Error checking cancellation status for %s: %s", session_id, e)
            return False
        if isinstance(value, bytes):
            value = value.decode()
        return value == "true"

    async def cancel(self, session_id: str) -> None:
        await self._client.hset(self.key_for(session_id), "cancelled", "true")


async def check_cancellation(
    signal: CancellationSignal | None, session_id: str | None, node: str = "unknown"
) -> None:
    """Raise GenerationCancelledError if the session has been cancelled."""
    if signal is None or not session_id:
        return
    if await signal.is_cancelled(session_id):
        logger.info("[%s] Session %s cancelled, aborting operation", node, session_id)
        raise GenerationCancelledError()


async def run_cancellable(
    call: Awaitable[T],
    signal: CancellationSignal | None,
    session_id: str | None,
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
) -> T:
    """Await call while polling for cancellation.

    If cancellation is observed first, the call task is cancelled and
    GenerationCancelledError is raised.
    """
    if signal is None or not session_id:
        return await call

    async def _poll() -> None:
        while True:
            await asyncio.sleep(poll_interval)
            if await signal.is_cancelled(session_id):
                return

    call_task = asyncio.ensure_future(call)
    poll_task = asyncio.create_task(_poll())
    try:
        done, _ = await asyncio.wait(
            {call_task, poll_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if call_task in done:
            return call_task.result()
        logger.info("Session %s cancelled during external call", session_id)
        raise GenerationCancelledError()
    finally:
        for task in (call_task, poll_task):
            if not task.done():
                task.cancel()
        await asyncio.gather(call_task, poll_task, return_exceptions=True)
