"""FIFO queue that runs one connection's synthesis requests one at a time.

``submit`` appends to the tail and starts a worker task if none is running.
The worker is a plain loop that awaits the handler for the head request until
the queue is empty, then clears the ``processing`` flag. Because the flag is
only checked and changed between awaits, at most one worker (and so at most
one upstream call) exists per queue on a single event loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable

from tts_relay.models.schemas import SynthesisRequest

logger = logging.getLogger(__name__)

RequestHandler = Callable[[SynthesisRequest], Awaitable[bool]]


class RequestQueue:
    """Serializes synthesis requests submitted on one connection."""

    def __init__(self, handler: RequestHandler, connection_id: str = "") -> None:
        self._handler = handler
        self._connection_id = connection_id
        self._pending: deque[SynthesisRequest] = deque()
        self._processing = False
        self._worker: asyncio.Task | None = None
        self.completed = 0
        self.failed = 0

    @property
    def processing(self) -> bool:
        return self._processing

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def worker(self) -> asyncio.Task | None:
        return self._worker

    def submit(self, request: SynthesisRequest) -> None:
        """Append *request* and make sure a worker is draining the queue."""
        self._pending.append(request)
        logger.debug(
            "Queued request (pending=%d, processing=%s)",
            len(self._pending), self._processing,
            extra={"connection_id": self._connection_id},
        )
        self.process_next()

    def process_next(self) -> None:
        """Start the worker if it is not already running. Safe to call repeatedly."""
        if self._processing or not self._pending:
            return
        self._processing = True
        self._worker = asyncio.create_task(self._drain())

    def discard_pending(self) -> int:
        """Drop every request that has not started; the in-flight one continues."""
        dropped = len(self._pending)
        self._pending.clear()
        if dropped:
            logger.info(
                "Discarded %d queued requests", dropped,
                extra={"connection_id": self._connection_id},
            )
        return dropped

    async def _drain(self) -> None:
        try:
            while self._pending:
                request = self._pending.popleft()
                try:
                    ok = await self._handler(request)
                except Exception:
                    logger.exception(
                        "Synthesis request failed",
                        extra={"connection_id": self._connection_id},
                    )
                    ok = False
                if ok:
                    self.completed += 1
                else:
                    self.failed += 1
        finally:
            self._processing = False
