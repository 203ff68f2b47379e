"""
Progress Channel
================

Bounded single-consumer queue for assembly progress events. When the
consumer falls behind, the oldest event is dropped so the producer never
blocks.
"""

import asyncio
import logging
from collections import deque
from typing import AsyncIterator, Deque

from .models import AssemblyProgress

logger = logging.getLogger(__name__)


class ProgressChannel:
    """Bounded progress queue; ``publish`` never blocks."""

    def __init__(self, maxsize: int = 64):
        if maxsize < 1:
            raise ValueError(f"maxsize must be at least 1, got {maxsize}")
        self._events: Deque[AssemblyProgress] = deque(maxlen=maxsize)
        self._ready = asyncio.Event()
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._events)

    def publish(self, event: AssemblyProgress) -> None:
        if self._closed:
            return
        if len(self._events) == self._events.maxlen:
            self.dropped += 1
            logger.debug(f"Progress channel full, dropping oldest event ({self.dropped} dropped)")
        self._events.append(event)
        self._ready.set()

    def close(self) -> None:
        """Stop accepting events; consumers drain what is left and stop."""
        self._closed = True
        self._ready.set()

    async def events(self) -> AsyncIterator[AssemblyProgress]:
        """Yield events until the channel is closed and drained."""
        while True:
            while self._events:
                yield self._events.popleft()
            if self._closed:
                return
            self._ready.clear()
            await self._ready.wait()
