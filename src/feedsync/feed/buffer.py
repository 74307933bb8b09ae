"""
Bounded producer/consumer buffer between the decoder and the reconciliation engine.

The producer (decoder) stops as soon as ``high_water`` records are waiting and
only resumes once the consumer has drained the buffer down to ``low_water``.
Decoding therefore never runs more than ``high_water`` records ahead of the
catalog writes, however large the feed is.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.feed.buffer")

T = TypeVar("T")

DEFAULT_HIGH_WATER = 16
DEFAULT_LOW_WATER = 4


@dataclass(frozen=True)
class BufferStats:
    records: int
    peak: int
    producer_waits: int


class BoundedRecordBuffer(Generic[T]):
    """
    Async FIFO with low/high-water flow control.

    ``peak`` records the largest number of items ever buffered at once.
    """

    def __init__(self, high_water: int = DEFAULT_HIGH_WATER, low_water: int = DEFAULT_LOW_WATER):
        if high_water < 1:
            raise ValueError("high_water must be >= 1")
        if not 0 <= low_water < high_water:
            raise ValueError("low_water must be >= 0 and below high_water")
        self.high_water = high_water
        self.low_water = low_water
        self._items: deque[T] = deque()
        self._closed = False
        self._can_put = asyncio.Event()
        self._can_put.set()
        self._can_get = asyncio.Event()
        self.peak = 0
        self.total = 0
        self.producer_waits = 0

    def __len__(self) -> int:
        return len(self._items)

    @property
    def closed(self) -> bool:
        return self._closed

    async def put(self, item: T) -> None:
        """Append an item, suspending while the buffer is above the low-water mark after filling up."""
        if self._closed:
            raise RuntimeError("put() on a closed buffer")
        if len(self._items) >= self.high_water:
            self._can_put.clear()
        while not self._can_put.is_set():
            self.producer_waits += 1
            await self._can_put.wait()
        self._items.append(item)
        self.total += 1
        self.peak = max(self.peak, len(self._items))
        self._can_get.set()

    async def get(self) -> T:
        """
        Pop the oldest item.

        Raises:
            StopAsyncIteration: Once the buffer is closed and empty
        """
        while not self._items:
            if self._closed:
                raise StopAsyncIteration
            self._can_get.clear()
            await self._can_get.wait()
        item = self._items.popleft()
        if len(self._items) <= self.low_water:
            self._can_put.set()
        return item

    def close(self) -> None:
        """No more items will be put; consumers drain what is left."""
        self._closed = True
        self._can_get.set()
        self._can_put.set()

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    async def __anext__(self) -> T:
        return await self.get()


async def pump(source: AsyncIterable[T], buffer: BoundedRecordBuffer[T]) -> None:
    """Producer side: feed ``source`` into ``buffer``, closing both when done."""
    try:
        async for item in source:
            await buffer.put(item)
    finally:
        buffer.close()
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()


async def drain(buffer: BoundedRecordBuffer[T], consumer: Callable[[T], Awaitable[object]]) -> None:
    """Consumer side: hand every buffered item to ``consumer`` in order."""
    async for item in buffer:
        await consumer(item)


async def run_pipeline(
    source: AsyncIterable[T],
    consumer: Callable[[T], Awaitable[object]],
    *,
    high_water: int = DEFAULT_HIGH_WATER,
    low_water: int = DEFAULT_LOW_WATER,
) -> BufferStats:
    """
    Pump ``source`` through a bounded buffer into ``consumer``, one item at a time.

    A failure on either side stops the other: a consumer error cancels the
    producer; a producer error is raised after the items it already buffered
    have been consumed.
    """
    buffer: BoundedRecordBuffer[T] = BoundedRecordBuffer(high_water, low_water)
    producer = asyncio.create_task(pump(source, buffer))
    try:
        await drain(buffer, consumer)
    except BaseException:
        producer.cancel()
        await asyncio.gather(producer, return_exceptions=True)
        raise

    await producer
    logger.debug(
        f"Pipeline drained: records={buffer.total} peak_buffered={buffer.peak} producer_waits={buffer.producer_waits}"
    )
    return BufferStats(records=buffer.total, peak=buffer.peak, producer_waits=buffer.producer_waits)
