"""
Chunked transmission of receipt bytes to a printer channel.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, Set

from .config import config
from .errors import WriteFailed
from .negotiator import PrinterChannel
from .utils.logger import logger


def split_chunks(data: bytes, chunk_size: int) -> List[bytes]:
    """Split data into consecutive chunks of at most chunk_size bytes."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [data[i:i + chunk_size] for i in range(0, len(data), chunk_size)]


class ScheduledTeardown:
    """Handle for a disconnect waiting out its grace period."""

    def __init__(self, task: "asyncio.Task"):
        self._task = task

    def cancel(self) -> bool:
        return self._task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._task.cancelled()

    @property
    def done(self) -> bool:
        return self._task.done()

    async def wait(self) -> None:
        """Wait until the teardown ran or was cancelled."""
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise


class TeardownTimer:
    """Runs teardown actions after a delay on the running event loop."""

    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self._sleep = sleep
        self._pending: Set[ScheduledTeardown] = set()

    def schedule(self, delay: float, action: Callable[[], Awaitable[None]]) -> ScheduledTeardown:
        task = asyncio.ensure_future(self._run(delay, action))
        handle = ScheduledTeardown(task)
        self._pending.add(handle)
        task.add_done_callback(lambda _: self._pending.discard(handle))
        return handle

    async def _run(self, delay: float, action: Callable[[], Awaitable[None]]) -> None:
        await self._sleep(delay)
        try:
            await action()
        except Exception as e:
            # The receipt is already printed; a failed disconnect only matters for the log
            logger.warning("⚠️ Printer disconnect failed", error=str(e))

    async def drain(self) -> None:
        """Wait for every pending teardown."""
        for handle in list(self._pending):
            await handle.wait()


class ChunkedTransport:
    """
    Streams bytes to a channel in ordered, paced chunks.

    Each write completes before the next one starts; the printer gives no
    flow control, so a fixed pause between chunks keeps its buffer from
    overflowing.
    """

    def __init__(self, chunk_size: Optional[int] = None, chunk_delay: Optional[float] = None,
                 disconnect_grace: Optional[float] = None, timer: Optional[TeardownTimer] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.chunk_size = chunk_size or config.CHUNK_SIZE
        self.chunk_delay = chunk_delay if chunk_delay is not None else config.CHUNK_DELAY_MS / 1000
        self.disconnect_grace = (
            disconnect_grace if disconnect_grace is not None else config.DISCONNECT_GRACE_MS / 1000
        )
        self.timer = timer or TeardownTimer()
        self._sleep = sleep

    async def send(self, channel: PrinterChannel, data: bytes) -> int:
        """
        Write all data to the channel.

        Returns:
            Number of chunks written
        """
        chunks = split_chunks(data, self.chunk_size)
        bytes_sent = 0

        for index, chunk in enumerate(chunks):
            if index:
                await self._sleep(self.chunk_delay)
            try:
                await channel.write(chunk)
            except Exception as e:
                raise WriteFailed(
                    chunk_index=index,
                    bytes_sent=bytes_sent,
                    message=f"{WriteFailed.user_message} at chunk {index + 1}/{len(chunks)}: {e}",
                ) from e
            bytes_sent += len(chunk)
            logger.chunk_sent(index, len(chunk), len(chunks))

        return len(chunks)

    def schedule_teardown(self, channel: PrinterChannel) -> ScheduledTeardown:
        """Disconnect after the grace period so the last chunk can finish printing."""
        logger.debug("⏳ Disconnect scheduled", grace_seconds=self.disconnect_grace)
        return self.timer.schedule(self.disconnect_grace, channel.close)

    async def transmit(self, channel: PrinterChannel, data: bytes) -> ScheduledTeardown:
        """Send data, then schedule the channel teardown."""
        await self.send(channel, data)
        return self.schedule_teardown(channel)
