import asyncio
import logging
from typing import AsyncIterator, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Cooperative abort flag handed to the transport and the stream loop.

    The loop checks ``cancelled`` before every chunk and every frame, and
    ``guard`` races each pending read against ``cancel()`` so a stalled
    backend is abandoned as soon as the user asks.
    """

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        if not self._event.is_set():
            logger.info("Cancellation requested")
        self._event.set()

    async def wait(self):
        await self._event.wait()

    async def guard(self, source: AsyncIterator[T]) -> AsyncIterator[T]:
        """Yield items from ``source`` until it ends or the token fires."""
        iterator = source.__aiter__()
        cancel_waiter = asyncio.ensure_future(self.wait())
        next_item = None
        try:
            while not self.cancelled:
                next_item = asyncio.ensure_future(iterator.__anext__())
                done, _ = await asyncio.wait(
                    {next_item, cancel_waiter},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if next_item not in done:
                    next_item.cancel()
                    try:
                        await next_item
                    except (asyncio.CancelledError, StopAsyncIteration):
                        pass
                    return
                try:
                    item = next_item.result()
                except StopAsyncIteration:
                    return
                yield item
        finally:
            cancel_waiter.cancel()
            if next_item is not None and not next_item.done():
                next_item.cancel()
