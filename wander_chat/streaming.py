import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional

from fastapi.responses import StreamingResponse

logger = logging.getLogger(__name__)

ERROR_MESSAGE = "Something went wrong. Please try again later."
DISCONNECT_POLL_SECONDS = 0.5

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # Stop reverse proxies from buffering the stream.
    "X-Accel-Buffering": "no",
}


def format_event(data: str, event: Optional[str] = None) -> str:
    """Encode one Server-Sent Event frame; multi-line data becomes several data: lines."""
    lines = []
    if event:
        lines.append(f"event: {event}")
    lines.extend(f"data: {line}" for line in data.split("\n"))
    return "\n".join(lines) + "\n\n"


# Sentinels returned by SSEStreamAdapter._next_fragment.
_END = object()
_DISCONNECTED = object()


async def _anext_or_end(iterator: AsyncIterator[str]):
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _END


class SSEStreamAdapter:
    """
    Turns a fragment stream into SSE frames: one ``data`` frame per fragment,
    then exactly one terminal ``complete`` or ``error`` frame.

    ``is_disconnected`` is checked before each fragment is pulled and polled
    every ``poll_interval`` seconds while a pull is pending, so a client that
    leaves during a slow tool hop cancels the model call without waiting for the
    next fragment. Once the peer is gone the upstream generator is closed and
    nothing more is emitted. Cancellation from the server (client dropped
    mid-write) closes the upstream the same way.
    """

    def __init__(
        self,
        fragments: AsyncIterator[str],
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
        poll_interval: float = DISCONNECT_POLL_SECONDS,
    ):
        self._fragments = fragments
        self._is_disconnected = is_disconnected
        self._poll_interval = poll_interval
        self.fragments_sent = 0

    async def _peer_gone(self) -> bool:
        return self._is_disconnected is not None and await self._is_disconnected()

    async def _wait_for_disconnect(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            if await self._is_disconnected():
                return

    async def _next_fragment(self, iterator: AsyncIterator[str]):
        if self._is_disconnected is None:
            return await _anext_or_end(iterator)

        pull = asyncio.ensure_future(_anext_or_end(iterator))
        watch = asyncio.ensure_future(self._wait_for_disconnect())
        try:
            await asyncio.wait({pull, watch}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (pull, watch):
                if not task.done():
                    task.cancel()
            # The upstream must be idle again before it can be closed.
            await asyncio.gather(pull, watch, return_exceptions=True)

        if pull.cancelled():
            watch.result()
            return _DISCONNECTED
        return pull.result()

    async def _close_upstream(self) -> None:
        aclose = getattr(self._fragments, "aclose", None)
        if aclose is not None:
            await aclose()

    async def __aiter__(self) -> AsyncIterator[str]:
        iterator = self._fragments.__aiter__()
        try:
            while True:
                if await self._peer_gone():
                    logger.info("Client disconnected after %d fragment(s); cancelling stream", self.fragments_sent)
                    return
                fragment = await self._next_fragment(iterator)
                if fragment is _DISCONNECTED:
                    logger.info(
                        "Client disconnected while waiting for the model after %d fragment(s); cancelling stream",
                        self.fragments_sent,
                    )
                    return
                if fragment is _END:
                    break
                yield format_event(fragment)
                self.fragments_sent += 1
        except asyncio.CancelledError:
            logger.info("Stream cancelled after %d fragment(s)", self.fragments_sent)
            raise
        except Exception:
            logger.exception("Error during chat stream after %d fragment(s)", self.fragments_sent)
            yield format_event(ERROR_MESSAGE, event="error")
            return
        finally:
            await self._close_upstream()

        logger.info("Chat stream completed successfully. Fragments sent: %d", self.fragments_sent)
        yield format_event("", event="complete")


def streaming_response(adapter: SSEStreamAdapter) -> StreamingResponse:
    return StreamingResponse(adapter, media_type="text/event-stream", headers=SSE_HEADERS)
