"""
Stream Relay.

Adapts the upstream price stream into the byte stream served to clients.
Complete lines are forwarded as soon as they arrive, partial lines are
flushed on a fixed interval so a slow upstream trickle never looks like a
stall, and an idle watchdog turns prolonged upstream silence into a
StreamTimeout instead of a hanging response.

Classes:
    StreamRelay: Per-request relay driving a StreamSession from OPEN to CLOSED.
"""

import asyncio
import codecs
import logging
from typing import AsyncIterable, AsyncIterator, Awaitable, Callable, Optional

import config
from models.errors import StreamTimeout
from models.models import CloseReason, StreamSession, StreamState

logger = logging.getLogger(__name__)

_EOF = object()


async def _read_next(chunks):
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return _EOF


class StreamRelay:
    """
    Relay one upstream byte stream to one downstream consumer.

    The relay is a single loop waiting on the pending upstream read with a
    deadline set to whichever comes first, the next flush tick or the idle
    deadline. There is at most one read in flight, so backpressure from the
    consumer reaches upstream. Every exit path (end of stream, timeout,
    upstream error, consumer cancellation) cancels the pending read and
    awaits `on_close`.

    Attributes:
        upstream: Async iterable of raw upstream chunks.
        session: StreamSession recording state, buffer and close reason.
        idle_timeout: Seconds without an upstream chunk before StreamTimeout.
        flush_interval: Seconds between flushes of a partial (unterminated) line.
        on_close: Coroutine function releasing the upstream connection.

    Example:
        >>> relay = StreamRelay(upstream.iter_chunks(), session, on_close=upstream.aclose)
        >>> async for data in relay:
        ...     await send(data)
    """

    def __init__(self, upstream: AsyncIterable[bytes], session: StreamSession,
                 idle_timeout: float = config.RELAY_IDLE_TIMEOUT,
                 flush_interval: float = config.RELAY_FLUSH_INTERVAL,
                 on_close: Optional[Callable[[], Awaitable]] = None):
        self.upstream = upstream
        self.session = session
        self.idle_timeout = idle_timeout
        self.flush_interval = flush_interval
        self.on_close = on_close
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.stream()

    def _take_complete_lines(self, text: str) -> bytes:
        buffer = self.session.buffer + text
        if "\n" not in buffer:
            self.session.buffer = buffer
            return b""

        complete, _, rest = buffer.rpartition("\n")
        self.session.buffer = rest
        return (complete + "\n").encode("utf-8")

    def _take_buffer(self, final: bool = False) -> bytes:
        data = self.session.buffer
        if final:
            data += self._decoder.decode(b"", final=True)
        self.session.buffer = ""
        return data.encode("utf-8")

    def _next_tick(self, next_flush: float, now: float) -> float:
        while next_flush <= now:
            next_flush += self.flush_interval
        return next_flush

    async def stream(self) -> AsyncIterator[bytes]:
        loop = asyncio.get_running_loop()
        session = self.session
        chunks = aiter(self.upstream)
        pending = None

        now = loop.time()
        idle_deadline = now + self.idle_timeout
        next_flush = now + self.flush_interval

        try:
            pending = asyncio.create_task(_read_next(chunks))

            while True:
                wait = min(idle_deadline, next_flush) - loop.time()
                done, _ = await asyncio.wait({pending}, timeout=max(wait, 0))

                if pending in done:
                    chunk = pending.result()

                    if chunk is _EOF:
                        tail = self._take_buffer(final=True)
                        session.close(CloseReason.NORMAL)
                        if tail:
                            yield tail
                        return

                    now = loop.time()
                    session.touch(now)
                    idle_deadline = now + self.idle_timeout

                    data = self._take_complete_lines(self._decoder.decode(chunk))
                    # A continuous trickle never lets the wait time out, so the tick is checked here too.
                    if now >= next_flush:
                        next_flush = self._next_tick(next_flush, now)
                        data += self._take_buffer()
                    pending = asyncio.create_task(_read_next(chunks))
                    if data:
                        yield data
                    continue

                now = loop.time()
                if now >= idle_deadline:
                    session.close(CloseReason.TIMED_OUT)
                    raise StreamTimeout(self.idle_timeout)

                if now >= next_flush:
                    next_flush = self._next_tick(next_flush, now)
                    if session.buffer:
                        session.state = StreamState.IDLE_FLUSHING
                        yield self._take_buffer()

        except (GeneratorExit, asyncio.CancelledError):
            session.close(CloseReason.CANCELLED)
            raise
        except Exception as e:
            session.close(CloseReason.ERRORED)
            logger.error("Relay for %s failed: %s", session.query.name, e)
            raise
        finally:
            if pending is not None:
                pending.cancel()
                await asyncio.gather(pending, return_exceptions=True)
            if self.on_close is not None:
                try:
                    await self.on_close()
                except Exception as e:
                    logger.warning("Failed to close upstream for %s: %s", session.query.name, e)

            logger.info(
                "Relay for %s closed (%s) after %.2f seconds",
                session.query.name,
                session.close_reason.value if session.close_reason else "unknown",
                loop.time() - session.started_at,
            )
