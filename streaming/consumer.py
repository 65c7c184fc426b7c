"""
Client Consumer for the price details stream.

Reads the relayed stream chunk by chunk, decodes UTF-8 incrementally,
frames it into lines, parses every `data:` line into a PriceQuote and
accumulates quotes first-wins by purchase link.

Classes:
    LineDecoder: Incremental UTF-8 decoder that yields complete lines.
    QuoteBook: Ordered, link-deduplicated collection of quotes.
    PriceDetailsClient: curl_cffi client for the `/price-details` endpoint.

Functions:
    parse_data_line: Parse one `data:` line, None if it is not a valid quote.
    read_with_idle_timeout: Re-yield chunks, failing when a read takes too long.
    iter_price_quotes: Turn a byte stream into PriceQuote objects.
"""

import asyncio
import codecs
import json
import logging
from contextlib import aclosing
from typing import AsyncIterable, AsyncIterator, Callable, List, Optional
from urllib.parse import urlencode
from curl_cffi.requests import AsyncSession
from pydantic import ValidationError

import config
from models.errors import PriceAPIError, ResponseTimeout
from models.models import MedicineQuery, PriceQuote

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
GENERIC_ERROR = "Failed to fetch medicine details"

_EOF = object()


class LineDecoder:
    """Decode bytes as UTF-8 across chunk boundaries and split on newlines."""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._tail = ""

    def feed(self, chunk: bytes) -> List[str]:
        text = self._tail + self._decoder.decode(chunk)
        *lines, self._tail = text.split("\n")
        return lines

    def flush(self) -> List[str]:
        """Return the unterminated last line, if any, once the stream has ended."""
        text = self._tail + self._decoder.decode(b"", final=True)
        self._tail = ""
        return [text] if text else []


def parse_data_line(line: str) -> Optional[PriceQuote]:
    line = line.rstrip("\r")
    if not line.startswith(DATA_PREFIX):
        return None

    try:
        return PriceQuote.model_validate_json(line[len(DATA_PREFIX):])
    except ValidationError as e:
        logger.warning("Failed to parse streamed data: %s", e.errors(include_url=False)[0]["msg"])
        return None


class QuoteBook:
    """Quotes in arrival order, at most one per purchase link (first one wins)."""

    def __init__(self):
        self._quotes: List[PriceQuote] = []
        self._links = set()

    def add(self, quote: PriceQuote) -> bool:
        if quote.link in self._links:
            return False
        self._links.add(quote.link)
        self._quotes.append(quote)
        return True

    def clear(self):
        self._quotes.clear()
        self._links.clear()

    @property
    def quotes(self) -> List[PriceQuote]:
        return list(self._quotes)

    def __len__(self):
        return len(self._quotes)

    def __iter__(self):
        return iter(list(self._quotes))


async def _read_next(chunks):
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return _EOF


async def read_with_idle_timeout(chunks: AsyncIterable[bytes],
                                 idle_timeout: float = config.CLIENT_IDLE_TIMEOUT) -> AsyncIterator[bytes]:
    """
    Re-yield `chunks`, raising ResponseTimeout when one read exceeds `idle_timeout`.
    """
    iterator = aiter(chunks)
    while True:
        try:
            chunk = await asyncio.wait_for(_read_next(iterator), timeout=idle_timeout)
        except asyncio.TimeoutError:
            raise ResponseTimeout(idle_timeout) from None

        if chunk is _EOF:
            return
        yield chunk


async def iter_price_quotes(chunks: AsyncIterable[bytes],
                            idle_timeout: float = config.CLIENT_IDLE_TIMEOUT) -> AsyncIterator[PriceQuote]:
    """Yield every valid quote in the stream, in arrival order (duplicates included)."""
    lines = LineDecoder()

    async with aclosing(read_with_idle_timeout(chunks, idle_timeout)) as reader:
        async for chunk in reader:
            for line in lines.feed(chunk):
                quote = parse_data_line(line)
                if quote is not None:
                    yield quote

    for line in lines.flush():
        quote = parse_data_line(line)
        if quote is not None:
            yield quote


def _error_from_body(body: bytes) -> Optional[str]:
    try:
        data = json.loads(body)
    except ValueError:
        return None
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return None


class PriceDetailsClient:
    """
    Streaming client for the `/price-details` endpoint.

    Example:
        >>> client = PriceDetailsClient("http://localhost:8000")
        >>> query = MedicineQuery(name="Paracetamol", pack="10", pin="700001")
        >>> quotes = await client.fetch_quotes(query)
    """

    def __init__(self, base_url: str = config.PRICE_API_URL,
                 idle_timeout: float = config.CLIENT_IDLE_TIMEOUT,
                 session_factory: Callable = AsyncSession):
        self.base_url = base_url.rstrip("/")
        self.idle_timeout = idle_timeout
        self.session_factory = session_factory

    def build_url(self, query: MedicineQuery) -> str:
        params = urlencode({"name": query.name, "pack": query.pack, "pin": query.pin})
        return f"{self.base_url}/price-details?{params}"

    async def stream_quotes(self, query: MedicineQuery) -> AsyncIterator[PriceQuote]:
        """
        Yield quotes as they arrive. Duplicates are not filtered here.

        Raises:
            PriceAPIError: The endpoint answered with a non-200 status.
            ResponseTimeout: No chunk arrived within `idle_timeout`.
        """
        url = self.build_url(query)

        async with self.session_factory() as s:
            resp = await s.get(url, headers={"accept": "text/event-stream"}, stream=True, timeout=None)
            try:
                if resp.status_code != 200:
                    body = await resp.acontent()
                    message = _error_from_body(body) or f"HTTP error! status: {resp.status_code}"
                    raise PriceAPIError(message, status_code=resp.status_code)

                async with aclosing(iter_price_quotes(resp.aiter_content(), self.idle_timeout)) as quotes:
                    async for quote in quotes:
                        yield quote
            finally:
                await resp.aclose()

    async def fetch_quotes(self, query: MedicineQuery,
                           on_quote: Optional[Callable[[PriceQuote], None]] = None) -> List[PriceQuote]:
        """
        Collect the deduplicated quotes for `query`.

        `on_quote` is called for every newly accepted quote, in arrival order.
        On any error the partial result is discarded and the error propagates.
        """
        book = QuoteBook()
        async with aclosing(self.stream_quotes(query)) as quotes:
            async for quote in quotes:
                if book.add(quote) and on_quote is not None:
                    on_quote(quote)

        logger.info("Received %d quotes for %s", len(book), query.name)
        return book.quotes
