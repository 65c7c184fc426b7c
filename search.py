import asyncio
import logging
import time
from typing import Callable, List, Optional
from pydantic import BaseModel

from models.models import MedicineQuery, PriceQuote
from streaming.consumer import GENERIC_ERROR, PriceDetailsClient

logger = logging.getLogger("med-price-scout")


class SearchOutcome(BaseModel):
    """Result of one price search: either quotes or a single error message."""

    query: MedicineQuery
    quotes: List[PriceQuote] = []
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# -----------------------------------------------------------------------------
# Search a single medicine
# -----------------------------------------------------------------------------
async def search_medicine_prices(query: MedicineQuery, client: PriceDetailsClient = None,
                                 on_quote: Optional[Callable[[PriceQuote], None]] = None) -> SearchOutcome:
    """
    Run one price search. Quotes gathered before a failure are discarded, so
    an outcome never carries both quotes and an error.
    """
    client = client or PriceDetailsClient()
    start = time.perf_counter()

    logger.info("Starting price search for %s (pack=%s, pin=%s)", query.name, query.pack, query.pin)

    try:
        quotes = await client.fetch_quotes(query, on_quote=on_quote)
    except Exception as e:
        # PriceScoutError carries the server's message; curl errors their own.
        logger.error("Error fetching medicine details for %s: %s", query.name, e)
        return SearchOutcome(query=query, error=str(e) or GENERIC_ERROR)

    elapsed = time.perf_counter() - start
    logger.info("Search for %s completed in %.2f seconds", query.name, elapsed)

    return SearchOutcome(query=query, quotes=quotes)


class PriceSearch:
    """
    Keeps at most one search in flight. Starting a new query cancels and
    replaces the previous one.

    Example:
        >>> search = PriceSearch()
        >>> task = search.start(MedicineQuery(name="Dolo 650", pack="15", pin="700001"))
        >>> outcome = await task
    """

    def __init__(self, client: PriceDetailsClient = None):
        self.client = client or PriceDetailsClient()
        self._task: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, query: MedicineQuery,
              on_quote: Optional[Callable[[PriceQuote], None]] = None) -> asyncio.Task:
        if self.cancel():
            logger.info("Cancelled in-flight search, replacing with %s", query.name)

        self._task = asyncio.create_task(search_medicine_prices(query, self.client, on_quote))
        return self._task

    def cancel(self) -> bool:
        if not self.in_flight:
            return False
        self._task.cancel()
        return True


# -----------------------------------------------------------------------------
# Batch search
# -----------------------------------------------------------------------------
async def batch_search(queries: List[MedicineQuery], client: PriceDetailsClient = None,
                       concurrency: int = 5) -> List[SearchOutcome]:
    """Search many medicines concurrently with a semaphore limit."""
    client = client or PriceDetailsClient()
    semaphore = asyncio.Semaphore(concurrency)

    async def bounded_search(index, query):
        async with semaphore:
            logger.info("Processing %d/%d: %s", index, len(queries), query.name)
            return await search_medicine_prices(query, client)

    tasks = [bounded_search(i, query) for i, query in enumerate(queries, 1)]
    return await asyncio.gather(*tasks)
