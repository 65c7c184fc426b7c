"""
Medicine Price Details Fetcher.

Opens the upstream price comparison stream for one medicine query. The
upstream service answers with a long-lived event stream of `data: {...}`
lines, one per pharmacy quote, arriving over an irregular time window.

Classes:
    UpstreamStream: An open upstream response together with its HTTP session.
    PriceDetailsFetcher: Retrying fetcher for the `scrape-data` endpoint.
"""

import logging
from typing import AsyncIterator, Optional
from urllib.parse import urlencode

from models.base_fetcher import BaseFetcher
from models.models import MedicineQuery, StreamSession

logger = logging.getLogger(__name__)


class UpstreamStream:
    """Open upstream response whose body has not been consumed yet."""

    def __init__(self, session, response):
        self.session = session
        self.response = response
        self._closed = False

    @property
    def status_code(self) -> int:
        return self.response.status_code

    def iter_chunks(self) -> AsyncIterator[bytes]:
        return self.response.aiter_content()

    async def aclose(self):
        """Tear down the upstream connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            await self.response.aclose()
        finally:
            await self.session.close()


class PriceDetailsFetcher(BaseFetcher):
    """
    Fetcher for the upstream `scrape-data` price comparison stream.

    Implementation Strategy:
        1. Build the URL from the URL-encoded medicine name, pack size and pin code
        2. Open the response in streaming mode, retrying with exponential backoff
        3. Hand the unread response back wrapped in an UpstreamStream

    Example:
        >>> fetcher = PriceDetailsFetcher()
        >>> query = MedicineQuery(name="Paracetamol", pack="10", pin="700001")
        >>> upstream = await fetcher.open_stream(query)
        >>> async for chunk in upstream.iter_chunks():
        ...     print(chunk)
    """

    vendor_id: str = "medicomp"
    headers: dict = {
        "accept": "text/event-stream",
        "accept-encoding": "gzip, deflate, br",
        "connection": "keep-alive",
    }

    def build_url(self, query: MedicineQuery) -> str:
        params = urlencode({
            "medname": query.name,
            "packSize": query.pack,
            "pincode": query.pin,
        })
        return f"{self.base_url.rstrip('/')}/scrape-data?{params}"

    async def open_stream(self, query: MedicineQuery,
                          stream_session: Optional[StreamSession] = None) -> UpstreamStream:
        """
        Open the upstream stream for `query`.

        Raises:
            GatewayUnavailable: Every attempt failed.
        """
        url = self.build_url(query)
        logger.info("Comparison URL: %s", url)

        session = self.new_session()
        try:
            response = await self.fetch_with_retry(session, url, stream=True, stream_session=stream_session)
        except BaseException:
            await session.close()
            raise

        return UpstreamStream(session, response)
