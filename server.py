import logging
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from starlette.background import BackgroundTask

import config
from fetchers.medicine_name_fetcher import MedicineNameFetcher
from fetchers.price_details_fetcher import PriceDetailsFetcher
from models.errors import MedicineNotFound, PriceScoutError
from models.models import MedicineQuery, StreamSession
from streaming.relay import StreamRelay

logger = logging.getLogger("med-price-scout")

app = FastAPI(title="Med Price Scout")

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
}


class RelaySettings(BaseModel):
    idle_timeout: float = config.RELAY_IDLE_TIMEOUT
    flush_interval: float = config.RELAY_FLUSH_INTERVAL


# ---------------------------------------------------------
# Dependencies (overridable in tests)
# ---------------------------------------------------------
def get_price_fetcher() -> PriceDetailsFetcher:
    return PriceDetailsFetcher()


def get_name_fetcher() -> MedicineNameFetcher:
    return MedicineNameFetcher()


def get_relay_settings() -> RelaySettings:
    return RelaySettings()


def _present(value: Optional[str]) -> bool:
    return bool(value and value.strip())


# ---------------------------------------------------------
# Price details stream
# ---------------------------------------------------------
@app.get("/price-details")
async def price_details(
    name: Optional[str] = None,
    pack: Optional[str] = None,
    pin: Optional[str] = None,
    fetcher: PriceDetailsFetcher = Depends(get_price_fetcher),
    relay_settings: RelaySettings = Depends(get_relay_settings),
):
    """
    Relay the upstream price comparison stream for one medicine.

    Failures before streaming starts are reported as JSON with a status code;
    once the 200 response has started, failure can only abort the body.
    """
    if not (_present(name) and _present(pack) and _present(pin)):
        return JSONResponse(status_code=400, content={"error": "Missing name, pack, or pin"})

    query = MedicineQuery(name=name, pack=pack, pin=pin)
    session = StreamSession(query=query)

    try:
        upstream = await fetcher.open_stream(query, stream_session=session)
    except PriceScoutError as e:
        logger.error("Error fetching data for %s after %d attempts: %s", query.name, session.attempts, e)
        return JSONResponse(status_code=500, content={"error": str(e)})

    relay = StreamRelay(
        upstream.iter_chunks(),
        session,
        idle_timeout=relay_settings.idle_timeout,
        flush_interval=relay_settings.flush_interval,
        on_close=upstream.aclose,
    )

    # The background close covers a response that never starts iterating.
    return StreamingResponse(
        relay.stream(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        background=BackgroundTask(upstream.aclose),
    )


# ---------------------------------------------------------
# Medicine name autocomplete
# ---------------------------------------------------------
@app.get("/medicine-search")
async def medicine_search(
    name: Optional[str] = None,
    fetcher: MedicineNameFetcher = Depends(get_name_fetcher),
):
    if not _present(name):
        return JSONResponse(status_code=400, content={"error": "Missing name"})

    try:
        suggestions = await fetcher.search(name.strip())
    except MedicineNotFound as e:
        return JSONResponse(status_code=404, content={"error": str(e)})
    except PriceScoutError as e:
        logger.error("Error fetching medicine data: %s", e)
        return JSONResponse(status_code=500, content={"error": str(e)})

    return JSONResponse(
        content=[s.to_wire() for s in suggestions],
        headers={"Cache-Control": "max-age=300, s-maxage=600"},
    )


# ---------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------
if __name__ == "__main__":
    config.configure_logging()
    uvicorn.run(app, host=config.SERVER_HOST, port=config.SERVER_PORT)
