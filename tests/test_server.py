import httpx
import pytest
from fastapi.testclient import TestClient

import server
from conftest import FakeResponse, FakeSession, SleepRecorder, data_line
from fetchers.medicine_name_fetcher import MedicineNameFetcher
from fetchers.price_details_fetcher import PriceDetailsFetcher
from models.models import MedicineQuery
from search import search_medicine_prices
from streaming.consumer import PriceDetailsClient


@pytest.fixture
def upstream():
    """Scriptable upstream: set `.session` before issuing a request."""

    class Upstream:
        def __init__(self):
            self.session = None
            self.sleep = SleepRecorder()

        def fetcher(self):
            return PriceDetailsFetcher(
                base_url="https://upstream.example",
                session_factory=lambda: self.session,
                sleep=self.sleep,
            )

    stub = Upstream()
    server.app.dependency_overrides[server.get_price_fetcher] = stub.fetcher
    server.app.dependency_overrides[server.get_relay_settings] = lambda: server.RelaySettings(
        idle_timeout=2.0, flush_interval=0.5,
    )
    yield stub
    server.app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(server.app)


@pytest.mark.parametrize("params", [
    {},
    {"name": "Paracetamol", "pack": "10"},
    {"name": "Paracetamol", "pin": "700001"},
    {"name": "  ", "pack": "10", "pin": "700001"},
])
def test_price_details_requires_all_params(client, upstream, params):
    resp = client.get("/price-details", params=params)

    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing name, pack, or pin"}


def test_price_details_relays_stream(client, upstream):
    lines = [data_line("https://a.example/1", name="Apollo"), data_line("https://a.example/2", name="1mg")]
    response = FakeResponse(chunks=[lines[0][:15], lines[0][15:] + lines[1]])
    upstream.session = FakeSession(response)

    resp = client.get("/price-details", params={"name": "Paracetamol", "pack": "10", "pin": "700001"})

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.headers["cache-control"] == "no-cache, no-transform"
    assert resp.headers["connection"] == "keep-alive"
    assert resp.content == b"".join(lines)
    assert response.closed
    assert upstream.session.closed

    url = upstream.session.calls[0][0]
    assert url == "https://upstream.example/scrape-data?medname=Paracetamol&packSize=10&pincode=700001"


def test_price_details_exhausted_retries(client, upstream):
    upstream.session = FakeSession(FakeResponse(status_code=503))

    resp = client.get("/price-details", params={"name": "Paracetamol", "pack": "10", "pin": "700001"})

    assert resp.status_code == 500
    assert resp.json() == {"error": "API responded with status: 503"}
    assert len(upstream.session.calls) == 3
    assert upstream.sleep.delays == [1, 2]
    assert upstream.session.closed


def test_medicine_search(client):
    session = FakeSession(FakeResponse(json_data=[{"medicineName": "Dolo 650", "packSize": "15 tablets", "manufacturer": "Micro Labs"}]))
    server.app.dependency_overrides[server.get_name_fetcher] = lambda: MedicineNameFetcher(session_factory=lambda: session)
    try:
        resp = client.get("/medicine-search", params={"name": "dolo"})
    finally:
        server.app.dependency_overrides.clear()

    assert resp.status_code == 200
    assert resp.json() == [{"medicineName": "Dolo 650", "packSize": "15 tablets", "manufacturer": "Micro Labs"}]
    assert resp.headers["cache-control"] == "max-age=300, s-maxage=600"


@pytest.mark.parametrize("outcome, status, error", [
    (FakeResponse(json_data=[]), 404, "No medicine found"),
    (FakeResponse(status_code=500), 500, "API responded with status: 500"),
    (FakeResponse(json_data=ValueError("not json")), 500, "Failed to parse medicine data"),
    (FakeResponse(json_data=[{"name": "Dolo 650"}]), 500, "Unexpected medicine data format"),
])
def test_medicine_search_errors(client, outcome, status, error):
    session = FakeSession(outcome)
    server.app.dependency_overrides[server.get_name_fetcher] = lambda: MedicineNameFetcher(session_factory=lambda: session)
    try:
        resp = client.get("/medicine-search", params={"name": "dolo"})
    finally:
        server.app.dependency_overrides.clear()

    assert resp.status_code == status
    assert resp.json() == {"error": error}


def test_medicine_search_requires_name(client):
    resp = client.get("/medicine-search")

    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing name"}


# ---------------------------------------------------------
# Client -> server -> upstream, in process
# ---------------------------------------------------------
class HttpxStreamResponse:
    """Presents an httpx streamed response with the curl_cffi methods the client uses."""

    def __init__(self, response: httpx.Response):
        self._response = response
        self.status_code = response.status_code

    def aiter_content(self):
        return self._response.aiter_bytes()

    async def acontent(self):
        return await self._response.aread()

    async def aclose(self):
        await self._response.aclose()


class ASGISession:
    def __init__(self, app):
        self._client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")

    async def get(self, url, headers=None, stream=False, timeout=None):
        request = self._client.build_request("GET", url, headers=headers)
        return HttpxStreamResponse(await self._client.send(request, stream=True))

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self._client.aclose()


async def test_end_to_end_paracetamol_search(upstream):
    upstream.session = FakeSession(FakeResponse(chunks=[
        data_line("https://shop.example/a", name="Apollo", finalCharge="100", deliveryTime="3 days"),
        data_line("https://shop.example/b", name="Netmeds", finalCharge="80", deliveryTime="5 days"),
        data_line("https://shop.example/a", name="Apollo", finalCharge="100", deliveryTime="3 days"),
        data_line("https://shop.example/c", name="1mg", finalCharge="90", deliveryTime="1 day"),
    ]))
    client = PriceDetailsClient("http://testserver", session_factory=lambda: ASGISession(server.app))

    outcome = await search_medicine_prices(MedicineQuery(name="Paracetamol", pack="10", pin="700001"), client)

    assert outcome.ok
    assert outcome.error is None
    assert [q.link for q in outcome.quotes] == [
        "https://shop.example/a",
        "https://shop.example/b",
        "https://shop.example/c",
    ]
