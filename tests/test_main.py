import csv

import pytest

import main
from models.models import MedicineQuery, PriceQuote
from search import SearchOutcome


def test_read_medicines_from_csv(tmp_path):
    path = tmp_path / "medicines.csv"
    path.write_text(
        "name,pack,pin\n"
        "Paracetamol,10,700001\n"
        "Dolo 650,15,\n"
        ",10,700001\n",
        encoding="utf-8",
    )

    queries = main.read_medicines_from_csv(str(path), default_pin="110001")

    assert queries == [
        MedicineQuery(name="Paracetamol", pack="10", pin="700001"),
        MedicineQuery(name="Dolo 650", pack="15", pin="110001"),
    ]


def test_read_medicines_requires_name_and_pack(tmp_path):
    path = tmp_path / "mpns.csv"
    path.write_text("mpn\nBX8071512100F\n", encoding="utf-8")

    with pytest.raises(ValueError, match="'name' and 'pack'"):
        main.read_medicines_from_csv(str(path))


def test_write_results_to_csv(tmp_path):
    query = MedicineQuery(name="Paracetamol", pack="10", pin="700001")
    outcomes = [
        SearchOutcome(query=query, quotes=[
            PriceQuote(link="https://a.example/1", name="Apollo", finalCharge=100, deliveryTime="3 days"),
            PriceQuote(link="https://a.example/2", name="Netmeds", finalCharge=80, deliveryTime="5 days"),
            PriceQuote(link="https://a.example/3", name="1mg", finalCharge=90, deliveryTime="1 day"),
        ]),
        SearchOutcome(query=MedicineQuery(name="Crocin", pack="15", pin="700001"), error="Stream timeout"),
    ]
    path = tmp_path / "results.csv"

    main.write_results_to_csv(outcomes, str(path))

    with open(path, encoding="utf-8") as f:
        rows = list(csv.DictReader(f))

    assert rows[0]["cheapest_vendor"] == "Netmeds"
    assert rows[0]["fastest_vendor"] == "1mg"
    assert rows[0]["best_vendor"] == "1mg"
    assert rows[0]["quotes"] == "3"
    assert rows[1]["error"] == "Stream timeout"
    assert rows[1]["cheapest_vendor"] == ""


async def test_main_single_search(monkeypatch):
    captured = {}

    async def fake_search(query, client):
        captured["query"] = query
        captured["base_url"] = client.base_url
        return SearchOutcome(query=query)

    monkeypatch.setattr(main, "search_medicine_prices", fake_search)

    outcome = await main.main(["--name", "Dolo 650", "--pack", "15", "--api-url", "http://api.example/"])

    assert outcome.ok
    assert captured["query"] == MedicineQuery(name="Dolo 650", pack="15", pin=main.config.DEFAULT_PIN)
    assert captured["base_url"] == "http://api.example"


async def test_main_requires_pack_with_name():
    with pytest.raises(SystemExit):
        await main.main(["--name", "Dolo 650"])
