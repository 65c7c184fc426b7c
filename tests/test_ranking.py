from decimal import Decimal

import pytest

from models.models import PriceQuote
from ranking import (
    UNKNOWN_DELIVERY_TIME,
    best,
    cheapest,
    delivery_time_value,
    fastest,
    filter_by_price_range,
    score,
    summarize,
)


def quote(link, final, time):
    return PriceQuote(link=link, finalCharge=final, deliveryTime=time)


@pytest.fixture
def quotes():
    return [
        quote("https://a.example/1", 100, "3 days"),
        quote("https://a.example/2", 80, "5 days"),
        quote("https://a.example/3", 90, "1 day"),
    ]


def test_picks_for_reference_set(quotes):
    assert cheapest(quotes) is quotes[1]
    assert fastest(quotes) is quotes[2]
    assert best(quotes) is quotes[2]

    assert score(quotes[0]) == pytest.approx(6.2)
    assert score(quotes[1]) == pytest.approx(10.16)
    assert score(quotes[2]) == pytest.approx(2.18)


@pytest.mark.parametrize("text, expected", [
    ("2-3 days", 2),
    ("1 day", 1),
    ("Delivery in 4 days", 4),
    ("24 hours", 24),
    ("Tomorrow", UNKNOWN_DELIVERY_TIME),
    ("3days", UNKNOWN_DELIVERY_TIME),
    (None, UNKNOWN_DELIVERY_TIME),
])
def test_delivery_time_value(text, expected):
    assert delivery_time_value(text) == expected


def test_ties_keep_encounter_order():
    first = quote("https://a.example/1", 50, "2 days")
    second = quote("https://a.example/2", 50, "2 days")

    assert cheapest([first, second]) is first
    assert fastest([first, second]) is first
    assert best([first, second]) is first


def test_missing_values_sort_last():
    no_price = PriceQuote(link="https://a.example/1", deliveryTime="1 day")
    no_time = quote("https://a.example/2", 500, "soon")
    normal = quote("https://a.example/3", 600, "2 days")

    assert cheapest([no_price, normal]) is normal
    assert fastest([no_time, normal]) is normal


def test_empty_input_returns_none():
    assert summarize([]) == {"cheapest": None, "fastest": None, "best": None}


def test_filter_by_price_range():
    items = [
        quote("https://a.example/1", 10, "1 day"),
        quote("https://a.example/2", 5000, "1 day"),
        quote("https://a.example/3", 5000.5, "1 day"),
        PriceQuote(link="https://a.example/4"),
    ]

    kept = filter_by_price_range(items)

    assert [q.final_charge for q in kept] == [Decimal("10"), Decimal("5000")]
    assert filter_by_price_range(items, 20, 100) == []
