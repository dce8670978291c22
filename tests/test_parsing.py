from datetime import datetime

import pytest

from mls_sync.domain.parsing import (
    get_first,
    normalize_status,
    parse_date,
    parse_feature_list,
    parse_price,
    to_float,
    to_int,
)
from mls_sync.domain.types import ListingStatus


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("ACT", ListingStatus.active),
        ("Active", ListingStatus.active),
        ("PND", ListingStatus.pending),
        ("under_contract", ListingStatus.pending),
        ("SLD", ListingStatus.sold),
        ("Closed", ListingStatus.sold),
        ("CAN", ListingStatus.withdrawn),
        ("EXP", ListingStatus.expired),
        ("Something Else", ListingStatus.unknown),
        (None, ListingStatus.unknown),
        ("", ListingStatus.unknown),
    ],
)
def test_normalize_status(raw, expected):
    assert normalize_status(raw) == expected


def test_parse_price_handles_currency_strings():
    assert parse_price("$1,250,000") == 1250000.0
    assert parse_price(450000) == 450000.0
    assert parse_price("450000 USD") == 450000.0


def test_parse_price_unparsable_is_none_not_zero():
    assert parse_price("call for price") is None
    assert parse_price("") is None
    assert parse_price(None) is None
    assert parse_price(-5) is None


def test_numeric_coercion():
    assert to_float("1,850") == 1850.0
    assert to_float(float("nan")) is None
    assert to_float(True) is None
    assert to_int("2.5") == 2
    assert to_int("n/a") is None


@pytest.mark.parametrize("raw", ["NaN", "nan", "inf", "-Infinity", "1e400", float("inf"), 10**400])
def test_non_finite_numbers_are_absent(raw):
    assert to_float(raw) is None
    assert to_int(raw) is None
    assert parse_price(raw) is None


def test_parse_date_formats():
    assert parse_date("03/15/2024") == datetime(2024, 3, 15)
    assert parse_date("2024-03-15T10:30:00") == datetime(2024, 3, 15, 10, 30)
    assert parse_date("20240315") == datetime(2024, 3, 15)
    assert parse_date("not a date") is None


def test_parse_date_converts_aware_values_to_naive_utc():
    assert parse_date("2024-03-15T10:30:00Z") == datetime(2024, 3, 15, 10, 30)
    assert parse_date("2024-03-15T10:30:00-07:00") == datetime(2024, 3, 15, 17, 30)


def test_feature_list_and_get_first():
    assert parse_feature_list("Deck, Fenced Yard ,") == ["Deck", "Fenced Yard"]
    assert parse_feature_list("") is None
    assert parse_feature_list({"type": "Garage"}) == {"type": "Garage"}
    assert get_first({"a": " ", "b": None, "c": 3}, "a", "b", "c") == 3
