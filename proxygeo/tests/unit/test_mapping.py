from __future__ import annotations

from datetime import datetime, timezone

import pytest

from proxygeo.services.sync.mapping import (
    byte_count,
    inventory_key,
    map_inventory_record,
    map_package,
    map_postal_code,
    parse_timestamp,
)
from proxygeo.tests.utils.records import package_record


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def test_byte_count_maps_false_to_none_not_zero() -> None:
    assert byte_count(False) is None
    assert byte_count(None) is None
    assert byte_count(0) == 0


def test_byte_count_keeps_values_beyond_float_precision() -> None:
    huge = 2**63 - 1
    assert byte_count(huge) == huge
    assert byte_count(str(huge)) == huge
    assert byte_count(1.0e12) == 1_000_000_000_000


def test_byte_count_rejects_fractional_and_garbage() -> None:
    with pytest.raises(ValueError):
        byte_count(1.5)
    with pytest.raises(ValueError):
        byte_count("12 GB")


def test_byte_count_rejects_negative_counters() -> None:
    with pytest.raises(ValueError):
        byte_count(-5)
    with pytest.raises(ValueError):
        byte_count("-5")
    with pytest.raises(ValueError):
        byte_count(-1.0)


def test_inventory_record_fills_missing_key_parts() -> None:
    row = map_inventory_record({"country": "US", "nodes": 3}, with_zip=True)
    assert row == {
        "country": "US",
        "subdivision": "",
        "city": "",
        "isp": "",
        "asn": 0,
        "nodes": 3,
        "zip": "",
    }
    assert "zip" not in map_inventory_record({"country": "US"}, with_zip=False)


def test_inventory_key_separates_zip_variants() -> None:
    base = map_inventory_record({"country": "DE", "city": "Berlin", "zip": "10115"}, with_zip=True)
    other = dict(base, zip="10117")
    assert inventory_key(base) != inventory_key(other)
    assert inventory_key(base) == inventory_key(dict(base, nodes=99))


def test_map_postal_code() -> None:
    assert map_postal_code({"zip": 90001, "country": "US", "subdivision": "California", "city": None}) == {
        "zip": "90001",
        "country": "US",
        "subdivision": "California",
        "city": "",
    }


def test_map_package_limits_and_usage() -> None:
    values = map_package(package_record(common_limit=False, daily_usage=2**40), now=NOW)
    assert values["common_limit"] is None
    assert values["daily_limit"] is None
    assert values["daily_usage"] == 2**40
    assert values["expired_at"] is None
    assert values["created_at"] == datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)
    assert values["update_date"] == NOW


def test_map_package_requires_key_and_created_at() -> None:
    with pytest.raises(ValueError):
        map_package(package_record(package_key=""), now=NOW)
    with pytest.raises(ValueError):
        map_package(package_record(created_at=None), now=NOW)


def test_parse_timestamp_assumes_utc_for_naive_values() -> None:
    assert parse_timestamp("2026-02-01T08:30:00") == datetime(2026, 2, 1, 8, 30, tzinfo=timezone.utc)
    assert parse_timestamp(False) is None
