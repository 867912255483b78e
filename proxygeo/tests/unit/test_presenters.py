from __future__ import annotations

from datetime import date, datetime, timezone

from proxygeo.apps.api.presenters import country_list, country_name, country_tree, history_entry, package_entry
from proxygeo.domain.models import Datacenter, Package, PackageTrafficHistory, PostalCode, Residential, ResidentialPostalCode
from proxygeo.services.lookups import LookupCache


def test_country_name_falls_back_to_code() -> None:
    assert country_name("US") == "United States"
    assert country_name("DE") == "Germany"
    assert country_name("XX") == "XX"
    assert country_name("") == ""


def test_country_list_is_unique() -> None:
    listing = country_list(["US", "DE", "US", "FR"])
    assert [item["country"] for item in listing] == ["US", "DE", "FR"]
    assert listing[1] == {"country": "DE", "countryName": "Germany"}


def _residential(row_id: int, city: str, zips: list[str]) -> Residential:
    row = Residential(
        id=row_id, country="US", subdivision="California", city=city, isp="Comcast", asn=7922, nodes=4
    )
    row.postal_links = [
        ResidentialPostalCode(
            postal_code=PostalCode(zip=zip_code, country="US", subdivision="California", city=city)
        )
        for zip_code in zips
    ]
    return row


def test_country_tree_groups_residential_rows_with_zip_lists() -> None:
    lookups = LookupCache()
    lookups.subdivisions.codes = {"California": 5332921}
    rows = [
        _residential(1, "Los Angeles", ["90001", "90002"]),
        _residential(2, "San Diego", []),
        _residential(3, "Los Angeles", ["90003"]),
    ]

    tree = country_tree(rows, lookups)

    assert len(tree) == 1
    country = tree[0]
    assert country["country"] == "US"
    assert country["countryName"] == "United States"
    (division,) = country["divisions"]
    assert division["subdivision"] == "California"
    assert division["subdivisionCode"] == 5332921
    cities = {city["city"]: city["data"] for city in division["cities"]}
    assert [entry["id"] for entry in cities["Los Angeles"]] == [1, 3]
    assert cities["Los Angeles"][0]["zips"] == ["90001", "90002"]
    assert cities["San Diego"][0] == {"id": 2, "isp": "Comcast", "asn": 7922, "nodes": 4, "zips": []}


def test_country_tree_uses_direct_zip_and_null_codes_before_lookups_load() -> None:
    row = Datacenter(id=9, country="DE", subdivision="Berlin", city="Berlin", isp="Hetzner", asn=24940, nodes=2, zip="10115")
    (country,) = country_tree([row], LookupCache())
    (division,) = country["divisions"]
    assert division["subdivisionCode"] is None
    assert division["cities"][0]["data"][0]["zip"] == "10115"


def test_package_entry_serializes_byte_counters_as_strings() -> None:
    package = Package(
        id=7,
        package_key="pkg-7",
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        expired_at=None,
        is_suspended=False,
        is_active=True,
        status="active",
        proxy_count=3,
        common_limit=2**62,
        daily_limit=None,
        weekly_limit=None,
        monthly_limit=None,
        daily_usage=1,
        weekly_usage=2,
        monthly_usage=3,
        common_usage=2**40,
        update_date=datetime(2026, 3, 1, tzinfo=timezone.utc),
    )
    entry = package_entry(package)
    assert entry["id"] == "7"
    assert entry["commonLimit"] == str(2**62)
    assert entry["dailyLimit"] is None
    assert entry["remaining"] == str(2**62 - 2**40)
    assert entry["expiredAt"] is None

    history = PackageTrafficHistory(id=1, package_id=7, date=date(2026, 3, 1), daily_usage=2**35, created_at=None)
    assert history_entry(history) == {
        "id": "1",
        "packageId": "7",
        "date": "2026-03-01",
        "dailyUsage": str(2**35),
        "createdAt": None,
    }
