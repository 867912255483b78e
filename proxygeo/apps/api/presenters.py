from __future__ import annotations

from datetime import date, datetime
from typing import Any, Iterable

import pycountry

from proxygeo.domain.models import InventoryMixin, Package, PackageTrafficHistory, Residential
from proxygeo.services.lookups import LookupCache


def country_name(code: str) -> str:
    # English short name; unknown or non-ISO codes are echoed back.
    if not code:
        return code
    try:
        country = pycountry.countries.get(alpha_2=code.upper())
    except (KeyError, LookupError):
        country = None
    if country is None:
        return code
    return getattr(country, "common_name", None) or country.name


def country_list(countries: Iterable[str]) -> list[dict[str, str]]:
    seen: dict[str, None] = dict.fromkeys(countries)
    return [{"country": code, "countryName": country_name(code)} for code in seen]


def _row_entry(row: InventoryMixin) -> dict[str, Any]:
    entry: dict[str, Any] = {"id": row.id, "isp": row.isp, "asn": row.asn, "nodes": row.nodes}
    if isinstance(row, Residential):
        entry["zips"] = [link.postal_code.zip for link in row.postal_links]
    else:
        entry["zip"] = row.zip
    return entry


def country_tree(rows: Iterable[InventoryMixin], lookups: LookupCache) -> list[dict[str, Any]]:
    """Group inventory rows as country -> subdivision -> city -> entries.

    Grouping preserves first-seen order at every level. Subdivision codes come
    from the process-wide lookup cache and are null until it has loaded.
    """
    countries: dict[str, dict[str, dict[str, list[dict[str, Any]]]]] = {}
    for row in rows:
        divisions = countries.setdefault(row.country, {})
        cities = divisions.setdefault(row.subdivision, {})
        cities.setdefault(row.city, []).append(_row_entry(row))

    return [
        {
            "country": code,
            "countryName": country_name(code),
            "divisions": [
                {
                    "subdivision": subdivision,
                    "subdivisionCode": lookups.subdivisions.get(subdivision) or None,
                    "cities": [{"city": city, "data": data} for city, data in cities.items()],
                }
                for subdivision, cities in divisions.items()
            ],
        }
        for code, divisions in countries.items()
    ]


def _big(value: int | None) -> str | None:
    # Byte counters leave the API as decimal strings so JS clients keep precision.
    return None if value is None else str(value)


def _iso(value: datetime | date | None) -> str | None:
    return value.isoformat() if value is not None else None


def history_entry(row: PackageTrafficHistory) -> dict[str, Any]:
    return {
        "id": str(row.id),
        "packageId": str(row.package_id),
        "date": _iso(row.date),
        "dailyUsage": _big(row.daily_usage),
        "createdAt": _iso(row.created_at),
    }


def package_entry(package: Package) -> dict[str, Any]:
    return {
        "id": str(package.id),
        "packageKey": package.package_key,
        "createdAt": _iso(package.created_at),
        "expiredAt": _iso(package.expired_at),
        "isSuspended": package.is_suspended,
        "isActive": package.is_active,
        "status": package.status,
        "proxyCount": package.proxy_count,
        "commonLimit": _big(package.common_limit),
        "dailyLimit": _big(package.daily_limit),
        "weeklyLimit": _big(package.weekly_limit),
        "monthlyLimit": _big(package.monthly_limit),
        "dailyUsage": _big(package.daily_usage),
        "weeklyUsage": _big(package.weekly_usage),
        "monthlyUsage": _big(package.monthly_usage),
        "commonUsage": _big(package.common_usage),
        "remaining": _big(package.remaining),
        "updateDate": _iso(package.update_date),
    }
