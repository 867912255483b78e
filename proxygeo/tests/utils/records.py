from __future__ import annotations

from typing import Any


def geo_record(
    country: str = "US",
    subdivision: str = "California",
    city: str = "Los Angeles",
    isp: str = "Comcast",
    asn: int = 7922,
    nodes: int = 10,
    **extra: Any,
) -> dict[str, Any]:
    record = {
        "country": country,
        "subdivision": subdivision,
        "city": city,
        "isp": isp,
        "asn": asn,
        "nodes": nodes,
    }
    record.update(extra)
    return record


def package_record(
    package_key: str = "pkg-1",
    *,
    common_limit: Any = 10_000_000_000_000,
    common_usage: Any = 2_500_000_000_000,
    daily_usage: Any = 1024,
    **overrides: Any,
) -> dict[str, Any]:
    record: dict[str, Any] = {
        "package_key": package_key,
        "created_at": "2026-01-05T10:00:00Z",
        "expired_at": False,
        "is_suspended": False,
        "is_active": True,
        "status": "active",
        "proxy_count": 5,
        "proxy_package_filter": [],
        "traffic_limits": {"daily": False, "weekly": False, "monthly": False, "common": common_limit},
        "traffic_usage": {"daily": daily_usage, "weekly": 4096, "monthly": 8192, "common": common_usage},
        "lists": [],
    }
    record.update(overrides)
    return record
