from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def _text(value: Any) -> str:
    # Missing geo parts collapse to "" so they still take part in the natural key.
    if value is None or value is False:
        return ""
    return str(value)


def _int(value: Any) -> int:
    if value is None or value is False or value == "":
        return 0
    return int(value)


def byte_count(value: Any) -> int | None:
    """Map an upstream byte counter to an integer, or None for "no limit".

    The provider encodes an absent limit as ``false``; it must never become 0.
    Floats are rejected rather than truncated so counters above 2**53 stay exact.
    Counters are never negative.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        count = value
    elif isinstance(value, str) and value.strip().isdigit():
        count = int(value.strip())
    elif isinstance(value, float) and value.is_integer():
        count = int(value)
    else:
        raise ValueError(f"Invalid byte counter: {value!r}")
    if count < 0:
        raise ValueError(f"Negative byte counter: {value!r}")
    return count


def parse_timestamp(value: Any) -> datetime | None:
    if not value or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def map_inventory_record(raw: dict[str, Any], *, with_zip: bool) -> dict[str, Any]:
    row: dict[str, Any] = {
        "country": _text(raw.get("country")),
        "subdivision": _text(raw.get("subdivision")),
        "city": _text(raw.get("city")),
        "isp": _text(raw.get("isp")),
        "asn": _int(raw.get("asn")),
        "nodes": _int(raw.get("nodes")),
    }
    if with_zip:
        row["zip"] = _text(raw.get("zip"))
    return row


def inventory_key(row: dict[str, Any]) -> tuple:
    return (
        row["country"],
        row["subdivision"],
        row["city"],
        row["isp"],
        row["asn"],
        row.get("zip"),
    )


def map_postal_code(raw: dict[str, Any]) -> dict[str, Any]:
    return {
        "zip": _text(raw.get("zip")),
        "country": _text(raw.get("country")),
        "subdivision": _text(raw.get("subdivision")),
        "city": _text(raw.get("city")),
    }


def map_package(raw: dict[str, Any], *, now: datetime) -> dict[str, Any]:
    """Translate one upstream package into column values for an upsert."""
    limits = raw.get("traffic_limits") or {}
    usage = raw.get("traffic_usage") or {}
    package_key = raw.get("package_key")
    if not package_key:
        raise ValueError("Package record is missing package_key")
    created_at = parse_timestamp(raw.get("created_at"))
    if created_at is None:
        raise ValueError(f"Package {package_key} is missing created_at")
    return {
        "package_key": str(package_key),
        "created_at": created_at,
        "expired_at": parse_timestamp(raw.get("expired_at")),
        "is_suspended": bool(raw.get("is_suspended")),
        "is_active": bool(raw.get("is_active")),
        "status": _text(raw.get("status")),
        "proxy_count": _int(raw.get("proxy_count")),
        "common_limit": byte_count(limits.get("common")),
        "daily_limit": byte_count(limits.get("daily")),
        "weekly_limit": byte_count(limits.get("weekly")),
        "monthly_limit": byte_count(limits.get("monthly")),
        "daily_usage": byte_count(usage.get("daily")) or 0,
        "weekly_usage": byte_count(usage.get("weekly")) or 0,
        "monthly_usage": byte_count(usage.get("monthly")) or 0,
        "common_usage": byte_count(usage.get("common")) or 0,
        "update_date": now,
    }
