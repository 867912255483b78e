from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from proxygeo.core.config import get_settings
from proxygeo.domain.models import PackageTrafficHistory
from proxygeo.persistence.repos import traffic_history as history_repo


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _first_day_at_or_after(instant: datetime) -> date:
    # History rows represent midnight of their day; compare them as instants.
    day = instant.date()
    if instant.time() != time(0):
        day += timedelta(days=1)
    return day


def truncate_to_day(value: datetime | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


async def record_daily_usage(
    session: AsyncSession,
    package_id: int,
    daily_usage: int,
    day: datetime | date | None = None,
) -> None:
    # Re-recording the same day overwrites the usage value; one row per day.
    await history_repo.upsert_day(session, package_id, truncate_to_day(day or _utc_now()), daily_usage)


def prune_cutoff(retention_days: int, now: datetime) -> date:
    # Rows whose midnight lies strictly before now - retention are expired.
    return _first_day_at_or_after(now - timedelta(days=retention_days))


async def prune_older_than(
    session: AsyncSession,
    days: int | None = None,
    *,
    now: datetime | None = None,
) -> int:
    retention = days if days is not None else get_settings().traffic_history_retention_days
    return await history_repo.delete_before(session, prune_cutoff(retention, now or _utc_now()))


async def history(
    session: AsyncSession,
    package_id: int,
    days_back: int | None = None,
    *,
    now: datetime | None = None,
) -> list[PackageTrafficHistory]:
    days = days_back if days_back is not None else get_settings().traffic_history_default_days
    since = _first_day_at_or_after((now or _utc_now()) - timedelta(days=days))
    return await history_repo.list_since(session, package_id, since)
