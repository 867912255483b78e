from __future__ import annotations

from datetime import date

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from proxygeo.domain.models import PackageTrafficHistory
from proxygeo.persistence.db import dialect_insert


async def upsert_day(session: AsyncSession, package_id: int, day: date, daily_usage: int) -> None:
    stmt = dialect_insert(session, PackageTrafficHistory).values(
        package_id=package_id,
        date=day,
        daily_usage=daily_usage,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["package_id", "date"],
        set_={"daily_usage": stmt.excluded.daily_usage},
    )
    await session.execute(stmt)


async def delete_before(session: AsyncSession, cutoff: date) -> int:
    result = await session.execute(
        delete(PackageTrafficHistory).where(PackageTrafficHistory.date < cutoff)
    )
    return result.rowcount or 0


async def list_since(session: AsyncSession, package_id: int, since: date) -> list[PackageTrafficHistory]:
    result = await session.execute(
        select(PackageTrafficHistory)
        .where(
            PackageTrafficHistory.package_id == package_id,
            PackageTrafficHistory.date >= since,
        )
        .order_by(PackageTrafficHistory.date.asc())
    )
    return list(result.scalars().all())
