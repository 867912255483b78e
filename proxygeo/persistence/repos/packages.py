from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from proxygeo.domain.models import Package, PackageTrafficHistory
from proxygeo.persistence.db import dialect_insert


async def upsert_package(session: AsyncSession, values: dict[str, Any]) -> int:
    # Every mapped field is overwritten on conflict; returns the surrogate id.
    stmt = dialect_insert(session, Package).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[Package.package_key],
        set_={key: getattr(stmt.excluded, key) for key in values if key != "package_key"},
    )
    await session.execute(stmt)
    result = await session.execute(
        select(Package.id).where(Package.package_key == values["package_key"])
    )
    return int(result.scalar_one())


async def list_packages(
    session: AsyncSession,
    *,
    package_key: str | None = None,
    skip: int = 0,
    take: int | None = None,
) -> list[Package]:
    stmt = select(Package).order_by(Package.update_date.desc(), Package.id.desc())
    if package_key:
        stmt = stmt.where(Package.package_key == package_key)
    stmt = stmt.offset(skip)
    if take:
        stmt = stmt.limit(take)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_all(session: AsyncSession) -> list[Package]:
    result = await session.execute(select(Package))
    return list(result.scalars().all())


async def get_by_key(session: AsyncSession, package_key: str) -> Package | None:
    result = await session.execute(select(Package).where(Package.package_key == package_key))
    return result.scalar_one_or_none()


async def latest_history(
    session: AsyncSession,
    package_id: int,
    *,
    limit: int,
) -> list[PackageTrafficHistory]:
    # Newest first, as shown next to a single package.
    result = await session.execute(
        select(PackageTrafficHistory)
        .where(PackageTrafficHistory.package_id == package_id)
        .order_by(PackageTrafficHistory.date.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
