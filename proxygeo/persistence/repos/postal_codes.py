from __future__ import annotations

from typing import Any, Iterable, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from proxygeo.domain.models import PostalCode, ResidentialPostalCode
from proxygeo.persistence.db import dialect_insert


async def upsert_postal_codes(session: AsyncSession, rows: Sequence[dict[str, Any]]) -> int:
    # Zip is the natural key; geo fields follow the latest upstream value.
    if not rows:
        return 0
    stmt = dialect_insert(session, PostalCode).values(list(rows))
    stmt = stmt.on_conflict_do_update(
        index_elements=[PostalCode.zip],
        set_={
            "country": stmt.excluded.country,
            "subdivision": stmt.excluded.subdivision,
            "city": stmt.excluded.city,
        },
    )
    await session.execute(stmt)
    return len(rows)


async def find_ids_by_geo(session: AsyncSession, country: str, subdivision: str, city: str) -> list[int]:
    result = await session.execute(
        select(PostalCode.id).where(
            PostalCode.country == country,
            PostalCode.subdivision == subdivision,
            PostalCode.city == city,
        )
    )
    return list(result.scalars().all())


async def delete_all_links(session: AsyncSession) -> int:
    result = await session.execute(delete(ResidentialPostalCode))
    return result.rowcount or 0


async def insert_links(session: AsyncSession, pairs: Iterable[tuple[int, int]]) -> int:
    # Duplicate pairs are a no-op rather than an integrity error.
    values = [
        {"residential_id": residential_id, "postal_code_id": postal_code_id}
        for residential_id, postal_code_id in pairs
    ]
    if not values:
        return 0
    stmt = dialect_insert(session, ResidentialPostalCode).values(values)
    stmt = stmt.on_conflict_do_nothing(index_elements=["residential_id", "postal_code_id"])
    await session.execute(stmt)
    return len(values)


async def count_links(session: AsyncSession) -> int:
    result = await session.execute(select(func.count()).select_from(ResidentialPostalCode))
    return int(result.scalar_one())
