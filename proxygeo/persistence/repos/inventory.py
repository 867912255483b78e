from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from proxygeo.domain.models import InventoryMixin, PostalCode, Residential, ResidentialPostalCode
from proxygeo.persistence.db import dialect_insert


def natural_key_columns(model: type[InventoryMixin]) -> list[str]:
    # Residential rows are keyed without zip; zips arrive through the association table.
    columns = ["country", "subdivision", "city", "isp", "asn"]
    if hasattr(model, "zip"):
        columns.append("zip")
    return columns


async def upsert_rows(
    session: AsyncSession,
    model: type[InventoryMixin],
    rows: Sequence[dict[str, Any]],
) -> int:
    # One multi-row INSERT .. ON CONFLICT per chunk; only the node count is mutable.
    if not rows:
        return 0
    stmt = dialect_insert(session, model).values(list(rows))
    stmt = stmt.on_conflict_do_update(
        index_elements=natural_key_columns(model),
        set_={"nodes": stmt.excluded.nodes, "updated_at": func.now()},
    )
    await session.execute(stmt)
    return len(rows)


async def clear(session: AsyncSession, model: type[InventoryMixin]) -> int:
    if model is Residential:
        # Association rows reference residential ids; drop them first.
        await session.execute(delete(ResidentialPostalCode))
    result = await session.execute(delete(model))
    return result.rowcount or 0


async def count_rows(session: AsyncSession, model: type[InventoryMixin]) -> int:
    result = await session.execute(select(func.count()).select_from(model))
    return int(result.scalar_one())


async def list_distinct_countries(
    session: AsyncSession,
    model: type[InventoryMixin],
    *,
    min_nodes: int = 0,
) -> list[str]:
    result = await session.execute(
        select(model.country).where(model.nodes > min_nodes).distinct()
    )
    return [row[0] for row in result.all()]


async def list_rows(
    session: AsyncSession,
    model: type[InventoryMixin],
    *,
    country: str,
    subdivision: str | None = None,
    city: str | None = None,
    isp: str | None = None,
    asn: int | None = None,
    min_nodes: int = 0,
    zip_code: str | None = None,
    skip: int = 0,
    take: int | None = None,
) -> list[InventoryMixin]:
    stmt = select(model).where(model.nodes > min_nodes, model.country == country)
    if subdivision:
        stmt = stmt.where(model.subdivision == subdivision)
    if city:
        stmt = stmt.where(model.city == city)
    if isp:
        stmt = stmt.where(model.isp == isp)
    if asn:
        stmt = stmt.where(model.asn == asn)
    if model is Residential:
        if zip_code:
            # Filter through the association; a row matches when any linked zip does.
            stmt = stmt.where(
                Residential.postal_links.any(
                    ResidentialPostalCode.postal_code.has(PostalCode.zip == zip_code)
                )
            )
        stmt = stmt.options(
            selectinload(Residential.postal_links).selectinload(ResidentialPostalCode.postal_code)
        )
    elif zip_code:
        stmt = stmt.where(model.zip == zip_code)
    stmt = stmt.offset(skip)
    if take:
        stmt = stmt.limit(take)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_geo_keys(session: AsyncSession) -> list[tuple[int, str, str, str]]:
    # Reconciliation only needs ids and the geo triple; avoid loading full ORM rows.
    result = await session.execute(
        select(Residential.id, Residential.country, Residential.subdivision, Residential.city)
    )
    return [tuple(row) for row in result.all()]
