from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from proxygeo.core.config import get_settings
from proxygeo.domain.models import INVENTORY_MODELS, InventoryMixin, Package, PackageTrafficHistory
from proxygeo.persistence.repos import inventory as inventory_repo
from proxygeo.persistence.repos import packages as packages_repo
from proxygeo.services import traffic_history


@dataclass
class InventoryFilters:
    country: str | None = None
    subdivision: str | None = None
    city: str | None = None
    isp: str | None = None
    asn: int | None = None
    # Exclusive lower bound on the node count.
    nodes: int = 0
    zip: str | None = None
    skip: int = 0
    take: int | None = None


@dataclass
class InventoryQueryResult:
    """Either a country listing (no country filter) or matching rows for one country."""

    country: str | None
    countries: list[str] = field(default_factory=list)
    rows: list[InventoryMixin] = field(default_factory=list)

    @property
    def is_country_listing(self) -> bool:
        return self.country is None


async def query_inventory(
    session: AsyncSession,
    domain: str,
    filters: InventoryFilters,
) -> InventoryQueryResult:
    model = INVENTORY_MODELS[domain]
    min_nodes = filters.nodes or 0
    if not filters.country:
        # Discovery mode: only the node filter applies.
        countries = await inventory_repo.list_distinct_countries(session, model, min_nodes=min_nodes)
        return InventoryQueryResult(country=None, countries=countries)
    rows = await inventory_repo.list_rows(
        session,
        model,
        country=filters.country,
        subdivision=filters.subdivision,
        city=filters.city,
        isp=filters.isp,
        asn=filters.asn,
        min_nodes=min_nodes,
        zip_code=filters.zip,
        skip=filters.skip,
        take=filters.take,
    )
    return InventoryQueryResult(country=filters.country, rows=rows)


async def query_packages(
    session: AsyncSession,
    *,
    package_key: str | None = None,
    skip: int = 0,
    take: int | None = None,
) -> list[Package]:
    return await packages_repo.list_packages(session, package_key=package_key, skip=skip, take=take)


async def package_detail(
    session: AsyncSession,
    package_key: str,
) -> tuple[Package, list[PackageTrafficHistory]] | None:
    package = await packages_repo.get_by_key(session, package_key)
    if package is None:
        return None
    history = await packages_repo.latest_history(
        session, package.id, limit=get_settings().package_history_limit
    )
    return package, history


async def package_history(
    session: AsyncSession,
    package_id: int,
    days_back: int | None = None,
    *,
    now: datetime | None = None,
) -> list[PackageTrafficHistory]:
    return await traffic_history.history(session, package_id, days_back, now=now)
