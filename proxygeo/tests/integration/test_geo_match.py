from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from proxygeo.core.config import get_settings
from proxygeo.domain.models import Residential, ResidentialPostalCode
from proxygeo.persistence.db import SessionLocal
from proxygeo.persistence.repos import postal_codes as postal_codes_repo
from proxygeo.services.query import InventoryFilters, query_inventory
from proxygeo.services.sync.geo_match import reconcile
from proxygeo.services.sync.pipeline import run_domain_pass, run_geo_match
from proxygeo.services.sync.upsert import upsert_inventory, upsert_postal_codes
from proxygeo.tests.utils.records import geo_record
from proxygeo.tests.utils.upstream import upstream_client


POSTAL_CODES = [
    {"zip": "90001", "country": "US", "subdivision": "California", "city": "Los Angeles"},
    {"zip": "90002", "country": "US", "subdivision": "California", "city": "Los Angeles"},
    {"zip": "92101", "country": "US", "subdivision": "California", "city": "San Diego"},
    # Same city name, different subdivision: must never match Los Angeles, California.
    {"zip": "77001", "country": "US", "subdivision": "Texas", "city": "Los Angeles"},
    {"zip": "10115", "country": "DE", "subdivision": "Berlin", "city": "Berlin"},
]

RESIDENTIAL = [
    geo_record(city="Los Angeles", isp="Comcast"),
    geo_record(city="Los Angeles", isp="Spectrum", asn=20001),
    geo_record(city="San Diego"),
    geo_record(city="Fresno"),
    geo_record(country="DE", subdivision="Berlin", city="Berlin", isp="Telekom", asn=3320),
]


async def _seed() -> None:
    await upsert_postal_codes(POSTAL_CODES, session_factory=SessionLocal, batch_size=2)
    await upsert_inventory(RESIDENTIAL, domain="residential", session_factory=SessionLocal, batch_size=2, min_records=1)


async def _links() -> list[ResidentialPostalCode]:
    async with SessionLocal() as session:
        result = await session.execute(
            select(ResidentialPostalCode).options(
                selectinload(ResidentialPostalCode.residential),
                selectinload(ResidentialPostalCode.postal_code),
            )
        )
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_reconcile_links_only_matching_geo() -> None:
    await _seed()

    stats = await reconcile(session_factory=SessionLocal, batch_size=2, lookup_concurrency=3)

    links = await _links()
    assert stats.records == 5
    assert stats.matched_records == 4
    assert stats.associations == len(links) == 6
    assert stats.lookup_failures == 0
    for link in links:
        residential, postal = link.residential, link.postal_code
        assert (postal.country, postal.subdivision, postal.city) == (
            residential.country,
            residential.subdivision,
            residential.city,
        )
    assert "77001" not in {link.postal_code.zip for link in links}


@pytest.mark.asyncio
async def test_failed_lookup_is_counted_and_batch_continues(monkeypatch) -> None:
    await _seed()
    real_find = postal_codes_repo.find_ids_by_geo

    async def flaky_find(session, country, subdivision, city):
        if city == "San Diego":
            raise RuntimeError("statement timeout")
        return await real_find(session, country, subdivision, city)

    monkeypatch.setattr(postal_codes_repo, "find_ids_by_geo", flaky_find)

    stats = await reconcile(session_factory=SessionLocal, batch_size=10, lookup_concurrency=2)

    assert stats.lookup_failures == 1
    assert stats.failed_batches == 0
    assert stats.matched_records == 3
    links = await _links()
    assert stats.associations == len(links) == 5
    cities = {link.residential.city for link in links}
    assert cities == {"Los Angeles", "Berlin"}


@pytest.mark.asyncio
async def test_reconcile_is_full_replace() -> None:
    await _seed()
    await reconcile(session_factory=SessionLocal, batch_size=10)

    # A postal code moves city upstream; the next pass must drop its stale link.
    await upsert_postal_codes(
        [{"zip": "90002", "country": "US", "subdivision": "California", "city": "Fresno"}],
        session_factory=SessionLocal,
        batch_size=10,
    )
    stats = await reconcile(session_factory=SessionLocal, batch_size=10)

    assert stats.removed == 6
    pairs = {(link.residential.city, link.postal_code.zip) for link in await _links()}
    assert ("Los Angeles", "90002") not in pairs
    assert ("Fresno", "90002") in pairs
    async with SessionLocal() as session:
        assert await postal_codes_repo.count_links(session) == stats.associations


@pytest.mark.asyncio
async def test_zip_filter_goes_through_association() -> None:
    await _seed()
    await run_geo_match()

    async with SessionLocal() as session:
        result = await query_inventory(session, "residential", InventoryFilters(country="US", zip="92101"))
    assert [row.city for row in result.rows] == ["San Diego"]
    assert [link.postal_code.zip for link in result.rows[0].postal_links] == ["92101"]


@pytest.mark.asyncio
async def test_residential_pass_reconciles_after_upsert(monkeypatch) -> None:
    monkeypatch.setenv("RESIDENTIAL_MIN_RECORDS", "1")
    get_settings.cache_clear()
    await upsert_postal_codes(POSTAL_CODES, session_factory=SessionLocal, batch_size=10)
    client = upstream_client({("GET", "/count-by-geo"): RESIDENTIAL})

    result = await run_domain_pass("residential", client=client)

    assert result.outcome == "completed"
    assert result.match is not None and result.match.associations == 6
    async with SessionLocal() as session:
        rows = (await session.execute(select(Residential))).scalars().all()
    assert len(rows) == 5
