from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Sequence

from proxygeo.core.errors import MatchBatchError
from proxygeo.persistence.repos import inventory as inventory_repo
from proxygeo.persistence.repos import postal_codes as postal_codes_repo
from proxygeo.services.sync.upsert import SessionFactory, chunked
from proxygeo.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

# Keep each association INSERT well under the Postgres bind-parameter limit.
_LINK_INSERT_SIZE = 5000

GeoKey = tuple[int, str, str, str]


@dataclass
class MatchStats:
    records: int = 0
    matched_records: int = 0
    associations: int = 0
    lookup_failures: int = 0
    failed_batches: int = 0
    removed: int = 0


async def _lookup(
    session_factory: SessionFactory,
    semaphore: asyncio.Semaphore,
    key: GeoKey,
) -> list[tuple[int, int]]:
    residential_id, country, subdivision, city = key
    async with semaphore:
        try:
            async with session_factory() as session:
                postal_ids = await postal_codes_repo.find_ids_by_geo(session, country, subdivision, city)
        except Exception as exc:
            raise MatchBatchError(f"postal code lookup failed for residential {residential_id}") from exc
    return [(residential_id, postal_id) for postal_id in postal_ids]


async def reconcile(
    *,
    session_factory: SessionFactory,
    batch_size: int,
    lookup_concurrency: int = 10,
) -> MatchStats:
    """Rebuild the residential to postal code association from scratch.

    Existing links are removed first, then every residential row is matched to all
    postal codes sharing its (country, subdivision, city). Lookups inside a batch
    run concurrently; a failed lookup is counted and skipped, and a failed insert
    only loses that batch's links.
    """
    stats = MatchStats()
    async with session_factory() as session:
        stats.removed = await postal_codes_repo.delete_all_links(session)
        await session.commit()
        keys: Sequence[GeoKey] = await inventory_repo.list_geo_keys(session)
    stats.records = len(keys)
    logger.info("geo_match_started records=%s removed_links=%s", stats.records, stats.removed)

    semaphore = asyncio.Semaphore(max(1, lookup_concurrency))
    for offset, batch in chunked(keys, batch_size):
        outcomes = await asyncio.gather(
            *(_lookup(session_factory, semaphore, key) for key in batch),
            return_exceptions=True,
        )
        pairs: list[tuple[int, int]] = []
        failures = 0
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                failures += 1
                logger.warning("geo_match_lookup_failed", exc_info=outcome)
                continue
            if outcome:
                stats.matched_records += 1
                pairs.extend(outcome)
        stats.lookup_failures += failures

        try:
            async with session_factory() as session:
                inserted = 0
                for _, part in chunked(pairs, _LINK_INSERT_SIZE):
                    inserted += await postal_codes_repo.insert_links(session, part)
                await session.commit()
        except Exception:  # noqa: BLE001 - one batch never aborts the pass
            stats.failed_batches += 1
            increment_counter("geo_match_batch_failures_total")
            logger.exception("geo_match_batch_failed offset=%s links=%s", offset, len(pairs))
            continue
        stats.associations += inserted
        logger.info(
            "geo_match_batch_done batch=%s links=%s lookup_failures=%s",
            offset // batch_size + 1,
            inserted,
            failures,
        )

    logger.info(
        "geo_match_completed records=%s matched=%s associations=%s lookup_failures=%s failed_batches=%s",
        stats.records,
        stats.matched_records,
        stats.associations,
        stats.lookup_failures,
        stats.failed_batches,
    )
    return stats
