from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Iterator, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from proxygeo.core.errors import RecordWriteError, SizeGuardError
from proxygeo.domain.models import INVENTORY_MODELS
from proxygeo.persistence.repos import inventory as inventory_repo
from proxygeo.persistence.repos import postal_codes as postal_codes_repo
from proxygeo.services.sync.mapping import inventory_key, map_inventory_record, map_postal_code
from proxygeo.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]


@dataclass
class UpsertStats:
    # Counts only; the pass never reports per-row detail.
    received: int = 0
    written: int = 0
    skipped: int = 0
    chunks: int = 0
    failed_chunks: int = 0
    failed_records: int = 0


def chunked(items: Sequence[Any], size: int) -> Iterator[tuple[int, Sequence[Any]]]:
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for offset in range(0, len(items), size):
        yield offset, items[offset : offset + size]


def dedupe_last(rows: Sequence[dict[str, Any]], key: Callable[[dict[str, Any]], Any]) -> list[dict[str, Any]]:
    """Keep the last occurrence of every key, preserving first-seen order.

    A single INSERT .. ON CONFLICT statement may not touch the same row twice, and
    the latest upstream value has to win, exactly as sequential upserts would.
    """
    latest: dict[Any, dict[str, Any]] = {}
    for row in rows:
        latest[key(row)] = row
    return list(latest.values())


def _map_record(mapper: Callable[[dict[str, Any]], dict[str, Any]], raw: dict[str, Any]) -> dict[str, Any]:
    try:
        return mapper(raw)
    except (TypeError, ValueError, AttributeError) as exc:
        raise RecordWriteError(f"record could not be mapped: {raw!r}") from exc


def map_chunk(
    chunk: Sequence[dict[str, Any]],
    mapper: Callable[[dict[str, Any]], dict[str, Any]],
    stats: UpsertStats,
    *,
    label: str,
) -> list[dict[str, Any]]:
    """Map a chunk record by record; a malformed record only loses itself."""
    rows: list[dict[str, Any]] = []
    for raw in chunk:
        try:
            rows.append(_map_record(mapper, raw))
        except RecordWriteError:
            stats.failed_records += 1
            increment_counter(f"record_map_failures_total.{label}")
            logger.warning("record_map_failed domain=%s", label, exc_info=True)
    return rows


def ensure_plausible_size(domain: str, count: int, minimum: int) -> None:
    # A truncated upstream response must never overwrite good data.
    if count < minimum:
        raise SizeGuardError(domain, count, minimum)


async def upsert_inventory(
    records: Sequence[dict[str, Any]],
    *,
    domain: str,
    session_factory: SessionFactory,
    batch_size: int,
    min_records: int,
) -> UpsertStats:
    """Idempotently create-or-update one inventory domain from an upstream payload.

    Raises SizeGuardError before any write when the payload is implausibly small.
    A malformed record is logged and skipped on its own. A failing chunk write
    is logged and skipped; later chunks still run.
    """
    ensure_plausible_size(domain, len(records), min_records)
    model = INVENTORY_MODELS[domain]
    with_zip = hasattr(model, "zip")
    stats = UpsertStats(received=len(records))
    mapper = partial(map_inventory_record, with_zip=with_zip)

    for offset, chunk in chunked(records, batch_size):
        stats.chunks += 1
        rows = map_chunk(chunk, mapper, stats, label=domain)
        unique_rows = dedupe_last([row for row in rows if row["country"]], inventory_key)
        try:
            async with session_factory() as session:
                written = await inventory_repo.upsert_rows(session, model, unique_rows)
                await session.commit()
        except Exception:  # noqa: BLE001 - one chunk never aborts the pass
            stats.failed_chunks += 1
            stats.failed_records += len(unique_rows)
            increment_counter(f"upsert_chunk_failures_total.{domain}")
            logger.exception("upsert_chunk_failed domain=%s offset=%s size=%s", domain, offset, len(chunk))
            continue
        stats.written += written
        stats.skipped += len(rows) - written
        logger.info("upsert_chunk_done domain=%s offset=%s written=%s", domain, offset, written)

    logger.info(
        "upsert_completed domain=%s received=%s written=%s failed_chunks=%s",
        domain,
        stats.received,
        stats.written,
        stats.failed_chunks,
    )
    return stats


async def upsert_postal_codes(
    records: Sequence[dict[str, Any]],
    *,
    session_factory: SessionFactory,
    batch_size: int,
) -> UpsertStats:
    stats = UpsertStats(received=len(records))
    for offset, chunk in chunked(records, batch_size):
        stats.chunks += 1
        rows = map_chunk(chunk, map_postal_code, stats, label="zip")
        unique_rows = dedupe_last([row for row in rows if row["zip"]], lambda row: row["zip"])
        try:
            async with session_factory() as session:
                written = await postal_codes_repo.upsert_postal_codes(session, unique_rows)
                await session.commit()
        except Exception:  # noqa: BLE001 - one chunk never aborts the pass
            stats.failed_chunks += 1
            stats.failed_records += len(unique_rows)
            logger.exception("postal_code_chunk_failed offset=%s size=%s", offset, len(chunk))
            continue
        stats.written += written
        stats.skipped += len(rows) - written
    logger.info(
        "postal_codes_upserted received=%s written=%s failed_chunks=%s",
        stats.received,
        stats.written,
        stats.failed_chunks,
    )
    return stats
