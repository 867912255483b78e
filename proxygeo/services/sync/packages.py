from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Sequence

from proxygeo.core.config import get_settings
from proxygeo.core.errors import RecordWriteError
from proxygeo.persistence.repos import packages as packages_repo
from proxygeo.services import traffic_history
from proxygeo.services.sync.mapping import map_package
from proxygeo.services.sync.upsert import SessionFactory
from proxygeo.services.telemetry import increment_counter


logger = logging.getLogger(__name__)


@dataclass
class PackageSyncStats:
    received: int = 0
    saved: int = 0
    failed: int = 0
    pruned_history: int = 0


async def _save_package(session_factory: SessionFactory, raw: dict[str, Any], now: datetime) -> None:
    try:
        values = map_package(raw, now=now)
        async with session_factory() as session:
            package_id = await packages_repo.upsert_package(session, values)
            await traffic_history.record_daily_usage(session, package_id, values["daily_usage"], now)
            await session.commit()
    except Exception as exc:
        raise RecordWriteError(f"package {raw.get('package_key')!r} could not be saved") from exc


async def sync_packages(
    records: Sequence[dict[str, Any]],
    *,
    session_factory: SessionFactory,
    now: datetime | None = None,
) -> PackageSyncStats:
    """Upsert every package with today's usage snapshot, then prune old history.

    Packages are written one at a time in their own transaction, so a bad record
    only loses itself. History pruning runs once after the whole list.
    """
    now = now or datetime.now(timezone.utc)
    stats = PackageSyncStats(received=len(records))
    for raw in records:
        try:
            await _save_package(session_factory, raw, now)
        except RecordWriteError:
            stats.failed += 1
            increment_counter("package_write_failures_total")
            logger.exception("package_save_failed package_key=%s", raw.get("package_key"))
            continue
        stats.saved += 1
        logger.debug("package_saved package_key=%s", raw.get("package_key"))

    retention_days = get_settings().traffic_history_retention_days
    try:
        async with session_factory() as session:
            stats.pruned_history = await traffic_history.prune_older_than(session, retention_days, now=now)
            await session.commit()
    except Exception:  # noqa: BLE001 - pruning failures leave extra history, nothing else
        logger.exception("traffic_history_prune_failed")

    logger.info(
        "packages_synced received=%s saved=%s failed=%s pruned_history=%s",
        stats.received,
        stats.saved,
        stats.failed,
        stats.pruned_history,
    )
    return stats
