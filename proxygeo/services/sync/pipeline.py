from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Literal

from proxygeo.core.config import INVENTORY_DOMAINS, get_settings, min_records_for
from proxygeo.core.errors import FetchError, PassInProgressError, SizeGuardError
from proxygeo.domain.models import INVENTORY_MODELS
from proxygeo.persistence.db import SessionLocal
from proxygeo.persistence.repos import inventory as inventory_repo
from proxygeo.providers.upstream.client import UpstreamClient
from proxygeo.services.sync.geo_match import MatchStats, reconcile
from proxygeo.services.sync.packages import PackageSyncStats, sync_packages
from proxygeo.services.sync.upsert import SessionFactory, UpsertStats, upsert_inventory, upsert_postal_codes
from proxygeo.services.telemetry import record_pass


logger = logging.getLogger(__name__)

SYNC_DOMAINS: tuple[str, ...] = (*INVENTORY_DOMAINS, "package", "zip")
PassOutcome = Literal["completed", "aborted", "skipped", "failed"]

# One guard per domain; geo matching shares the residential guard.
_pass_guards: dict[str, asyncio.Lock] = {}


def _guard_for(domain: str) -> asyncio.Lock:
    lock = _pass_guards.get(domain)
    if lock is None:
        lock = asyncio.Lock()
        _pass_guards[domain] = lock
    return lock


def is_pass_running(domain: str) -> bool:
    return _guard_for(domain).locked()


@asynccontextmanager
async def pass_guard(domain: str) -> AsyncIterator[None]:
    # Overlapping timer firings skip instead of racing on the same rows.
    lock = _guard_for(domain)
    if lock.locked():
        raise PassInProgressError(f"{domain} pass already running")
    async with lock:
        yield


@dataclass
class PassResult:
    domain: str
    outcome: PassOutcome
    detail: str | None = None
    upsert: UpsertStats | None = None
    match: MatchStats | None = None
    packages: PackageSyncStats | None = None

    @property
    def ok(self) -> bool:
        return self.outcome in ("completed", "skipped")


async def _run_inventory(
    domain: str,
    client: UpstreamClient,
    session_factory: SessionFactory,
    result: PassResult,
) -> None:
    settings = get_settings()
    records = await client.fetch_inventory(domain)
    logger.info("inventory_fetched domain=%s count=%s", domain, len(records))
    result.upsert = await upsert_inventory(
        records,
        domain=domain,
        session_factory=session_factory,
        batch_size=settings.upsert_batch_size,
        min_records=min_records_for(domain),
    )
    if domain == "residential":
        result.match = await reconcile(
            session_factory=session_factory,
            batch_size=settings.geo_match_batch_size,
            lookup_concurrency=settings.db_pool_size,
        )


async def _run_packages(client: UpstreamClient, session_factory: SessionFactory, result: PassResult) -> None:
    records = await client.fetch_packages()
    logger.info("packages_fetched count=%s", len(records))
    result.packages = await sync_packages(records, session_factory=session_factory)


async def _run_zip_codes(client: UpstreamClient, session_factory: SessionFactory, result: PassResult) -> None:
    records = await client.fetch_zip_codes()
    logger.info("zip_codes_fetched count=%s", len(records))
    result.upsert = await upsert_postal_codes(
        records,
        session_factory=session_factory,
        batch_size=get_settings().zip_upsert_batch_size,
    )


async def run_domain_pass(
    domain: str,
    *,
    client: UpstreamClient | None = None,
    session_factory: SessionFactory = SessionLocal,
) -> PassResult:
    """Run one fetch -> upsert (-> reconcile) pass for a domain.

    Never raises for pipeline errors: fetch failures and size-guard trips abort the
    pass with outcome "aborted", a concurrent pass yields "skipped", anything else
    is logged as "failed". Sibling domains are unaffected either way.
    """
    if domain not in SYNC_DOMAINS:
        raise ValueError(f"Unknown sync domain: {domain}")
    result = PassResult(domain=domain, outcome="completed")
    owned = client is None
    client = client or UpstreamClient()
    start = time.monotonic()
    try:
        async with pass_guard(domain):
            logger.info("sync_pass_started domain=%s", domain)
            if domain in INVENTORY_DOMAINS:
                await _run_inventory(domain, client, session_factory, result)
            elif domain == "package":
                await _run_packages(client, session_factory, result)
            else:
                await _run_zip_codes(client, session_factory, result)
    except PassInProgressError as exc:
        result.outcome = "skipped"
        result.detail = str(exc)
        logger.warning("sync_pass_skipped domain=%s reason=already_running", domain)
    except SizeGuardError as exc:
        result.outcome = "aborted"
        result.detail = str(exc)
        logger.warning(
            "sync_pass_aborted domain=%s reason=size_guard count=%s minimum=%s",
            domain,
            exc.count,
            exc.minimum,
        )
    except FetchError as exc:
        result.outcome = "aborted"
        result.detail = str(exc)
        logger.error("sync_pass_aborted domain=%s reason=fetch_error", domain, exc_info=exc)
    except Exception:  # noqa: BLE001 - pass failures are surfaced via outcome
        result.outcome = "failed"
        result.detail = "unexpected error"
        logger.exception("sync_pass_failed domain=%s", domain)
    finally:
        if owned:
            await client.aclose()
    duration_ms = (time.monotonic() - start) * 1000.0
    record_pass(domain=domain, outcome=result.outcome, duration_ms=duration_ms)
    logger.info("sync_pass_finished domain=%s outcome=%s duration_ms=%.0f", domain, result.outcome, duration_ms)
    return result


async def run_geo_match(*, session_factory: SessionFactory = SessionLocal) -> PassResult:
    # Standalone reconciliation; guarded together with the residential pass.
    result = PassResult(domain="residential", outcome="completed")
    try:
        async with pass_guard("residential"):
            result.match = await reconcile(
                session_factory=session_factory,
                batch_size=get_settings().geo_match_batch_size,
                lookup_concurrency=get_settings().db_pool_size,
            )
    except PassInProgressError as exc:
        result.outcome = "skipped"
        result.detail = str(exc)
        logger.warning("geo_match_skipped reason=already_running")
    except Exception:  # noqa: BLE001 - reported through the outcome
        result.outcome = "failed"
        result.detail = "unexpected error"
        logger.exception("geo_match_failed")
    return result


async def clear_inventory(domain: str, *, session_factory: SessionFactory = SessionLocal) -> int:
    # Full-clear variant used before a clean reload; never part of the scheduled pass.
    model = INVENTORY_MODELS[domain]
    async with pass_guard(domain):
        async with session_factory() as session:
            deleted = await inventory_repo.clear(session, model)
            await session.commit()
    logger.info("inventory_cleared domain=%s rows=%s", domain, deleted)
    return deleted
