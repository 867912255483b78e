from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from proxygeo.core.config import get_settings
from proxygeo.core.logging import configure_logging
from proxygeo.services.sync.pipeline import PassResult, run_domain_pass


logger = logging.getLogger(__name__)


def minutes_every(interval: int) -> set[int]:
    # arq cron matches minute values; intervals of an hour or more fire at :00.
    if interval <= 0 or interval >= 60:
        return {0}
    return set(range(0, 60, interval))


def _summary(result: PassResult) -> str:
    return f"{result.domain}:{result.outcome}"


async def sync_residential(ctx) -> str:
    return _summary(await run_domain_pass("residential"))


async def sync_datacenter(ctx) -> str:
    return _summary(await run_domain_pass("datacenter"))


async def sync_mobile(ctx) -> str:
    return _summary(await run_domain_pass("mobile"))


async def sync_packages(ctx) -> str:
    return _summary(await run_domain_pass("package"))


async def sync_zip_codes(ctx) -> str:
    return _summary(await run_domain_pass("zip"))


async def _startup(ctx) -> None:
    configure_logging()
    logger.info("sync_worker_started")


async def _shutdown(ctx) -> None:
    logger.info("sync_worker_stopped")


def _cron_jobs() -> list:
    settings = get_settings()
    common = {
        "run_at_startup": settings.scheduler_run_at_startup,
        "unique": True,
        "timeout": settings.sync_job_timeout_s,
    }
    return [
        cron(sync_residential, minute=minutes_every(settings.residential_sync_interval_minutes), **common),
        cron(sync_datacenter, minute=minutes_every(settings.datacenter_sync_interval_minutes), **common),
        cron(sync_mobile, minute=minutes_every(settings.mobile_sync_interval_minutes), **common),
        cron(sync_packages, minute=minutes_every(settings.package_sync_interval_minutes), **common),
        cron(sync_zip_codes, hour=settings.zip_sync_hour, minute=30, **common),
    ]


class WorkerSettings:
    # Keep worker configuration as class attributes for arq CLI compatibility.
    settings = get_settings()
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    queue_name = settings.sync_queue_name
    functions = [sync_residential, sync_datacenter, sync_mobile, sync_packages, sync_zip_codes]
    cron_jobs = _cron_jobs()
    job_timeout = settings.sync_job_timeout_s
    on_startup = _startup
    on_shutdown = _shutdown
