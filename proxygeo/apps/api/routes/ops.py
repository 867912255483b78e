from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query
from pydantic import BaseModel

from proxygeo.persistence.db import pool_stats
from proxygeo.services.lookups import get_lookup_cache
from proxygeo.services.sync.pipeline import SYNC_DOMAINS, is_pass_running
from proxygeo.services.telemetry import (
    counters_snapshot,
    last_pass_by_domain,
    request_summary,
    upstream_latency_by_endpoint,
)


router = APIRouter(tags=["ops"])


class LookupTableStatus(BaseModel):
    count: int
    loaded_at: str | None


class LookupStatusResponse(BaseModel):
    # loaded_at stays null until the startup fetch has completed.
    subdivisions: LookupTableStatus
    isps: LookupTableStatus


class OpsMetricsResponse(BaseModel):
    counters: dict[str, int]
    requests: dict[str, float | int]
    upstream_latency_ms: dict[str, dict[str, Any]]
    last_pass: dict[str, dict[str, Any]]
    running: dict[str, bool]
    db_pool: dict[str, int | None]


@router.get("/lookups/status", response_model=LookupStatusResponse)
async def lookups_status() -> LookupStatusResponse:
    return LookupStatusResponse.model_validate(get_lookup_cache().status())


@router.get("/ops/metrics", response_model=OpsMetricsResponse)
async def ops_metrics(window_s: int = Query(default=300, ge=1, le=86400)) -> OpsMetricsResponse:
    # In-process counters only; they reset with the process.
    return OpsMetricsResponse(
        counters=counters_snapshot(),
        requests=request_summary(window_s),
        upstream_latency_ms=upstream_latency_by_endpoint(window_s),
        last_pass=last_pass_by_domain(),
        running={domain: is_pass_running(domain) for domain in SYNC_DOMAINS},
        db_pool=pool_stats(),
    )
