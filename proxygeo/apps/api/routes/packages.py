from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from proxygeo.apps.api.deps import Page, get_db, get_page, get_upstream_client
from proxygeo.apps.api.errors import error_body
from proxygeo.apps.api.presenters import history_entry, package_entry
from proxygeo.providers.upstream.client import UpstreamClient
from proxygeo.services.query import package_detail, package_history, query_packages
from proxygeo.services.stats import package_stats
from proxygeo.services.sync.pipeline import run_domain_pass


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/packages", tags=["packages"])


class PackageStatsResponse(BaseModel):
    # Byte totals are strings; counts stay numeric.
    totalPackages: int
    totalLimit: str
    totalUsage: str
    totalRemaining: str
    activePackages: int
    suspendedPackages: int


@router.get("/fetch")
async def fetch_packages(client: UpstreamClient = Depends(get_upstream_client)) -> Any:
    result = await run_domain_pass("package", client=client)
    if not result.ok:
        return JSONResponse(status_code=500, content=error_body("Failed to fetch packages data"))
    return {"message": "Packages data has been updated."}


@router.get("/stats", response_model=PackageStatsResponse)
async def get_package_stats(db: AsyncSession = Depends(get_db)) -> PackageStatsResponse:
    try:
        stats = await package_stats(db)
    except SQLAlchemyError as exc:
        logger.error("package_stats_failed", exc_info=exc)
        raise HTTPException(status_code=500, detail="Failed to get packages stats") from exc
    return PackageStatsResponse(
        totalPackages=stats.total_packages,
        totalLimit=str(stats.total_limit),
        totalUsage=str(stats.total_usage),
        totalRemaining=str(stats.total_remaining),
        activePackages=stats.active_packages,
        suspendedPackages=stats.suspended_packages,
    )


@router.get("")
async def list_packages(
    packageKey: str | None = Query(default=None),
    page: Page = Depends(get_page),
    db: AsyncSession = Depends(get_db),
) -> list[dict[str, Any]]:
    try:
        packages = await query_packages(db, package_key=packageKey, skip=page.skip, take=page.take)
    except SQLAlchemyError as exc:
        logger.error("package_list_failed", exc_info=exc)
        raise HTTPException(status_code=500, detail="Failed to get packages data") from exc
    return [package_entry(package) for package in packages]


@router.get("/{packageKey}")
async def get_package(packageKey: str, db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    try:
        found = await package_detail(db, packageKey)
    except SQLAlchemyError as exc:
        logger.error("package_detail_failed package_key=%s", packageKey, exc_info=exc)
        raise HTTPException(status_code=500, detail="Failed to get package data") from exc
    if found is None:
        raise HTTPException(status_code=404, detail="Package not found")
    package, history = found
    payload = package_entry(package)
    payload["trafficHistory"] = [history_entry(row) for row in history]
    return payload


@router.get("/{packageId}/traffic-history")
async def get_traffic_history(
    packageId: int,
    days: int | None = Query(default=None, ge=0),
    db: AsyncSession = Depends(get_db),
) -> list[dict[str, Any]]:
    try:
        rows = await package_history(db, packageId, days)
    except SQLAlchemyError as exc:
        logger.error("package_history_failed package_id=%s", packageId, exc_info=exc)
        raise HTTPException(status_code=500, detail="Failed to get package traffic history") from exc
    return [history_entry(row) for row in rows]
