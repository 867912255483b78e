from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from proxygeo.apps.api.deps import Page, get_db, get_page, get_upstream_client
from proxygeo.apps.api.errors import error_body
from proxygeo.apps.api.presenters import country_list, country_tree
from proxygeo.providers.upstream.client import UpstreamClient
from proxygeo.services.lookups import get_lookup_cache
from proxygeo.services.query import InventoryFilters, query_inventory
from proxygeo.services.sync.pipeline import run_domain_pass


logger = logging.getLogger(__name__)

_LABELS = {"residential": "Residential", "datacenter": "Datacenter", "mobile": "Mobile"}


def build_inventory_router(domain: str) -> APIRouter:
    """Read and fetch-now routes shared by the three inventory domains."""
    label = _LABELS[domain]
    router = APIRouter(prefix=f"/{domain}", tags=[domain])

    @router.get("/fetch")
    async def fetch_now(client: UpstreamClient = Depends(get_upstream_client)) -> Any:
        # Run one pass inline; partial results are never reported.
        result = await run_domain_pass(domain, client=client)
        if not result.ok:
            return JSONResponse(status_code=500, content=error_body(f"Failed to fetch {domain} data"))
        return {"message": f"{label} data has been updated."}

    @router.get("")
    async def list_inventory(
        country: str | None = Query(default=None),
        subdivision: str | None = Query(default=None),
        city: str | None = Query(default=None),
        isp: str | None = Query(default=None),
        asn: int | None = Query(default=None),
        nodes: int | None = Query(default=None),
        zip: str | None = Query(default=None),
        page: Page = Depends(get_page),
        db: AsyncSession = Depends(get_db),
    ) -> Any:
        filters = InventoryFilters(
            country=country,
            subdivision=subdivision,
            city=city,
            isp=isp,
            asn=asn,
            nodes=nodes or 0,
            zip=zip,
            skip=page.skip,
            take=page.take,
        )
        try:
            result = await query_inventory(db, domain, filters)
        except SQLAlchemyError as exc:
            logger.error("inventory_query_failed domain=%s", domain, exc_info=exc)
            raise HTTPException(status_code=500, detail=f"Failed to get {domain} data") from exc
        if result.is_country_listing:
            return country_list(result.countries)
        return country_tree(result.rows, get_lookup_cache())

    return router
