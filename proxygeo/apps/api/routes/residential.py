from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from proxygeo.apps.api.deps import get_upstream_client
from proxygeo.apps.api.errors import error_body
from proxygeo.providers.upstream.client import UpstreamClient
from proxygeo.services.lookups import get_lookup_cache
from proxygeo.services.sync.pipeline import run_domain_pass, run_geo_match
from proxygeo.services.webhook import handle_payment_webhook


# Residential-only extras; registered before the shared inventory routes.
router = APIRouter(prefix="/residential", tags=["residential"])


class IspCodeResponse(BaseModel):
    isp: str | None
    code: int | None


@router.get("/isp", response_model=IspCodeResponse)
async def isp_code(ispName: str | None = Query(default=None)) -> IspCodeResponse:
    return IspCodeResponse(isp=ispName, code=get_lookup_cache().isps.get(ispName) or None)


@router.get("/zip-codes/fetch")
async def fetch_zip_codes(client: UpstreamClient = Depends(get_upstream_client)) -> Any:
    result = await run_domain_pass("zip", client=client)
    if not result.ok:
        return JSONResponse(status_code=500, content=error_body("Failed to fetch ZIP codes"))
    return {"message": "ZIP codes have been updated successfully."}


@router.post("/zip-codes/match")
async def match_zip_codes() -> Any:
    result = await run_geo_match()
    if not result.ok:
        return JSONResponse(status_code=500, content=error_body("Failed to match ZIP codes"))
    return {"message": "ZIP codes matching completed successfully."}


@router.post("/webhook")
async def payment_webhook(request: Request) -> dict[str, Any]:
    # Always 200; the payment provider must never see a failure.
    body = await request.body()
    return await handle_payment_webhook(body)
