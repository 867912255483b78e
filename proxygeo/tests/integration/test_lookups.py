from __future__ import annotations

import httpx
import pytest

from proxygeo.services.lookups import LookupCache
from proxygeo.tests.utils.upstream import upstream_client


CODE_ROUTES = {
    ("GET", "/subdivision-codes"): [[{"subdivision": "California", "code": 5}, {"subdivision": "Texas", "code": 9}]],
    ("POST", "/includes/api/client/isp_codes.php"): [[{"isp": "Comcast", "code": 77}]],
}


@pytest.mark.asyncio
async def test_load_fills_both_tables_and_stamps_loaded_at() -> None:
    cache = LookupCache()
    assert cache.subdivisions.loaded_at is None

    await cache.load(upstream_client(CODE_ROUTES))

    assert cache.subdivisions.codes == {"California": 5, "Texas": 9}
    assert cache.isps.get("Comcast") == 77
    assert cache.subdivisions.loaded_at is not None
    assert cache.isps.loaded_at is not None
    status = cache.status()
    assert status["subdivisions"]["count"] == 2
    assert status["isps"]["loaded_at"] == cache.isps.loaded_at.isoformat()


@pytest.mark.asyncio
async def test_failed_reload_keeps_previous_tables() -> None:
    cache = LookupCache()
    await cache.load(upstream_client(CODE_ROUTES))
    subdivisions_loaded_at = cache.subdivisions.loaded_at
    isps_loaded_at = cache.isps.loaded_at

    failing = upstream_client(
        {
            ("GET", "/subdivision-codes"): httpx.Response(503, json={"error": "unavailable"}),
            ("POST", "/includes/api/client/isp_codes.php"): httpx.Response(500, json={"error": "boom"}),
        }
    )
    await cache.load(failing)

    assert cache.subdivisions.codes == {"California": 5, "Texas": 9}
    assert cache.isps.codes == {"Comcast": 77}
    assert cache.subdivisions.loaded_at == subdivisions_loaded_at
    assert cache.isps.loaded_at == isps_loaded_at
