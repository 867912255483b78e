from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from proxygeo.core.config import get_settings, upstream_path_for
from proxygeo.core.errors import FetchError
from proxygeo.services.telemetry import record_upstream_call


logger = logging.getLogger(__name__)


class UpstreamClient:
    """Thin async client for the proxy provider API.

    Every call either returns the decoded JSON payload or raises FetchError; the
    client never retries, so a failed call aborts the pass that issued it.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._settings = get_settings()
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        # Reuse a single client per instance for connection pooling.
        self._client = httpx.AsyncClient(
            base_url=self._settings.upstream_base_url,
            timeout=self._settings.upstream_timeout_ms / 1000.0,
            headers={"api-key": self._settings.upstream_api_key},
        )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "UpstreamClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        client = self._get_client()
        start = time.monotonic()
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            record_upstream_call(endpoint=url, latency_ms=(time.monotonic() - start) * 1000.0, success=False)
            raise FetchError(f"Upstream request failed: {method} {url}") from exc

        latency_ms = (time.monotonic() - start) * 1000.0
        if response.status_code >= 400:
            record_upstream_call(endpoint=url, latency_ms=latency_ms, success=False)
            raise FetchError(
                f"Upstream responded with status {response.status_code}: {method} {url}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            record_upstream_call(endpoint=url, latency_ms=latency_ms, success=False)
            raise FetchError(f"Upstream returned invalid JSON: {method} {url}") from exc
        record_upstream_call(endpoint=url, latency_ms=latency_ms, success=True)
        return payload

    async def fetch_inventory(self, domain: str) -> list[dict[str, Any]]:
        payload = await self._request("GET", upstream_path_for(domain))
        if not isinstance(payload, list):
            raise FetchError(f"Unexpected {domain} payload type: {type(payload).__name__}")
        return payload

    async def fetch_packages(self) -> list[dict[str, Any]]:
        payload = await self._request("GET", self._settings.packages_path)
        results = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(results, list):
            raise FetchError("Unexpected packages payload: missing results list")
        return results

    async def fetch_zip_codes(self) -> list[dict[str, Any]]:
        # Upstream groups zips into an array of arrays.
        payload = await self._request("POST", self._settings.zip_codes_path)
        if not isinstance(payload, list):
            raise FetchError("Unexpected zip codes payload")
        flattened: list[dict[str, Any]] = []
        for group in payload:
            if isinstance(group, list):
                flattened.extend(item for item in group if isinstance(item, dict))
            elif isinstance(group, dict):
                flattened.append(group)
        return flattened

    async def fetch_subdivision_codes(self) -> dict[str, int]:
        payload = await self._request("GET", self._settings.subdivision_codes_path)
        return _code_table(payload, name_field="subdivision")

    async def fetch_isp_codes(self) -> dict[str, int]:
        # The dashboard endpoint expects multipart form credentials, not the api-key header.
        payload = await self._request(
            "POST",
            self._settings.isp_codes_url,
            files={
                "email": (None, self._settings.isp_codes_email),
                "password": (None, self._settings.isp_codes_password),
            },
        )
        return _code_table(payload, name_field="isp")


def _code_table(payload: Any, *, name_field: str) -> dict[str, int]:
    # Lookup tables arrive wrapped in a one-element outer array.
    if not isinstance(payload, list) or not payload or not isinstance(payload[0], list):
        raise FetchError(f"Unexpected {name_field} code table payload")
    table: dict[str, int] = {}
    for item in payload[0]:
        if not isinstance(item, dict) or name_field not in item:
            continue
        table[str(item[name_field])] = item.get("code")
    return table
