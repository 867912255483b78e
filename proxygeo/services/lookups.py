from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable

from proxygeo.core.errors import FetchError
from proxygeo.providers.upstream.client import UpstreamClient


logger = logging.getLogger(__name__)


@dataclass
class CodeTable:
    # Loaded once per process; stale until restart.
    name: str
    codes: dict[str, int] = field(default_factory=dict)
    loaded_at: datetime | None = None

    def get(self, key: str | None) -> int | None:
        if not key:
            return None
        return self.codes.get(key)

    def status(self) -> dict[str, object]:
        return {
            "count": len(self.codes),
            "loaded_at": self.loaded_at.isoformat() if self.loaded_at else None,
        }


class LookupCache:
    """Process-wide subdivision and ISP code tables.

    ``load()`` is called once at startup (usually as a background task). There is no
    refresh or invalidation; ``loaded_at`` tells callers how old the data is.
    """

    def __init__(self) -> None:
        self.subdivisions = CodeTable("subdivisions")
        self.isps = CodeTable("isps")
        self._lock = asyncio.Lock()

    async def _load_table(self, table: CodeTable, fetch: Callable[[], Awaitable[dict[str, int]]]) -> None:
        logger.info("lookup_load_started table=%s", table.name)
        try:
            codes = await fetch()
        except FetchError:
            # Keep whatever was loaded before; callers see a null code.
            logger.exception("lookup_load_failed table=%s", table.name)
            return
        table.codes = codes
        table.loaded_at = datetime.now(timezone.utc)
        logger.info("lookup_load_completed table=%s count=%s", table.name, len(codes))

    async def load(self, client: UpstreamClient | None = None) -> None:
        async with self._lock:
            owned = client is None
            client = client or UpstreamClient()
            try:
                await self._load_table(self.subdivisions, client.fetch_subdivision_codes)
                await self._load_table(self.isps, client.fetch_isp_codes)
            finally:
                if owned:
                    await client.aclose()

    def status(self) -> dict[str, dict[str, object]]:
        return {"subdivisions": self.subdivisions.status(), "isps": self.isps.status()}


_cache = LookupCache()


def get_lookup_cache() -> LookupCache:
    return _cache


def start_background_load() -> asyncio.Task:
    # Fire-and-forget at startup; failures are logged inside load().
    return asyncio.create_task(_cache.load())
