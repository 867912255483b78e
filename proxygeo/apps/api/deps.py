from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncGenerator

from fastapi import HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from proxygeo.core.config import get_settings
from proxygeo.persistence.db import get_session
from proxygeo.providers.upstream.client import UpstreamClient


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


@dataclass(frozen=True)
class Page:
    skip: int
    take: int


def _parse_int(raw: str | None, default: int) -> int | None:
    # Empty values fall back to the default; non-integers are rejected by the caller.
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return None


def parse_skip(raw: str | None) -> int:
    value = _parse_int(raw, 0)
    if value is None or value < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid skip parameter")
    return value


def parse_take(raw: str | None) -> int:
    settings = get_settings()
    value = _parse_int(raw, settings.query_default_take)
    if value is None or value < 1 or value > settings.query_max_take:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid take parameter")
    return value


async def get_page(
    skip: str | None = Query(default=None),
    take: str | None = Query(default=None),
) -> Page:
    # Validate pagination before the route body runs, like a request middleware.
    return Page(skip=parse_skip(skip), take=parse_take(take))


async def get_upstream_client() -> AsyncGenerator[UpstreamClient, None]:
    # Fetch-now routes share one upstream client per request.
    client = UpstreamClient()
    try:
        yield client
    finally:
        await client.aclose()
