from __future__ import annotations

import os
import tempfile
from pathlib import Path

# Point the engine at a throwaway SQLite file before proxygeo reads its settings.
_DB_DIR = tempfile.mkdtemp(prefix="proxygeo-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{Path(_DB_DIR) / 'proxygeo.db'}")
os.environ.setdefault("LOOKUPS_LOAD_ON_STARTUP", "false")
os.environ.setdefault("UPSTREAM_BASE_URL", "https://upstream.test")
os.environ.setdefault("UPSTREAM_API_KEY", "test-key")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from proxygeo.core.config import get_settings  # noqa: E402
from proxygeo.persistence.db import create_all, drop_all, engine  # noqa: E402
from proxygeo.services import lookups, telemetry  # noqa: E402


@pytest_asyncio.fixture(autouse=True)
async def fresh_schema():
    # Every test starts from empty tables.
    await create_all()
    yield
    await drop_all()
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    await engine.dispose()


@pytest.fixture(autouse=True)
def reset_process_state():
    # Settings, counters and lookup tables are process-wide; isolate them per test.
    get_settings.cache_clear()
    telemetry.reset()
    cache = lookups.get_lookup_cache()
    cache.subdivisions.codes, cache.subdivisions.loaded_at = {}, None
    cache.isps.codes, cache.isps.loaded_at = {}, None
    yield
    get_settings.cache_clear()
