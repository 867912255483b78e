from __future__ import annotations

import asyncio

from proxygeo.core.logging import configure_logging
from proxygeo.persistence.db import create_all, engine


async def init() -> None:
    # Create every table and index; there is no migration history to replay.
    configure_logging()
    await create_all()
    await engine.dispose()
    print("schema_created=true")


if __name__ == "__main__":
    asyncio.run(init())
