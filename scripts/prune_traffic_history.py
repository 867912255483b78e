from __future__ import annotations

import argparse
import asyncio

from proxygeo.core.config import get_settings
from proxygeo.persistence.db import SessionLocal
from proxygeo.services.traffic_history import prune_older_than


async def prune(retention_days: int) -> None:
    async with SessionLocal() as session:
        deleted = await prune_older_than(session, retention_days)
        await session.commit()
        print(f"pruned_traffic_history={deleted}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Delete package traffic history beyond retention")
    parser.add_argument("--retention-days", type=int, default=None)
    args = parser.parse_args()

    retention = args.retention_days or get_settings().traffic_history_retention_days
    asyncio.run(prune(retention))


if __name__ == "__main__":
    main()
