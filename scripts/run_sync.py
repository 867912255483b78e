from __future__ import annotations

import argparse
import asyncio
import sys

from proxygeo.core.config import INVENTORY_DOMAINS
from proxygeo.core.logging import configure_logging
from proxygeo.persistence.db import engine
from proxygeo.services.sync.pipeline import SYNC_DOMAINS, clear_inventory, run_domain_pass, run_geo_match


async def _run(domain: str, clear: bool, match_only: bool) -> bool:
    # One-off pass outside the scheduler; the in-process guard still applies.
    try:
        if clear:
            deleted = await clear_inventory(domain)
            print(f"cleared_{domain}={deleted}")
        if match_only:
            result = await run_geo_match()
        else:
            result = await run_domain_pass(domain)
    finally:
        await engine.dispose()
    print(f"domain={result.domain} outcome={result.outcome}")
    if result.upsert is not None:
        print(
            f"received={result.upsert.received} written={result.upsert.written} "
            f"failed_chunks={result.upsert.failed_chunks}"
        )
    if result.match is not None:
        print(
            f"associations={result.match.associations} "
            f"lookup_failures={result.match.lookup_failures} failed_batches={result.match.failed_batches}"
        )
    if result.packages is not None:
        print(
            f"packages_saved={result.packages.saved} packages_failed={result.packages.failed} "
            f"pruned_history={result.packages.pruned_history}"
        )
    return result.ok


def main() -> None:
    parser = argparse.ArgumentParser(description="Run one sync pass for a domain")
    parser.add_argument("--domain", choices=SYNC_DOMAINS, required=True)
    parser.add_argument("--clear", action="store_true", help="delete the inventory table before syncing")
    parser.add_argument("--match-only", action="store_true", help="only rebuild residential zip links")
    args = parser.parse_args()

    if args.clear and args.domain not in INVENTORY_DOMAINS:
        parser.error("--clear only applies to inventory domains")
    if args.match_only and args.domain != "residential":
        parser.error("--match-only only applies to the residential domain")

    configure_logging()
    ok = asyncio.run(_run(args.domain, args.clear, args.match_only))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
