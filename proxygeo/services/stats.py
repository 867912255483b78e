from __future__ import annotations

from dataclasses import asdict, dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from proxygeo.persistence.repos import packages as packages_repo


@dataclass
class PackageStats:
    total_packages: int = 0
    total_limit: int = 0
    total_usage: int = 0
    total_remaining: int = 0
    active_packages: int = 0
    suspended_packages: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


async def package_stats(session: AsyncSession) -> PackageStats:
    """Aggregate byte totals and flag counts across every stored package.

    Sums use Python ints so multi-terabyte counters stay exact. Intended for
    dashboard-sized package lists; nothing is paginated.
    """
    packages = await packages_repo.list_all(session)
    stats = PackageStats(total_packages=len(packages))
    for package in packages:
        stats.total_limit += package.common_limit or 0
        stats.total_usage += package.common_usage or 0
        if package.is_active:
            stats.active_packages += 1
        if package.is_suspended:
            stats.suspended_packages += 1
    stats.total_remaining = stats.total_limit - stats.total_usage
    return stats
