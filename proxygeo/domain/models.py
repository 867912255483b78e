from __future__ import annotations

import datetime as dt
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# SQLite only autoincrements INTEGER PRIMARY KEY; keep BIGINT on Postgres.
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


class InventoryMixin:
    # Shared shape of the residential, datacenter and mobile node inventories.
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    country: Mapped[str] = mapped_column(String, index=True)
    # Empty strings stand in for missing geo parts so the natural key stays unique.
    subdivision: Mapped[str] = mapped_column(String, default="")
    city: Mapped[str] = mapped_column(String, default="")
    isp: Mapped[str] = mapped_column(String, default="")
    asn: Mapped[int] = mapped_column(BigInteger, default=0)
    nodes: Mapped[int] = mapped_column(Integer, default=0, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Residential(InventoryMixin, Base):
    __tablename__ = "residential"
    __table_args__ = (
        UniqueConstraint(
            "country", "subdivision", "city", "isp", "asn", name="uq_residential_natural_key"
        ),
        Index("ix_residential_geo", "country", "subdivision", "city"),
    )

    postal_links: Mapped[list["ResidentialPostalCode"]] = relationship(
        back_populates="residential", cascade="all, delete-orphan"
    )


class Datacenter(InventoryMixin, Base):
    __tablename__ = "datacenter"
    __table_args__ = (
        UniqueConstraint(
            "country", "subdivision", "city", "isp", "asn", "zip", name="uq_datacenter_natural_key"
        ),
    )

    # Datacenter and mobile rows carry their zip directly; no association table.
    zip: Mapped[str] = mapped_column(String, default="")


class Mobile(InventoryMixin, Base):
    __tablename__ = "mobile"
    __table_args__ = (
        UniqueConstraint("country", "subdivision", "city", "isp", "asn", "zip", name="uq_mobile_natural_key"),
    )

    zip: Mapped[str] = mapped_column(String, default="")


class PostalCode(Base):
    __tablename__ = "postal_codes"
    __table_args__ = (
        # Reconciliation looks postal codes up by exact geo triple.
        Index("ix_postal_codes_geo", "country", "subdivision", "city"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    zip: Mapped[str] = mapped_column(String, unique=True)
    country: Mapped[str] = mapped_column(String)
    subdivision: Mapped[str] = mapped_column(String, default="")
    city: Mapped[str] = mapped_column(String, default="")

    residential_links: Mapped[list["ResidentialPostalCode"]] = relationship(back_populates="postal_code")


class ResidentialPostalCode(Base):
    __tablename__ = "residential_postal_codes"
    __table_args__ = (
        UniqueConstraint("residential_id", "postal_code_id", name="uq_residential_postal_code"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    residential_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("residential.id", ondelete="CASCADE"), index=True
    )
    postal_code_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("postal_codes.id", ondelete="CASCADE"), index=True
    )

    residential: Mapped[Residential] = relationship(back_populates="postal_links")
    postal_code: Mapped[PostalCode] = relationship(back_populates="residential_links")


class Package(Base):
    __tablename__ = "packages"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    package_key: Mapped[str] = mapped_column(String, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    expired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_suspended: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    status: Mapped[str] = mapped_column(String)
    proxy_count: Mapped[int] = mapped_column(Integer, default=0)
    # Byte counters: NULL limit means "no limit" upstream.
    common_limit: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    daily_limit: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    weekly_limit: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    monthly_limit: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    daily_usage: Mapped[int] = mapped_column(BigInteger, default=0)
    weekly_usage: Mapped[int] = mapped_column(BigInteger, default=0)
    monthly_usage: Mapped[int] = mapped_column(BigInteger, default=0)
    common_usage: Mapped[int] = mapped_column(BigInteger, default=0)
    update_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    traffic_history: Mapped[list["PackageTrafficHistory"]] = relationship(
        back_populates="package", cascade="all, delete-orphan"
    )

    @property
    def remaining(self) -> int:
        # Derived on read; a stored copy would go stale with every usage update.
        if self.common_limit:
            return self.common_limit - self.common_usage
        return 0


class PackageTrafficHistory(Base):
    __tablename__ = "package_traffic_history"
    __table_args__ = (
        UniqueConstraint("package_id", "date", name="uq_package_traffic_history_day"),
        Index("ix_package_traffic_history_date", "date"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    package_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("packages.id", ondelete="CASCADE"), index=True
    )
    # Day granularity; one row per package per calendar day.
    date: Mapped[dt.date] = mapped_column(Date)
    daily_usage: Mapped[int] = mapped_column(BigInteger, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    package: Mapped[Package] = relationship(back_populates="traffic_history")


INVENTORY_MODELS: dict[str, type[InventoryMixin]] = {
    "residential": Residential,
    "datacenter": Datacenter,
    "mobile": Mobile,
}
