"""SQLAlchemy ORM models for the dispatch state database.

Orders, their resolved delivery addresses, carrier reference data, the
route cache and the feed watermark. Uses SQLAlchemy 2.0 style with Mapped
and mapped_column. Timestamps are naive wall-clock values in the dispatch
timezone.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)

from lastmile.utils.clock import local_now


# Enums matching the database schema constraints


class OrderStatus(str, Enum):
    """Lifecycle status of an order.

    Lifecycle: awaiting -> in-transit -> completed
    """

    awaiting = "awaiting"
    in_transit = "in-transit"
    completed = "completed"


class ResolutionSource(str, Enum):
    """Single provenance tag for a resolved address triple."""

    transport_db = "TransportDB"
    ai_model = "AIModel"
    original_text = "OriginalText"
    invalid = "Invalid"
    empty = "Empty"
    express = "Express"
    note_fallback = "NoteFallback"
    registered_fallback = "RegisteredFallback"


class Urgency(int, Enum):
    """Urgency levels derived from the delivery note."""

    normal = 0
    soft = 1
    hard = 2


# SQLAlchemy Base


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Models


class Order(Base):
    """Order ingested from the external feed.

    Attributes:
        id: Externally assigned order identifier
        raw_address: Delivery address text as entered upstream
        previous_address: Last raw address that differed from the current one
        delivery_note: Free-text delivery note
        registered_address: Registered-office fallback address
        declared_distance_km: Distance hint supplied by the feed
        dispatched_at: Scheduled pickup/dispatch time, None when unparseable
        dispatched_text: Raw dispatch timestamp text from the feed
        status: Lifecycle status (awaiting, in-transit, completed)
        urgency: 0 normal, 1 soft deadline, 2 hard deadline
        deadline: Deadline computed from the delivery note
        note_analyzed: Whether the delivery note has been parsed
    """

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    raw_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    previous_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    registered_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    declared_distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    dispatched_text: Mapped[str | None] = mapped_column(String(32), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OrderStatus.awaiting.value
    )
    urgency: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deadline: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    note_analyzed: Mapped[bool] = mapped_column(nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=local_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=local_now, onupdate=local_now
    )

    resolved: Mapped["ResolvedAddress | None"] = relationship(
        "ResolvedAddress",
        back_populates="order",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_orders_status", "status"),
        Index("idx_orders_dispatched_at", "dispatched_at"),
    )

    def __repr__(self) -> str:
        return f"<Order(id={self.id!r}, status={self.status!r})>"


class ResolvedAddress(Base):
    """Standardized delivery address for one order.

    Address fields and route fields are written by different steps, so
    distance/time may be null while the triple is already resolved.

    Attributes:
        order_id: Foreign key to the order (one row per order)
        address: Standardized address string
        district: District of the standardized address
        ward: Ward of the standardized address
        source: ResolutionSource tag for the whole triple
        distance_km: Route distance from the warehouse
        travel_minutes: Route travel time from the warehouse
        overdue: Set once the order has waited past the overdue threshold
        resolved_from: Raw address text the triple was resolved from
        resolved_note_digest: Digest of the delivery note at resolution time
        previous_distance_km: Distance before the last address change
        previous_travel_minutes: Travel time before the last address change
    """

    __tablename__ = "resolved_addresses"

    order_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("orders.id", ondelete="CASCADE"), primary_key=True
    )
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    district: Mapped[str | None] = mapped_column(String(128), nullable=True)
    ward: Mapped[str | None] = mapped_column(String(128), nullable=True)
    source: Mapped[str] = mapped_column(
        String(32), nullable=False, default=ResolutionSource.empty.value
    )
    distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    travel_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    overdue: Mapped[bool] = mapped_column(nullable=False, default=False)
    resolved_from: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_note_digest: Mapped[str | None] = mapped_column(String(64), nullable=True)
    previous_distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    previous_travel_minutes: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=local_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=local_now, onupdate=local_now
    )

    order: Mapped["Order"] = relationship("Order", back_populates="resolved")

    __table_args__ = (
        Index("idx_resolved_district_ward", "district", "ward"),
    )

    @property
    def is_complete(self) -> bool:
        """True when the triple and route are all known."""
        return (
            bool(self.district)
            and bool(self.ward)
            and self.distance_km is not None
            and self.travel_minutes is not None
        )

    def __repr__(self) -> str:
        return (
            f"<ResolvedAddress(order_id={self.order_id!r}, "
            f"source={self.source!r}, district={self.district!r})>"
        )


class TransportCompany(Base):
    """Carrier reference record, populated by an external sync job.

    The autoincrement id defines table order, which is the final
    disambiguation rule when several carriers match a name.
    """

    __tablename__ = "transport_companies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    standardized_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    district: Mapped[str | None] = mapped_column(String(128), nullable=True)
    ward: Mapped[str | None] = mapped_column(String(128), nullable=True)
    departure_time: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str | None] = mapped_column(String(32), nullable=True)

    __table_args__ = (Index("idx_transport_companies_name", "name"),)

    def __repr__(self) -> str:
        return f"<TransportCompany(id={self.id!r}, name={self.name!r})>"


class RouteCacheEntry(Base):
    """Cached route from a normalized origin to a normalized destination."""

    __tablename__ = "route_cache"

    origin: Mapped[str] = mapped_column(String(512), primary_key=True)
    destination: Mapped[str] = mapped_column(String(512), primary_key=True)
    distance_km: Mapped[float] = mapped_column(Float, nullable=False)
    travel_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    computed_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=local_now
    )

    def __repr__(self) -> str:
        return (
            f"<RouteCacheEntry(destination={self.destination!r}, "
            f"distance_km={self.distance_km!r})>"
        )


class FeedWatermark(Base):
    """Last ingested state of an order feed source."""

    __tablename__ = "feed_watermarks"

    source: Mapped[str] = mapped_column(String(64), primary_key=True)
    order_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    digest: Mapped[str] = mapped_column(String(64), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=local_now, onupdate=local_now
    )

    def __repr__(self) -> str:
        return f"<FeedWatermark(source={self.source!r}, count={self.order_count!r})>"
