"""Database layer: ORM models and session management."""

from lastmile.db.models import (
    Base,
    FeedWatermark,
    Order,
    OrderStatus,
    ResolutionSource,
    ResolvedAddress,
    RouteCacheEntry,
    TransportCompany,
    Urgency,
)

__all__ = [
    "Base",
    "FeedWatermark",
    "Order",
    "OrderStatus",
    "ResolutionSource",
    "ResolvedAddress",
    "RouteCacheEntry",
    "TransportCompany",
    "Urgency",
]
