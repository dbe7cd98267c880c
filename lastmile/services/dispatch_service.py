"""Dispatch facade: one object wiring ingestion, resolution and ranking.

A cycle runs strictly in order: status sync, overdue flagging, feed
ingestion, note analysis, address resolution, distance computation. The
worklist itself is produced on demand by ``rank_and_page``.

Example:
    async with open_dispatch_service(load_config()) as service:
        await service.run_cycle()
        page = service.rank_and_page(page=1)
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from lastmile.config import DispatchConfig
from lastmile.db.models import Order, OrderStatus, ResolvedAddress
from lastmile.logging_config import configure_logging
from lastmile.services.address_pipeline import AddressResolutionPipeline
from lastmile.services.ai_address_standardizer import AIAddressStandardizer
from lastmile.services.geocode_client import GeocodeClient
from lastmile.services.order_feed import (
    OrderFeedClient,
    OrderIngestor,
    OrderStatusClient,
)
from lastmile.services.priority_scheduler import (
    PriorityScheduler,
    SchedulerConfig,
    WorklistEntry,
    WorklistFilters,
    WorklistPage,
)
from lastmile.services.route_cache import RouteCache
from lastmile.services.transport_company_resolver import TransportCompanyResolver
from lastmile.utils.clock import local_now

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    """Counters from one dispatch cycle."""

    statuses_changed: int = 0
    flagged_overdue: int = 0
    ingested: int = 0
    notes_analyzed: int = 0
    resolved: int = 0
    routed: int = 0
    feed_available: bool = True


def scheduler_config_from(config: DispatchConfig) -> SchedulerConfig:
    settings = config.scheduler
    return SchedulerConfig(
        page_size=settings.page_size,
        far_distance_km=settings.far_distance_km,
        imminent_window=timedelta(minutes=settings.imminent_window_minutes),
    )


class DispatchService:
    """Facade over the dispatch components sharing one session.

    Attributes:
        _db: Session shared by every component
        _config: Dispatch configuration
        _feed: Order feed client
        _ingestor: Feed ingestion and status sync
        _pipeline: Address resolution pipeline
        _scheduler: Worklist ranking
    """

    def __init__(
        self,
        db: Session,
        config: DispatchConfig,
        standardizer: AIAddressStandardizer | None = None,
        geocoder: GeocodeClient | None = None,
        feed_client: OrderFeedClient | None = None,
        status_client: OrderStatusClient | None = None,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self._db = db
        self._config = config
        self._clock = clock
        self._feed = feed_client or OrderFeedClient(config.feed)
        self._ingestor = OrderIngestor(
            db, status_client or OrderStatusClient(config.feed), config.feed, clock=clock
        )
        route_cache = RouteCache(
            db,
            geocoder or GeocodeClient(config.geocode),
            config.warehouse.address,
            window_hours=config.route_cache.window_hours,
            clock=clock,
        )
        self._pipeline = AddressResolutionPipeline(
            db,
            config,
            standardizer or AIAddressStandardizer(config.ai),
            TransportCompanyResolver(db),
            route_cache,
            clock=clock,
        )
        self._scheduler = PriorityScheduler(db, scheduler_config_from(config), clock=clock)

    @property
    def pipeline(self) -> AddressResolutionPipeline:
        return self._pipeline

    async def resolve_addresses(self, orders: list[Order]) -> list[ResolvedAddress]:
        return await self._pipeline.resolve_addresses(orders)

    def rank_and_page(
        self,
        page: int = 1,
        page_size: int | None = None,
        filters: WorklistFilters | None = None,
        now: datetime | None = None,
    ) -> WorklistPage:
        return self._scheduler.rank_and_page(page, page_size, filters, now)

    def worklist_entry(self, order_id: str, now: datetime | None = None) -> WorklistEntry:
        return self._scheduler.entry(order_id, now)

    def locations(self) -> list[tuple[str, str]]:
        return self._scheduler.locations()

    def _orders_to_resolve(self, ingested: list[str]) -> list[Order]:
        """Ingested orders plus awaiting orders never resolved."""
        ids = list(dict.fromkeys(ingested))
        unresolved = self._db.scalars(
            select(Order.id)
            .outerjoin(ResolvedAddress, ResolvedAddress.order_id == Order.id)
            .where(Order.status == OrderStatus.awaiting.value)
            .where(ResolvedAddress.order_id.is_(None))
            .order_by(Order.id)
        ).all()
        for order_id in unresolved:
            if order_id not in ids:
                ids.append(order_id)
        orders = [self._db.get(Order, order_id) for order_id in ids]
        return [o for o in orders if o is not None and o.status == OrderStatus.awaiting.value]

    async def run_cycle(self, now: datetime | None = None) -> CycleReport:
        """Run one full dispatch cycle.

        An unavailable feed is logged and the remaining steps still run on
        the orders already stored.
        """
        now = now or self._clock()
        report = CycleReport()
        logger.info("dispatch_cycle_start now=%s", now)

        report.statuses_changed = await self._ingestor.sync_statuses()
        report.flagged_overdue = self._pipeline.flag_overdue(now)

        ingested: list[str] = []
        try:
            feed_orders = await self._feed.fetch_orders()
        except (httpx.HTTPError, ValueError) as e:
            report.feed_available = False
            logger.error("feed_unavailable code=E-3004 error=%s", e)
        else:
            ingested = await self._ingestor.ingest(feed_orders)
        report.ingested = len(ingested)

        report.notes_analyzed = self._pipeline.analyze_notes(now)
        resolved = await self._pipeline.resolve_addresses(self._orders_to_resolve(ingested))
        report.resolved = len(resolved)
        report.routed = await self._pipeline.compute_distances(now)

        logger.info(
            "dispatch_cycle_done statuses_changed=%d overdue=%d ingested=%d "
            "notes=%d resolved=%d routed=%d",
            report.statuses_changed, report.flagged_overdue, report.ingested,
            report.notes_analyzed, report.resolved, report.routed,
        )
        return report


@asynccontextmanager
async def open_dispatch_service(config: DispatchConfig) -> AsyncIterator[DispatchService]:
    """Yield a DispatchService bound to a committed session and live clients.

    This is the process entry point, so it applies ``config.logging``.

    Args:
        config: Loaded dispatch configuration.

    Yields:
        DispatchService sharing one session across its components.
    """
    from lastmile.db.connection import get_db_context

    configure_logging(config.logging.level, config.logging.format)

    async with (
        OrderFeedClient(config.feed) as feed,
        OrderStatusClient(config.feed) as status,
        GeocodeClient(config.geocode) as geocoder,
    ):
        with get_db_context() as db:
            yield DispatchService(
                db,
                config,
                geocoder=geocoder,
                feed_client=feed,
                status_client=status,
            )
