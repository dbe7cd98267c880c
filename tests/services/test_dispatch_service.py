"""Tests for the dispatch facade and a full cycle."""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from lastmile.config import DispatchConfig, LoggingConfig, SchedulerSettings
from lastmile.db.models import Order, OrderStatus, ResolutionSource, ResolvedAddress
from lastmile.services.ai_address_standardizer import StandardizedAddress
from lastmile.services.dispatch_service import (
    DispatchService,
    open_dispatch_service,
    scheduler_config_from,
)
from lastmile.services.geocode_client import Coordinates, RouteSummary
from lastmile.services.order_feed import FeedOrder, StatusReport

RAW = "191 Bùi Thị Xuân, Phường 6, Tân Bình"
STANDARD = StandardizedAddress(
    "191 Bùi Thị Xuân, Phường 1, Quận Tân Bình, Hồ Chí Minh, Việt Nam",
    "Quận Tân Bình",
    "Phường 1",
)


@pytest.fixture
def collaborators():
    standardizer = MagicMock()
    standardizer.standardize = AsyncMock(return_value=STANDARD)

    geocoder = MagicMock()
    geocoder.geocode = AsyncMock(return_value=Coordinates(10.78, 106.66))
    geocoder.route = AsyncMock(return_value=RouteSummary(distance_km=8.0, travel_minutes=20))

    feed = MagicMock()
    feed.fetch_orders = AsyncMock(
        return_value=[
            FeedOrder(
                order_id="X1",
                address=RAW,
                note="giao gấp trước 15h",
                dispatched_text="14/03/2024 08:50:00",
            )
        ]
    )

    status = MagicMock()
    status.get_status = AsyncMock(
        return_value=StatusReport("Chờ xác nhận giao/lấy hàng", OrderStatus.awaiting)
    )
    return standardizer, geocoder, feed, status


@pytest.fixture
def service(db_session, dispatch_config, collaborators, clock):
    standardizer, geocoder, feed, status = collaborators
    return DispatchService(
        db_session,
        dispatch_config,
        standardizer=standardizer,
        geocoder=geocoder,
        feed_client=feed,
        status_client=status,
        clock=clock,
    )


class TestRunCycle:
    """Tests for DispatchService.run_cycle."""

    async def test_full_cycle(self, service, db_session):
        report = await service.run_cycle()

        assert report.feed_available
        assert report.ingested == 1
        assert report.notes_analyzed == 1
        assert report.resolved == 1
        assert report.routed == 1

        row = db_session.get(ResolvedAddress, "X1")
        assert row.source == ResolutionSource.ai_model.value
        assert (row.distance_km, row.travel_minutes) == (8.0, 20)
        order = db_session.get(Order, "X1")
        assert order.urgency == 2
        assert order.deadline == datetime(2024, 3, 14, 15, 0)

        page = service.rank_and_page(page=1)
        assert [e.order_id for e in page.orders] == ["X1"]
        assert page.orders[0].tier == 0
        assert service.locations() == [("Quận Tân Bình", "Phường 1")]

    async def test_second_cycle_is_quiet(self, service, collaborators):
        standardizer, geocoder, _, status = collaborators
        await service.run_cycle()

        report = await service.run_cycle()

        assert report.ingested == 0
        assert report.resolved == 0
        assert report.routed == 0
        assert standardizer.standardize.await_count == 1
        assert geocoder.route.await_count == 1

    async def test_feed_outage_still_processes_stored_orders(
        self, service, collaborators, make_order, db_session
    ):
        _, _, feed, _ = collaborators
        feed.fetch_orders = AsyncMock(side_effect=httpx.ConnectError("feed down"))
        make_order("OLD", raw_address=RAW, dispatched_at=datetime(2024, 3, 14, 8, 0))

        report = await service.run_cycle()

        assert not report.feed_available
        assert report.ingested == 0
        assert report.resolved == 1
        assert report.flagged_overdue == 0
        assert db_session.get(ResolvedAddress, "OLD").district == "Quận Tân Bình"

    async def test_completed_orders_leave_worklist(self, service, collaborators, db_session):
        _, _, _, status = collaborators
        await service.run_cycle()
        status.get_status = AsyncMock(
            return_value=StatusReport("Hoàn thành", OrderStatus.completed)
        )

        report = await service.run_cycle()

        assert report.statuses_changed == 1
        assert service.rank_and_page().total_count == 0


class TestFacade:
    """Tests for the pass-through operations."""

    async def test_resolve_addresses(self, service, make_order):
        order = make_order("R1", raw_address=RAW)

        rows = await service.resolve_addresses([order])

        assert [r.order_id for r in rows] == ["R1"]

    def test_scheduler_config_from_settings(self):
        settings = SchedulerSettings(page_size=20, imminent_window_minutes=90)

        config = scheduler_config_from(DispatchConfig(scheduler=settings))

        assert config.page_size == 20
        assert config.imminent_window.total_seconds() == 90 * 60

    async def test_open_dispatch_service_applies_logging_config(self, monkeypatch):
        calls = []
        monkeypatch.setattr(
            "lastmile.services.dispatch_service.configure_logging",
            lambda level, fmt: calls.append((level, fmt)),
        )
        config = DispatchConfig(logging=LoggingConfig(level="DEBUG", format="json"))

        async with open_dispatch_service(config) as service:
            assert isinstance(service, DispatchService)

        assert calls == [("DEBUG", "json")]
