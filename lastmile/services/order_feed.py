"""Order feed ingestion and lifecycle status sync.

The feed is polled every cycle. A digest of its content is stored per feed
source (FeedWatermark) so an unchanged feed skips the per-order status
calls entirely. Status polls run under a bounded semaphore; a failed poll
drops that order from this cycle only.

Example:
    async with OrderFeedClient(config.feed) as feed, OrderStatusClient(config.feed) as status:
        ingestor = OrderIngestor(db, status, config.feed)
        new_ids = await ingestor.ingest(await feed.fetch_orders())
"""

import asyncio
import hashlib
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from lastmile.config import FeedConfig
from lastmile.db.models import FeedWatermark, Order, OrderStatus
from lastmile.utils.clock import local_now

logger = logging.getLogger(__name__)

DISPATCH_TIME_FORMAT = "%d/%m/%Y %H:%M:%S"

# Accepted keys per field, canonical name first.
FEED_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "order_id": ("order_id", "id", "MaPX"),
    "address": ("address", "DcGiaohang"),
    "declared_distance_km": ("declared_distance_km", "SOKM"),
    "note": ("note", "delivery_note", "GhiChu", "Ghichu"),
    "dispatched_text": ("dispatched_at", "NgayPX"),
    "registered_address": ("registered_address",),
}
STATUS_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "status": ("status", "Tinhtranggiao"),
    "address": ("address", "DcGiaohang"),
}


@dataclass(frozen=True)
class FeedOrder:
    """One order as delivered by the external feed."""

    order_id: str
    address: str | None = None
    declared_distance_km: float | None = None
    note: str | None = None
    dispatched_text: str | None = None
    registered_address: str | None = None


@dataclass(frozen=True)
class StatusReport:
    """Status service answer for one order.

    Attributes:
        raw_status: Status string as returned by the service.
        lifecycle: Mapped lifecycle status, None when unmapped.
        address: Current delivery address if the service reports one.
    """

    raw_status: str
    lifecycle: OrderStatus | None
    address: str | None = None


def _pick(record: dict[str, Any], aliases: tuple[str, ...]) -> Any:
    for key in aliases:
        if key in record and record[key] is not None:
            return record[key]
    return None


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_distance(value: Any) -> float | None:
    """Parse a declared distance such as ``12.5`` or ``"12,5"``."""
    if value is None or value == "":
        return None
    try:
        return float(str(value).replace(",", "."))
    except ValueError:
        logger.debug("declared_distance_invalid value=%r", value)
        return None


def parse_dispatch_time(value: str | None) -> datetime | None:
    """Parse ``DD/MM/YYYY HH:mm:ss``; anything else is None."""
    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), DISPATCH_TIME_FORMAT)
    except ValueError:
        return None


def feed_order_from_record(record: dict[str, Any]) -> FeedOrder:
    """Map a raw feed record onto FeedOrder using FEED_FIELD_ALIASES."""
    return FeedOrder(
        order_id=_as_text(_pick(record, FEED_FIELD_ALIASES["order_id"])) or "",
        address=_as_text(_pick(record, FEED_FIELD_ALIASES["address"])),
        declared_distance_km=parse_distance(
            _pick(record, FEED_FIELD_ALIASES["declared_distance_km"])
        ),
        note=_as_text(_pick(record, FEED_FIELD_ALIASES["note"])),
        dispatched_text=_as_text(_pick(record, FEED_FIELD_ALIASES["dispatched_text"])),
        registered_address=_as_text(_pick(record, FEED_FIELD_ALIASES["registered_address"])),
    )


def compute_feed_digest(orders: list[FeedOrder]) -> str:
    """SHA-256 over the feed content, independent of record order."""
    payload = sorted((asdict(o) for o in orders), key=lambda o: o["order_id"])
    canonical = json.dumps(payload, sort_keys=True, ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class OrderFeedClient:
    """Fetch the current order list from the feed endpoint."""

    def __init__(self, config: FeedConfig, http: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=config.request_timeout_seconds)

    async def __aenter__(self) -> "OrderFeedClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def fetch_orders(self) -> list[FeedOrder]:
        """Return every order currently in the feed.

        Raises:
            httpx.HTTPError: If the feed cannot be fetched.
            ValueError: If the payload is not a list of records.
        """
        response = await self._http.get(self._config.orders_url)
        response.raise_for_status()
        payload = response.json()
        if isinstance(payload, dict):
            payload = payload.get("orders", payload.get("data"))
        if not isinstance(payload, list):
            raise ValueError("order feed payload is not a list")
        orders = [feed_order_from_record(r) for r in payload if isinstance(r, dict)]
        logger.info("feed_fetched source=%s orders=%d", self._config.source, len(orders))
        return orders


class OrderStatusClient:
    """Look up the lifecycle status of one order."""

    def __init__(self, config: FeedConfig, http: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=config.request_timeout_seconds)
        self._request_count = 0

    @property
    def request_count(self) -> int:
        return self._request_count

    async def __aenter__(self) -> "OrderStatusClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    def map_status(self, raw_status: str) -> OrderStatus | None:
        mapped = self._config.status_map.get(raw_status.strip())
        if mapped is None:
            return None
        try:
            return OrderStatus(mapped)
        except ValueError:
            logger.warning("status_map_invalid raw=%r mapped=%r", raw_status, mapped)
            return None

    async def get_status(self, order_id: str) -> StatusReport:
        """Return the status report for ``order_id``.

        Raises:
            httpx.HTTPError: If the status service call fails.
        """
        self._request_count += 1
        response = await self._http.get(self._config.status_url, params={"qc": order_id})
        response.raise_for_status()
        data = response.json()
        raw_status = _as_text(_pick(data, STATUS_FIELD_ALIASES["status"])) or ""
        return StatusReport(
            raw_status=raw_status,
            lifecycle=self.map_status(raw_status),
            address=_as_text(_pick(data, STATUS_FIELD_ALIASES["address"])),
        )


class OrderIngestor:
    """Upsert awaiting feed orders and keep lifecycle status in sync.

    Attributes:
        _db: Session for orders and watermarks
        _status: Status service client
        _config: Feed settings (source name, poll concurrency)
    """

    def __init__(
        self,
        db: Session,
        status_client: OrderStatusClient,
        config: FeedConfig,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self._db = db
        self._status = status_client
        self._config = config
        self._clock = clock

    async def _poll(self, order_ids: list[str]) -> dict[str, StatusReport]:
        semaphore = asyncio.Semaphore(max(1, self._config.status_concurrency))

        async def _one(order_id: str) -> tuple[str, StatusReport | None]:
            async with semaphore:
                try:
                    return order_id, await self._status.get_status(order_id)
                except (httpx.HTTPError, ValueError) as e:
                    logger.warning(
                        "status_lookup_failed code=E-3005 order_id=%s error=%s",
                        order_id, e,
                    )
                    return order_id, None

        results = await asyncio.gather(*(_one(i) for i in order_ids))
        return {order_id: report for order_id, report in results if report is not None}

    async def ingest(self, feed_orders: list[FeedOrder]) -> list[str]:
        """Upsert awaiting orders from the feed.

        Returns:
            Ids of awaiting orders written this cycle, in feed order. Empty
            when the feed is unchanged since the last ingestion.
        """
        source = self._config.source
        digest = compute_feed_digest(feed_orders)
        watermark = self._db.get(FeedWatermark, source)
        if feed_orders and watermark is not None and watermark.digest == digest:
            logger.info("feed_unchanged source=%s orders=%d", source, len(feed_orders))
            return []

        valid: list[FeedOrder] = []
        for feed_order in feed_orders:
            if not feed_order.order_id:
                logger.error("feed_order_invalid code=E-1001 detail=missing order id")
                continue
            valid.append(feed_order)

        reports = await self._poll([o.order_id for o in valid])
        written: list[str] = []
        for feed_order in valid:
            report = reports.get(feed_order.order_id)
            if report is None:
                continue
            if report.lifecycle != OrderStatus.awaiting:
                self._apply_status(feed_order.order_id, report)
                continue
            self._upsert(feed_order, report)
            written.append(feed_order.order_id)

        now = self._clock()
        self._db.merge(
            FeedWatermark(
                source=source,
                order_count=len(feed_orders),
                digest=digest,
                updated_at=now,
            )
        )
        self._db.commit()
        logger.info(
            "feed_ingested source=%s orders=%d awaiting=%d",
            source, len(feed_orders), len(written),
        )
        return written

    def _upsert(self, feed_order: FeedOrder, report: StatusReport) -> Order:
        address = report.address if report.address is not None else feed_order.address
        order = self._db.get(Order, feed_order.order_id)
        if order is None:
            order = Order(id=feed_order.order_id)
            self._db.add(order)
        else:
            if order.raw_address and address != order.raw_address:
                order.previous_address = order.raw_address
                logger.info("order_address_changed order_id=%s", order.id)
            if (order.delivery_note or None) != feed_order.note:
                order.note_analyzed = False
                order.urgency = 0
                order.deadline = None

        order.raw_address = address
        order.delivery_note = feed_order.note
        order.registered_address = feed_order.registered_address
        order.declared_distance_km = feed_order.declared_distance_km
        order.dispatched_text = feed_order.dispatched_text
        order.dispatched_at = parse_dispatch_time(feed_order.dispatched_text)
        if feed_order.dispatched_text and order.dispatched_at is None:
            logger.warning(
                "dispatch_time_unparseable code=E-1002 order_id=%s value=%r",
                order.id, feed_order.dispatched_text,
            )
        order.status = OrderStatus.awaiting.value
        return order

    def _apply_status(self, order_id: str, report: StatusReport) -> bool:
        if report.lifecycle is None:
            logger.info("status_unmapped order_id=%s raw=%r", order_id, report.raw_status)
            return False
        order = self._db.get(Order, order_id)
        if order is None or order.status == report.lifecycle.value:
            return False
        order.status = report.lifecycle.value
        logger.info("order_status_changed order_id=%s status=%s", order_id, order.status)
        return True

    async def sync_statuses(self) -> int:
        """Refresh the status of every awaiting order.

        Returns:
            Number of orders whose status changed.
        """
        order_ids = list(
            self._db.scalars(
                select(Order.id).where(Order.status == OrderStatus.awaiting.value)
            ).all()
        )
        if not order_ids:
            return 0
        reports = await self._poll(order_ids)
        changed = sum(
            1 for order_id, report in reports.items() if self._apply_status(order_id, report)
        )
        self._db.commit()
        logger.info("status_sync_done polled=%d changed=%d", len(order_ids), changed)
        return changed
