"""Address resolution pipeline: classify, resolve, persist, then route.

Per order the steps run strictly in sequence; across orders, external calls
are bounded by one semaphore per dependency (AI model, mapping provider).

Branches:
    Express text   -> Express (fixed label, no route)
    Regular        -> AIModel, or OriginalText when the model is incomplete
    Carrier        -> TransportDB, else the fallbacks below, else Invalid
    Empty/fallback -> NoteFallback, RegisteredFallback, or Empty

Every branch yields one provenance tag for the whole
(address, district, ward) triple.

Example:
    pipeline = AddressResolutionPipeline(db, config, standardizer, resolver, route_cache)
    resolved = await pipeline.resolve_addresses(orders)
    await pipeline.compute_distances()
"""

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from lastmile.config import DispatchConfig
from lastmile.db.models import (
    Order,
    OrderStatus,
    ResolutionSource,
    ResolvedAddress,
)
from lastmile.errors import OrderIntegrityError
from lastmile.services.address_classifier import (
    AddressKind,
    classify,
    extract_carrier_name,
)
from lastmile.services.ai_address_standardizer import (
    AIAddressStandardizer,
    StandardizedAddress,
)
from lastmile.services.delivery_note_parser import (
    DeliveryNoteParser,
    DeliveryNoteParseResult,
)
from lastmile.services.route_cache import RouteCache
from lastmile.services.text_normalizer import clean_address, is_express_marker
from lastmile.services.transport_company_resolver import TransportCompanyResolver
from lastmile.services.travel_time_heuristic import estimate_travel_minutes
from lastmile.utils.clock import local_now

logger = logging.getLogger(__name__)


def note_digest(note: str | None) -> str | None:
    """sha256 of the stripped delivery note, None when there is no note.

    Stored beside ``resolved_from`` so a changed note (new carrier name or
    embedded address) invalidates the stored triple.
    """
    text = (note or "").strip()
    if not text:
        return None
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class Resolution:
    """Resolved triple with its single provenance tag."""

    address: str | None
    district: str | None
    ward: str | None
    source: ResolutionSource
    distance_km: float | None = None
    travel_minutes: int | None = None


class AddressResolutionPipeline:
    """Resolve, persist and route delivery addresses for orders.

    Attributes:
        _db: Session for orders and resolved addresses
        _config: Dispatch configuration
        _standardizer: AI address standardizer
        _resolver: Carrier reference lookup
        _route_cache: Read-through route cache
        _parser: Delivery note parser
    """

    def __init__(
        self,
        db: Session,
        config: DispatchConfig,
        standardizer: AIAddressStandardizer,
        resolver: TransportCompanyResolver,
        route_cache: RouteCache,
        parser: DeliveryNoteParser | None = None,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self._db = db
        self._config = config
        self._standardizer = standardizer
        self._resolver = resolver
        self._route_cache = route_cache
        self._parser = parser or DeliveryNoteParser(
            average_travel_minutes=config.notes.average_travel_minutes,
            buffer_minutes=config.notes.buffer_minutes,
        )
        self._clock = clock
        self._ai_semaphore = asyncio.Semaphore(max(1, config.ai.concurrency))
        self._geocode_semaphore = asyncio.Semaphore(max(1, config.geocode.concurrency))

    # -- resolution -------------------------------------------------------

    async def resolve_addresses(self, orders: list[Order]) -> list[ResolvedAddress]:
        """Resolve every order concurrently; integrity failures skip one order.

        Returns:
            One persisted ResolvedAddress per order that has an identifier,
            in input order.
        """

        async def _one(order: Order) -> ResolvedAddress | None:
            try:
                return await self.resolve_order(order)
            except OrderIntegrityError as e:
                logger.error(
                    "order_integrity_error code=%s detail=%s", e.code, e.detail
                )
                return None

        results = await asyncio.gather(*(_one(order) for order in orders))
        resolved = [r for r in results if r is not None]
        logger.info(
            "resolve_addresses_done attempted=%d resolved=%d",
            len(orders), len(resolved),
        )
        return resolved

    async def resolve_order(self, order: Order) -> ResolvedAddress:
        """Resolve one order and persist its ResolvedAddress.

        Raises:
            OrderIntegrityError: If the order has no identifier.
        """
        if not order.id or not str(order.id).strip():
            raise OrderIntegrityError("order id is missing", order_id=None)

        raw = (order.raw_address or "").strip()
        stored = self._db.get(ResolvedAddress, order.id)
        if (
            stored is not None
            and stored.address
            and stored.district
            and stored.ward
            and stored.resolved_from == raw
            and stored.resolved_note_digest == note_digest(order.delivery_note)
        ):
            logger.debug("resolve_skip_stored order_id=%s", order.id)
            return stored

        resolution = await self._resolve(order, raw)
        return self._persist(order, raw, resolution)

    async def _resolve(self, order: Order, raw: str) -> Resolution:
        reference = order.dispatched_at or self._clock()
        parsed = self._parser.parse(order.delivery_note, reference=reference)

        if raw and is_express_marker(raw):
            logger.info("resolve_express order_id=%s", order.id)
            return Resolution(
                address=self._config.pipeline.express_address,
                district=None,
                ward=None,
                source=ResolutionSource.express,
            )

        kind = classify(raw)
        if kind == AddressKind.REGULAR:
            cleaned = clean_address(raw)
            if cleaned:
                result = await self._standardize(order.id, cleaned)
                if result is not None:
                    return Resolution(
                        result.address, result.district, result.ward,
                        ResolutionSource.ai_model,
                    )
                return Resolution(cleaned, None, None, ResolutionSource.original_text)
        elif kind in (AddressKind.SINGLE_CARRIER, AddressKind.MULTI_CARRIER):
            # The note's carrier name overrides the one in the address field.
            name = parsed.carrier_name or extract_carrier_name(raw)
            record = self._resolver.find(
                name, note=order.delivery_note, time_hint=parsed.time_hint
            )
            if record is not None and record.district and record.ward:
                logger.info(
                    "resolve_transport_db order_id=%s carrier=%r kind=%s",
                    order.id, record.name, kind.value,
                )
                return Resolution(
                    record.standardized_address, record.district, record.ward,
                    ResolutionSource.transport_db,
                )

        fallback = await self._resolve_fallback(order, parsed, reference)
        if fallback is not None:
            return fallback
        if kind == AddressKind.EMPTY or not raw:
            return Resolution(None, None, None, ResolutionSource.empty)
        return Resolution(clean_address(raw) or raw, None, None, ResolutionSource.invalid)

    async def _resolve_fallback(
        self,
        order: Order,
        parsed: DeliveryNoteParseResult,
        reference: datetime,
    ) -> Resolution | None:
        """Note-embedded address, then registered office address."""
        candidates = (
            (parsed.delivery_address, ResolutionSource.note_fallback),
            (clean_address(order.registered_address), ResolutionSource.registered_fallback),
        )
        for text, source in candidates:
            if not text:
                continue
            result = await self._standardize(order.id, text)
            if result is None:
                continue
            distance_km = None
            travel_minutes = None
            if order.declared_distance_km:
                distance_km = float(order.declared_distance_km)
                travel_minutes = estimate_travel_minutes(distance_km, reference)
            logger.info("resolve_fallback order_id=%s source=%s", order.id, source.value)
            return Resolution(
                result.address, result.district, result.ward, source,
                distance_km=distance_km, travel_minutes=travel_minutes,
            )
        return None

    async def _standardize(self, order_id: str, text: str) -> StandardizedAddress | None:
        """Complete standardized triple, or None."""
        async with self._ai_semaphore:
            result = await self._standardizer.standardize(order_id, text)
        return result if result.is_complete else None

    def _persist(self, order: Order, raw: str, resolution: Resolution) -> ResolvedAddress:
        row = self._db.get(ResolvedAddress, order.id)
        if row is None:
            row = ResolvedAddress(order_id=order.id)
            self._db.add(row)
        elif row.address is not None and row.address != resolution.address:
            if row.distance_km is not None or row.travel_minutes is not None:
                row.previous_distance_km = row.distance_km
                row.previous_travel_minutes = row.travel_minutes
            row.distance_km = None
            row.travel_minutes = None
            logger.info("resolved_address_changed order_id=%s", order.id)

        row.address = resolution.address
        row.district = resolution.district
        row.ward = resolution.ward
        row.source = resolution.source.value
        row.resolved_from = raw
        row.resolved_note_digest = note_digest(order.delivery_note)
        if resolution.distance_km is not None:
            row.distance_km = resolution.distance_km
            row.travel_minutes = resolution.travel_minutes
        self._db.commit()
        logger.info(
            "resolved order_id=%s source=%s district=%r ward=%r",
            order.id, row.source, row.district, row.ward,
        )
        return row

    # -- follow-up passes -------------------------------------------------

    def _awaiting_orders(self) -> list[Order]:
        return list(
            self._db.scalars(
                select(Order)
                .where(Order.status == OrderStatus.awaiting.value)
                .order_by(Order.id)
            ).all()
        )

    def analyze_notes(self, now: datetime | None = None) -> int:
        """Parse unanalyzed notes of awaiting orders into urgency/deadline.

        Returns:
            Number of orders analyzed.
        """
        now = now or self._clock()
        analyzed = 0
        for order in self._awaiting_orders():
            if order.note_analyzed or not (order.delivery_note or "").strip():
                continue
            travel = order.resolved.travel_minutes if order.resolved else None
            result = self._parser.parse(
                order.delivery_note,
                reference=order.dispatched_at or now,
                travel_minutes=travel,
            )
            order.urgency = result.priority
            order.deadline = result.deadline
            order.note_analyzed = True
            analyzed += 1
            logger.info(
                "note_analyzed order_id=%s urgency=%d deadline=%s",
                order.id, result.priority, result.deadline,
            )
        self._db.commit()
        return analyzed

    async def compute_distances(self, now: datetime | None = None) -> int:
        """Fill missing distance/time for awaiting orders, once per address.

        Returns:
            Number of orders that received a route.
        """
        now = now or self._clock()
        pending: dict[str, list[ResolvedAddress]] = {}
        for order in self._awaiting_orders():
            row = order.resolved
            if row is None or not row.address:
                continue
            if row.source == ResolutionSource.express.value:
                continue
            if row.distance_km is not None and row.travel_minutes is not None:
                continue
            pending.setdefault(row.address, []).append(row)

        async def _route(address: str):
            async with self._geocode_semaphore:
                return address, await self._route_cache.get_route(address, now)

        results = await asyncio.gather(*(_route(a) for a in pending))
        updated = 0
        for address, route in results:
            if not route.known:
                logger.info("distance_unknown address=%r", address)
                continue
            for row in pending[address]:
                row.distance_km = route.distance_km
                row.travel_minutes = route.travel_minutes
                updated += 1
        self._db.commit()
        logger.info(
            "compute_distances_done addresses=%d orders_updated=%d",
            len(pending), updated,
        )
        return updated

    def flag_overdue(self, now: datetime | None = None) -> int:
        """Mark awaiting orders dispatched at least the overdue threshold ago."""
        now = now or self._clock()
        threshold = now - timedelta(minutes=self._config.pipeline.overdue_after_minutes)
        flagged = 0
        for order in self._awaiting_orders():
            row = order.resolved
            if row is None or row.overdue or order.dispatched_at is None:
                continue
            if order.dispatched_at <= threshold:
                row.overdue = True
                flagged += 1
        self._db.commit()
        if flagged:
            logger.info("orders_flagged_overdue count=%d", flagged)
        return flagged
