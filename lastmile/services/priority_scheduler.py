"""Deterministic worklist ordering and pagination.

Each order gets a tier from a strict waterfall (lower sorts first), then
in-tier keys: deadline today, minutes to deadline, distance, travel time,
dispatch time (unparseable last) and finally the order id, which makes the
order total and pagination reproducible.

Tiers:
    100  incomplete district/ward/distance/travel
     99  distance above the far threshold
      0  hard urgency (2)
    1-5  imminent deadline, by overdue flag, urgency and staleness
  10-15  no imminent deadline, by overdue flag, urgency and staleness
     16  everything else

One comparator serves every view; views differ only in SchedulerConfig
(see PRESETS).
"""

import logging
import math
import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from lastmile.db.models import Order, OrderStatus
from lastmile.errors import InvalidDateFilterError, InvalidPageError, NotFoundError
from lastmile.utils.clock import local_now

logger = logging.getLogger(__name__)

_DATE_FILTER = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


@dataclass(frozen=True)
class SchedulerConfig:
    """Named thresholds for worklist ordering.

    Attributes:
        page_size: Default page size.
        far_distance_km: Distance above which an order drops to the far tier.
        imminent_window: A deadline within now + window is imminent.
        incomplete_tier: Tier for orders missing district/ward/route data.
        far_tier: Tier for orders beyond far_distance_km.
        default_tier: Tier when no other rule applies.
        no_deadline_minutes: Minutes-to-deadline used when there is none.
    """

    page_size: int = 10
    far_distance_km: float = 100.0
    imminent_window: timedelta = timedelta(hours=2)
    incomplete_tier: int = 100
    far_tier: int = 99
    default_tier: int = 16
    no_deadline_minutes: int = 999_999


PRESETS: dict[str, SchedulerConfig] = {
    "default": SchedulerConfig(page_size=10),
    "board": SchedulerConfig(page_size=20),
}


@dataclass(frozen=True)
class WorklistEntry:
    """Snapshot of one awaiting order as the scheduler sees it."""

    order_id: str
    address: str | None
    district: str | None
    ward: str | None
    distance_km: float | None
    travel_minutes: int | None
    urgency: int
    deadline: datetime | None
    overdue: bool
    dispatched_at: datetime | None
    source: str | None = None
    delivery_note: str | None = None
    tier: int | None = None


@dataclass
class WorklistFilters:
    """Optional filters; ``date`` is a strict YYYY-MM-DD dispatch date."""

    date: str | None = None
    district: str | None = None
    ward: str | None = None


@dataclass
class WorklistPage:
    orders: list[WorklistEntry] = field(default_factory=list)
    total_count: int = 0
    total_pages: int = 0
    page: int = 1


def staleness_days(entry: WorklistEntry, now: datetime) -> int:
    """Whole calendar days the order has waited, capped at 2.

    Args:
        entry: Worklist entry; an unknown dispatch time counts as fresh.
        now: Current dispatch-timezone time.

    Returns:
        2 if dispatched two or more days ago, 1 if yesterday, else 0.
    """
    if entry.dispatched_at is None:
        return 0
    age = (now.date() - entry.dispatched_at.date()).days
    if age >= 2:
        return 2
    if age == 1:
        return 1
    return 0


def _is_complete(entry: WorklistEntry) -> bool:
    return (
        bool(entry.district)
        and bool(entry.ward)
        and entry.distance_km is not None
        and entry.travel_minutes is not None
    )


def rank(entry: WorklistEntry, now: datetime, config: SchedulerConfig = PRESETS["default"]) -> int:
    """Tier for ``entry``; the first matching rule wins.

    Args:
        entry: Worklist entry to rank.
        now: Current dispatch-timezone time.
        config: Thresholds and tier constants.

    Returns:
        Tier number, lower sorts first (see the module docstring).
    """
    if not _is_complete(entry):
        return config.incomplete_tier
    if entry.distance_km > config.far_distance_km:
        return config.far_tier
    if entry.urgency == 2:
        return 0

    overdue = entry.overdue
    urgency = entry.urgency
    stale = staleness_days(entry, now)
    imminent = entry.deadline is not None and entry.deadline <= now + config.imminent_window

    if imminent:
        if overdue and urgency == 1:
            return 1
        if stale == 2:
            return 2 if overdue else 3
        if stale == 1:
            return 4 if overdue else 5

    if overdue and urgency == 0:
        return 10
    if urgency == 1 and not imminent:
        return 11 if overdue else 12
    if not overdue and urgency == 0:
        return 13
    if not imminent and stale == 2:
        return 14
    if not imminent and stale == 1:
        return 15
    return config.default_tier


def sort_key(
    entry: WorklistEntry,
    now: datetime,
    config: SchedulerConfig = PRESETS["default"],
) -> tuple:
    """Full ordering key: tier, then the in-tier tie-breaks.

    Tie-breaks: deadline today first, minutes to deadline, distance,
    travel time, dispatch time (unknown last), order id.

    Args:
        entry: Worklist entry.
        now: Current dispatch-timezone time.
        config: Thresholds and tier constants.

    Returns:
        Tuple that totally orders entries.
    """
    deadline_today = entry.deadline is not None and entry.deadline.date() == now.date()
    if entry.deadline is None:
        minutes_to_deadline = config.no_deadline_minutes
    else:
        minutes_to_deadline = math.floor((entry.deadline - now).total_seconds() / 60)
    return (
        rank(entry, now, config),
        0 if deadline_today else 1,
        minutes_to_deadline,
        entry.distance_km if entry.distance_km is not None else math.inf,
        entry.travel_minutes if entry.travel_minutes is not None else math.inf,
        entry.dispatched_at is None,
        entry.dispatched_at or datetime.max,
        entry.order_id,
    )


def order_worklist(
    entries: list[WorklistEntry],
    now: datetime,
    config: SchedulerConfig = PRESETS["default"],
) -> list[WorklistEntry]:
    """Sort entries into worklist order and stamp each with its tier.

    Args:
        entries: Entries in any order.
        now: Current dispatch-timezone time.
        config: Thresholds and tier constants.

    Returns:
        New list of entries with ``tier`` set, in worklist order.
    """
    ranked = sorted(entries, key=lambda e: sort_key(e, now, config))
    return [replace(e, tier=rank(e, now, config)) for e in ranked]


def _validate_positive_int(value: object, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidPageError(value, field=field_name)
    return value


def parse_date_filter(value: str | None) -> date | None:
    """Parse a strict ``YYYY-MM-DD`` filter.

    Args:
        value: Filter text, or None for no filter.

    Returns:
        The filter date, or None.

    Raises:
        InvalidDateFilterError: On any other shape or an impossible date.
    """
    if value is None:
        return None
    if not isinstance(value, str) or not _DATE_FILTER.fullmatch(value):
        raise InvalidDateFilterError(value)
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as e:
        raise InvalidDateFilterError(value) from e


def entry_from_order(order: Order) -> WorklistEntry:
    """Project an order and its resolved address onto a worklist entry."""
    resolved = order.resolved
    return WorklistEntry(
        order_id=order.id,
        address=resolved.address if resolved else None,
        district=resolved.district if resolved else None,
        ward=resolved.ward if resolved else None,
        distance_km=resolved.distance_km if resolved else None,
        travel_minutes=resolved.travel_minutes if resolved else None,
        urgency=order.urgency or 0,
        deadline=order.deadline,
        overdue=bool(resolved.overdue) if resolved else False,
        dispatched_at=order.dispatched_at,
        source=resolved.source if resolved else None,
        delivery_note=order.delivery_note,
    )


class PriorityScheduler:
    """Build paginated worklists of awaiting orders.

    Attributes:
        _db: Session for reading orders
        _config: Thresholds and default page size
    """

    def __init__(
        self,
        db: Session,
        config: SchedulerConfig | None = None,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self._db = db
        self._config = config or PRESETS["default"]
        self._clock = clock

    def _awaiting(self) -> list[Order]:
        return list(
            self._db.scalars(
                select(Order)
                .options(selectinload(Order.resolved))
                .where(Order.status == OrderStatus.awaiting.value)
            ).all()
        )

    def rank_and_page(
        self,
        page: int = 1,
        page_size: int | None = None,
        filters: WorklistFilters | None = None,
        now: datetime | None = None,
    ) -> WorklistPage:
        """Return one page of the globally ordered worklist.

        Args:
            page: 1-based page number.
            page_size: Page size, defaults to the configured size.
            filters: Optional dispatch date / district / ward filters.
            now: Reference time, defaults to the dispatch-timezone clock.

        Returns:
            WorklistPage with the page's entries and totals.

        Raises:
            InvalidPageError: If page or page_size is not a positive integer.
            InvalidDateFilterError: If the date filter is not YYYY-MM-DD.
        """
        page = _validate_positive_int(page, "page")
        size = _validate_positive_int(
            self._config.page_size if page_size is None else page_size, "page_size"
        )
        filters = filters or WorklistFilters()
        filter_date = parse_date_filter(filters.date)
        now = now or self._clock()

        entries = [entry_from_order(o) for o in self._awaiting()]
        if filter_date is not None:
            entries = [
                e for e in entries
                if e.dispatched_at is not None and e.dispatched_at.date() == filter_date
            ]
        if filters.district:
            entries = [e for e in entries if e.district == filters.district]
        if filters.ward:
            entries = [e for e in entries if e.ward == filters.ward]

        ordered = order_worklist(entries, now, self._config)
        total = len(ordered)
        start = (page - 1) * size
        logger.info(
            "worklist_ranked total=%d page=%d page_size=%d", total, page, size
        )
        return WorklistPage(
            orders=ordered[start:start + size],
            total_count=total,
            total_pages=math.ceil(total / size) if total else 0,
            page=page,
        )

    def entry(self, order_id: str, now: datetime | None = None) -> WorklistEntry:
        """Return one order as a tiered worklist entry.

        Raises:
            NotFoundError: If the order does not exist.
        """
        order = self._db.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        now = now or self._clock()
        entry = entry_from_order(order)
        return replace(entry, tier=rank(entry, now, self._config))

    def locations(self) -> list[tuple[str, str]]:
        """Distinct (district, ward) pairs among awaiting orders."""
        pairs = {
            (o.resolved.district, o.resolved.ward)
            for o in self._awaiting()
            if o.resolved is not None and o.resolved.district and o.resolved.ward
        }
        return sorted(pairs)
