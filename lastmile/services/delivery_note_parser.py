"""Pattern-based extraction of carrier, address and deadline from delivery notes.

The note is first rewritten through the vocabulary table
(``note_vocabulary.normalize_note``), then each category is extracted
independently: carrier name, embedded delivery address, time hint,
delivery date, cargo type and the resulting deadline/urgency.

Example:
    parser = DeliveryNoteParser()
    result = parser.parse("giao gấp trước 15h", reference=datetime(2025, 3, 4, 9, 0))
    result.deadline  # datetime(2025, 3, 4, 15, 0)
    result.priority  # 2
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from lastmile.services import note_vocabulary as vocab
from lastmile.services.text_normalizer import (
    CARRIER_NAME_PATTERN,
    clean_address,
    collapse_whitespace,
    fold,
    normalize_carrier_name,
    strip_parentheticals,
    strip_phone_numbers,
)
from lastmile.utils.clock import next_working_day

logger = logging.getLogger(__name__)

WORK_START = time(8, 0)
WORK_END = time(17, 40)
SATURDAY_WORK_END = time(16, 30)
LUNCH_START = time(12, 0)
LUNCH_END = time(13, 30)
SATURDAY = 5

DAY_PART_TIMES = {
    vocab.MORNING: time(10, 0),
    vocab.NOON: time(11, 45),
    vocab.AFTERNOON: time(15, 0),
    vocab.EVENING: time(17, 40),
}
DATE_ONLY_TIME = time(10, 0)

RELATIVE_DAY_OFFSETS = {
    vocab.TODAY: 0,
    vocab.TOMORROW: 1,
    vocab.DAY_AFTER: 2,
    vocab.TWO_DAYS_AFTER: 3,
}

CARGO_TYPES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("fragile", ("DE VO", "HANG VO", "THUY TINH", "FRAGILE")),
    ("heavy", ("HANG NANG", "RAT NANG", "HEAVY")),
    ("refrigerated", ("DONG LANH", "UOP LANH", "GIU LANH", "HANG LANH")),
    ("perishable", ("TUOI SONG", "DE HU", "HANG TUOI", "DE HONG")),
    ("bulky", ("CONG KENH", "KHO KHO", "BULKY")),
    ("hazardous", ("DE CHAY", "HOA CHAT", "NGUY HIEM", "CHAY NO")),
    ("high-value", ("GIA TRI CAO", "HANG GIA TRI", "QUY GIA", "HANG HIEU")),
)

_CLOCK = r"(?P<{p}hour>\d{{1,2}})(?:h(?P<{p}minute>\d{{2}})?|:(?P<{p}colon>\d{{2}})|\s*(?P<{p}ampm>am|pm))(?!\w)"


def _clock(prefix: str = "") -> str:
    return _CLOCK.format(p=prefix)


_URGENT_BEFORE = re.compile(
    r"\b" + vocab.URGENT + r"\b[^.;\n]*?\b" + vocab.BEFORE + r"\s*" + _clock()
    + r"(?:\s+(?P<part>" + "|".join(vocab.DAY_PARTS) + r"))?"
)
_BEFORE = re.compile(
    r"\b" + vocab.BEFORE + r"\s*" + _clock()
    + r"(?:\s+(?P<part>" + "|".join(vocab.DAY_PARTS) + r"))?"
)
_HOUR_RANGE = re.compile(
    r"(?<![\d/])(?P<start>\d{1,2})(?:[h:]\d{0,2})?\s*(?:-|–|~|đến|den)\s*" + _clock()
    + r"(?:\s+(?P<part>" + "|".join(vocab.DAY_PARTS) + r"))?"
)
_BARE_CLOCK = re.compile(r"(?<![\w/])" + _clock())
_DAY_PART = re.compile(r"\b(?P<part>" + "|".join(vocab.DAY_PARTS) + r")\b")
# A bare "d/m" is an alley house number ("12/5 Lê Lợi"); it only counts as
# a date after a date word or with a four-digit year.
_DATE_CUE = r"(?<!\w)(?:ngày|ngay|ng|hạn|han)\s*:?\s*"
_CUED_DATE = re.compile(
    _DATE_CUE + r"(?P<day>\d{1,2})[/.-](?P<month>\d{1,2})(?:[/.-](?P<year>\d{2,4}))?"
    r"(?![\d/])(?!\s*[h:])"
)
_FULL_DATE = re.compile(
    r"(?<![\d/])(?P<day>\d{1,2})[/.-](?P<month>\d{1,2})[/.-](?P<year>\d{4})(?![\d/])"
)
_RELATIVE_DAY = re.compile(
    r"(?<![\w-])(?P<token>" + "|".join(re.escape(t) for t in vocab.RELATIVE_DAYS)
    + r")(?![\w-])"
)
_WEEKDAY_NEXT_WEEK = re.compile(vocab.WEEKDAY_NEXT_WEEK + r":(?P<n>[2-8])")

_DELIVERY_KEYWORD = re.compile(
    r"(?<!\w)(?:địa chỉ|dia chi|đ/c|đc|dc|giao\s+(?:hàng\s+)?(?:tới|đến|tại|về|den|tai|ve))"
    r"\s*:?\s*(?P<address>[^;\n]+)",
    re.IGNORECASE,
)
_ADDRESS_TERMINATOR = re.compile(
    r"\s*(?:,\s*)?(?:\b(?:trước|truoc|trc|gấp|gap|lúc|luc|sđt|sdt|đt|liên hệ|lien he)\b"
    r"|\b(?:sáng|chiều|tối|trưa)\s+(?:nay|mai)\b|\d{1,2}\s*[hg]\d{0,2}\b).*$",
    re.IGNORECASE,
)
_ADDRESS_LIKE = re.compile(r"\d+\w*(?:/\d+\w*)*\s+[^\d\s]")
_LEADING_VERB = re.compile(r"^(?:giao|gửi|gui|ship)\s+(?:hàng\s+)?", re.IGNORECASE)


@dataclass
class DeliveryNoteParseResult:
    """Signals extracted from one delivery note.

    Attributes:
        carrier_name: Normalized carrier name, "" when none found.
        delivery_address: Cleaned embedded address, "" when none found.
        time_hint: Raw text of the time expression found.
        delivery_date: Target delivery date, None without a temporal signal.
        deadline: Deadline after working-hours adjustment.
        priority: 0 none, 1 soft (day part or date), 2 hard (clock or urgent).
        cargo_type: One of the CARGO_TYPES tags, or None.
        urgent: Whether the note carries an urgency word.
    """

    carrier_name: str = ""
    delivery_address: str = ""
    time_hint: str = ""
    delivery_date: date | None = None
    deadline: datetime | None = None
    priority: int = 0
    cargo_type: str | None = None
    urgent: bool = False


def _to_time(match: re.Match, prefix: str = "", part: str | None = None) -> time | None:
    """Build a clock time from a ``_clock`` match, or None when out of range."""
    hour = int(match.group(f"{prefix}hour"))
    minute_text = match.group(f"{prefix}minute") or match.group(f"{prefix}colon")
    minute = int(minute_text) if minute_text else 0
    ampm = match.group(f"{prefix}ampm")
    if ampm == "pm" and hour < 12:
        hour += 12
    elif ampm == "am" and hour == 12:
        hour = 0
    elif part in (vocab.AFTERNOON, vocab.EVENING) and hour < 12:
        hour += 12
    elif part == vocab.MORNING and hour >= 12:
        hour -= 12
    elif ampm is None and part is None and 1 <= hour <= 6:
        # "trước 3h" means 15:00 in working hours
        hour += 12
    if hour > 23 or minute > 59:
        return None
    return time(hour, minute)


class DeliveryNoteParser:
    """Extract delivery signals from free-text notes.

    Args:
        average_travel_minutes: Travel time used when the order has none.
        buffer_minutes: Handling buffer added to travel time.
    """

    def __init__(self, average_travel_minutes: int = 15, buffer_minutes: int = 15) -> None:
        self._average_travel = average_travel_minutes
        self._buffer = buffer_minutes

    def parse(
        self,
        note: str | None,
        reference: datetime | None = None,
        travel_minutes: int | None = None,
    ) -> DeliveryNoteParseResult:
        """Parse ``note`` relative to the ``reference`` dispatch time.

        Without a reference only the non-temporal fields are filled.
        """
        result = DeliveryNoteParseResult()
        if not note or not note.strip():
            return result

        normalized = vocab.normalize_note(strip_phone_numbers(note))
        result.carrier_name = self.extract_carrier_name(note)
        result.delivery_address = self.extract_delivery_address(note)
        result.cargo_type = self.extract_cargo_type(note)
        result.urgent = re.search(r"\b" + vocab.URGENT + r"\b", normalized) is not None
        result.time_hint = self._time_hint(normalized)

        if reference is None:
            return result

        travel = travel_minutes if travel_minutes else self._average_travel
        earliest = reference + timedelta(minutes=travel + self._buffer)
        temporal = self._without_address(normalized, result.delivery_address)
        result.delivery_date = self._extract_date(temporal, reference)
        base_day = result.delivery_date or reference.date()

        deadline, priority, deferred = self._deadline(temporal, base_day, earliest)
        if deadline is None and result.delivery_date is not None:
            deadline, priority = datetime.combine(result.delivery_date, DATE_ONLY_TIME), 1
        if result.urgent and not deferred and priority < 2:
            # An urgency word outranks day parts and dates.
            deadline = earliest if deadline is None else min(deadline, earliest)
            priority = 2

        if deadline is not None:
            deadline = self._within_working_hours(deadline)
            if deadline < reference:
                deadline, priority = earliest, 2
            result.delivery_date = deadline.date()

        result.deadline = deadline
        result.priority = priority
        logger.debug(
            "note_parsed priority=%d deadline=%s carrier=%r cargo=%s",
            priority, deadline, result.carrier_name, result.cargo_type,
        )
        return result

    def _deadline(
        self,
        normalized: str,
        base_day: date,
        earliest: datetime,
    ) -> tuple[datetime | None, int, bool]:
        """Deadline, priority and whether an urgent deadline was deferred.

        An urgent "before" time that cannot be reached today moves to the
        next working day at soft priority; that result is final.
        """
        match = _URGENT_BEFORE.search(normalized)
        if match:
            stated_time = _to_time(match, part=match.group("part"))
            if stated_time is not None:
                stated = datetime.combine(base_day, stated_time)
                if earliest <= stated:
                    return stated, 2, False
                deferred = datetime.combine(next_working_day(stated.date()), stated_time)
                return deferred, 1, True

        match = _BEFORE.search(normalized)
        if match:
            stated_time = _to_time(match, part=match.group("part"))
            if stated_time is not None:
                return datetime.combine(base_day, stated_time), 2, False

        match = _HOUR_RANGE.search(normalized)
        if match:
            end_time = _to_time(match, part=match.group("part"))
            if end_time is not None and int(match.group("start")) <= 23:
                return datetime.combine(base_day, end_time), 2, False

        match = _DAY_PART.search(normalized)
        if match:
            return datetime.combine(base_day, DAY_PART_TIMES[match.group("part")]), 1, False

        return None, 0, False

    @staticmethod
    def _without_address(normalized: str, delivery_address: str) -> str:
        """Drop the embedded delivery address so house numbers are not read as dates."""
        if not delivery_address:
            return normalized
        address = vocab.normalize_note(delivery_address)
        return collapse_whitespace(normalized.replace(address, " "))

    @staticmethod
    def _extract_date(normalized: str, reference: datetime) -> date | None:
        """Numeric date first, then relative day, then next-week weekday."""
        for pattern in (_CUED_DATE, _FULL_DATE):
            match = pattern.search(normalized)
            if not match:
                continue
            year_text = match.group("year")
            year = reference.year
            if year_text:
                year = int(year_text) + (2000 if len(year_text) == 2 else 0)
            try:
                return date(year, int(match.group("month")), int(match.group("day")))
            except ValueError:
                logger.debug("note_date_invalid text=%r", match.group(0))

        match = _RELATIVE_DAY.search(normalized)
        if match:
            return reference.date() + timedelta(days=RELATIVE_DAY_OFFSETS[match.group("token")])

        match = _WEEKDAY_NEXT_WEEK.search(normalized)
        if match:
            weekday_index = int(match.group("n")) - 2
            today = reference.date()
            next_monday = today - timedelta(days=today.weekday()) + timedelta(days=7)
            return next_monday + timedelta(days=weekday_index)

        return None

    @staticmethod
    def _time_hint(normalized: str) -> str:
        for pattern in (_URGENT_BEFORE, _BEFORE, _HOUR_RANGE, _BARE_CLOCK):
            match = pattern.search(normalized)
            if match:
                if pattern is _URGENT_BEFORE:
                    return normalized[match.start("hour"):match.end()].strip()
                return match.group(0).strip()
        match = _DAY_PART.search(normalized)
        return match.group(0) if match else ""

    @staticmethod
    def _within_working_hours(deadline: datetime) -> datetime:
        """Move a deadline out of lunch and into the working day."""
        day = deadline.date()
        work_end = SATURDAY_WORK_END if deadline.weekday() == SATURDAY else WORK_END
        clock = deadline.time()
        if LUNCH_START <= clock < LUNCH_END:
            return datetime.combine(day, LUNCH_END)
        if clock < WORK_START:
            return datetime.combine(day, WORK_START)
        if clock > work_end:
            return datetime.combine(day, work_end)
        return deadline

    @staticmethod
    def extract_carrier_name(note: str) -> str:
        """First ``<carrier keyword> [:] NAME`` in the note, normalized."""
        folded = collapse_whitespace(fold(strip_phone_numbers(strip_parentheticals(note))))
        match = CARRIER_NAME_PATTERN.search(folded)
        if not match:
            return ""
        return normalize_carrier_name(match.group("name"))

    @staticmethod
    def extract_delivery_address(note: str) -> str:
        """Address after a delivery keyword, else address-like residual text."""
        match = _DELIVERY_KEYWORD.search(note)
        if match:
            candidate = _ADDRESS_TERMINATOR.sub("", match.group("address"))
            candidate = clean_address(candidate)
            if _ADDRESS_LIKE.search(candidate):
                return candidate

        residual = strip_parentheticals(strip_phone_numbers(note))
        carrier = CARRIER_NAME_PATTERN.search(fold(residual))
        if carrier and len(fold(residual)) == len(residual):
            residual = residual[:carrier.start()] + " " + residual[carrier.end():]
        residual = vocab.strip_vocabulary(residual)
        residual = _LEADING_VERB.sub("", residual.strip(" ,;.-"))
        residual = clean_address(residual)
        if _ADDRESS_LIKE.search(residual) and len(residual.split()) >= 3:
            return residual
        return ""

    @staticmethod
    def extract_cargo_type(note: str) -> str | None:
        folded = fold(note)
        for tag, phrases in CARGO_TYPES:
            for phrase in phrases:
                if re.search(r"\b" + phrase + r"\b", folded):
                    return tag
        return None
