"""Carrier lookup against the transport company reference table.

Names are compared in normalized form (folded, carrier keyword, bus-bay
suffix and organizational nouns removed). When several records match,
ties are broken in a fixed order:

1. the record whose name appears in the delivery note (longest wins)
2. the record whose departure time matches the note's time hint
3. the first record in table order
"""

import logging
import re
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from lastmile.db.models import TransportCompany
from lastmile.services.text_normalizer import (
    collapse_whitespace,
    fold,
    normalize_carrier_name,
)

logger = logging.getLogger(__name__)

INACTIVE_STATUS_PREFIXES = ("NGUNG", "DUNG", "INACTIVE", "CLOSED")

_CLOCK_TEXT = re.compile(r"(?<!\d)(\d{1,2})\s*(?:h|g|:|giờ|gio)\s*(\d{2})?(?!\d)", re.IGNORECASE)


@dataclass(frozen=True)
class CarrierRecord:
    """Snapshot of an active reference row with precomputed match keys."""

    id: int
    name: str
    normalized_name: str
    folded_name: str
    standardized_address: str | None
    district: str | None
    ward: str | None
    departure_time: str | None


def canonical_clock_values(text: str | None) -> set[str]:
    """Every clock time mentioned in ``text`` as ``HH:MM``."""
    values: set[str] = set()
    if not text:
        return values
    for match in _CLOCK_TEXT.finditer(text):
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        if hour <= 23 and minute <= 59:
            values.add(f"{hour:02d}:{minute:02d}")
    return values


def _is_inactive(status: str | None) -> bool:
    folded = fold(status).strip()
    return any(folded.startswith(prefix) for prefix in INACTIVE_STATUS_PREFIXES)


def _contains_phrase(haystack: str, phrase: str) -> bool:
    if not phrase:
        return False
    return re.search(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)", haystack) is not None


class TransportCompanyResolver:
    """Resolve carrier names to reference records.

    The table is read once per resolver instance; build a new resolver to
    pick up changes from the sync job.

    Attributes:
        _db: Session used for the one-time table load
        _records: Active records in table order, loaded lazily
    """

    def __init__(self, db: Session) -> None:
        self._db = db
        self._records: list[CarrierRecord] | None = None

    @property
    def records(self) -> list[CarrierRecord]:
        if self._records is None:
            self._records = self._load()
        return self._records

    def _load(self) -> list[CarrierRecord]:
        rows = self._db.scalars(select(TransportCompany).order_by(TransportCompany.id)).all()
        records = [
            CarrierRecord(
                id=row.id,
                name=row.name,
                normalized_name=normalize_carrier_name(row.name),
                folded_name=collapse_whitespace(fold(row.name)),
                standardized_address=row.standardized_address,
                district=row.district,
                ward=row.ward,
                departure_time=row.departure_time,
            )
            for row in rows
            if not _is_inactive(row.status)
        ]
        logger.info(
            "carrier_table_loaded active=%d skipped=%d",
            len(records), len(rows) - len(records),
        )
        return records

    def candidates(self, carrier_name: str) -> list[CarrierRecord]:
        """All active records whose name contains the normalized ``carrier_name``."""
        key = normalize_carrier_name(carrier_name)
        if not key:
            return []
        return [r for r in self.records if key in r.normalized_name]

    def find(
        self,
        carrier_name: str,
        note: str | None = None,
        time_hint: str | None = None,
    ) -> CarrierRecord | None:
        """Return the reference record for ``carrier_name``, or None.

        Args:
            carrier_name: Name from the note or address, raw or normalized.
            note: Original delivery note, used for the name-in-note rule.
            time_hint: Time expression extracted from the note.
        """
        matches = self.candidates(carrier_name)
        if not matches:
            logger.info("carrier_not_found name=%r", carrier_name)
            return None
        if len(matches) == 1:
            return matches[0]

        folded_note = collapse_whitespace(fold(note))
        if folded_note:
            in_note = [
                r for r in matches
                if _contains_phrase(folded_note, r.folded_name)
                or _contains_phrase(folded_note, r.normalized_name)
            ]
            if in_note:
                best = max(in_note, key=lambda r: len(r.normalized_name))
                logger.info("carrier_disambiguated rule=note id=%d", best.id)
                return best

        hint_clocks = canonical_clock_values(time_hint)
        if hint_clocks:
            for record in matches:
                if canonical_clock_values(record.departure_time) & hint_clocks:
                    logger.info("carrier_disambiguated rule=departure id=%d", record.id)
                    return record

        logger.info(
            "carrier_disambiguated rule=table_order id=%d candidates=%d",
            matches[0].id, len(matches),
        )
        return matches[0]
