"""Decide which resolution branch applies to a raw delivery address."""

import logging
import re
from enum import Enum

from lastmile.services.text_normalizer import (
    CARRIER_NAME_PATTERN,
    collapse_whitespace,
    find_carrier_names,
    fold,
    is_transport_reference,
    normalize_carrier_name,
    strip_parentheticals,
    strip_phone_numbers,
)

logger = logging.getLogger(__name__)

_SEGMENT_DELIMITERS = re.compile(r"[,;\-/]")
_STREET_ADDRESS = re.compile(r"\b\d+[A-Z]?(?:/\d+[A-Z]?)*(?:-\d+)*\s+[A-Z]{2,}")


class AddressKind(str, Enum):
    """Resolution branch for a raw address."""

    EMPTY = "empty"
    REGULAR = "regular"
    SINGLE_CARRIER = "single_carrier"
    MULTI_CARRIER = "multi_carrier"


def has_street_number(address: str) -> bool:
    """True if the address looks like "house number + street name"."""
    return bool(_STREET_ADDRESS.search(fold(address)))


def extract_carrier_name(address: str | None) -> str:
    """Return the carrier name referenced by ``address``, or "".

    Tries a leading ``<keyword> [:] NAME`` first, then each
    ``,;-/``-separated segment in turn.
    """
    if not address:
        return ""
    folded = collapse_whitespace(fold(strip_phone_numbers(strip_parentheticals(address))))
    match = CARRIER_NAME_PATTERN.match(folded)
    if match:
        name = normalize_carrier_name(match.group("name"))
        if name:
            return name
    for segment in _SEGMENT_DELIMITERS.split(folded):
        match = CARRIER_NAME_PATTERN.match(segment.strip())
        if match:
            name = normalize_carrier_name(match.group("name"))
            if name:
                return name
    return ""


def extract_carrier_names(address: str | None) -> list[str]:
    """All distinct carrier names referenced by ``address``."""
    return find_carrier_names(address)


def classify(address: str | None) -> AddressKind:
    """Classify a raw address.

    Blank text is EMPTY. Text with a carrier keyword is SINGLE_CARRIER, or
    MULTI_CARRIER when more than one distinct carrier name is extractable.
    Anything else is REGULAR, including text without a recognizable
    street number.
    """
    if not address or not address.strip():
        return AddressKind.EMPTY
    if is_transport_reference(address):
        names = extract_carrier_names(address)
        if len(names) > 1:
            return AddressKind.MULTI_CARRIER
        return AddressKind.SINGLE_CARRIER
    if not has_street_number(address):
        logger.debug("address_without_street_number address=%r", address)
    return AddressKind.REGULAR
