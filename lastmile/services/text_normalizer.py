"""Pure text transforms for Vietnamese delivery addresses and carrier names.

Matching is done on folded text (upper case, diacritics removed, Đ -> D) so
"Gửi xe", "GUI XE" and "gửi  Xe" compare equal. Cleaning functions keep
the original casing and diacritics because their output is sent to the
address standardizer.
"""

import re
import unicodedata

# Carrier keywords as written upstream; matched in folded form.
TRANSPORT_KEYWORDS = ("XE", "CHÀNH XE", "GỬI XE", "NHÀ XE", "XE KHÁCH")

EXPRESS_MARKERS = ("CHUYỂN PHÁT NHANH", "CPN", "EXPRESS")

ORGANIZATION_SUFFIXES = ("CONG TY", "CTY", "TNHH", "COMPANY", "CO", "LTD")

_COMBINING_MARKS = re.compile(r"[\u0300-\u036f]")
_WHITESPACE = re.compile(r"\s+")
_PHONE = re.compile(
    r"(?:\+84|\b0)\d{2,3}[\s.]\d{3}[\s.]\d{3,4}\b"
    r"|\+84\d{9,10}\b"
    r"|\b\d{10,11}\b"
)
_PARENTHETICAL = re.compile(r"\([^)]*\)")
_HONORIFIC_NAME = re.compile(
    r"(?<!\w)(?P<title>anh|chị|em|chú|a|c|e)(?P<dot>\.)?\s+(?P<name>\w+)",
    re.IGNORECASE,
)
_DELIVERY_TIME_NOTE = re.compile(
    r"(?:sáng|chiều|tối)?\s*:?\s*giao\s+(?:trước|sau)\s+\d{1,2}\s*[gh:]\s*\d{0,2}",
    re.IGNORECASE,
)
_TRAILING_TAG = re.compile(r"\s[-–/]\s*\w+\s*$")
_SPACED_DASH = re.compile(r"\s*-\s*")

_KEYWORD_ALTERNATION = r"(?:CHANH\s+XE|NHA\s+XE|XE\s+KHACH|XE)"
_TRANSPORT_REFERENCE = re.compile(
    r"\b(?:GUI\s+)?" + _KEYWORD_ALTERNATION + r"\b"
)
_LEADING_KEYWORD = re.compile(
    r"^\s*(?:GUI\s+)?" + _KEYWORD_ALTERNATION + r"\s*:?\s*"
)
_BAY_SUFFIX = re.compile(r"\s*-\s*(?:D1?|F[5-8]|[ABCG][1-8]|R7|I1)$")
_ORG_SUFFIX = re.compile(
    r"(?:\s+(?:" + "|".join(ORGANIZATION_SUFFIXES) + r")\.?)+$"
)
_CACHE_KEY_DISALLOWED = re.compile(r"[^0-9a-z\s/-]")

# "<keyword> [:] NAME" over folded text. The name runs until a delimiter,
# a house number, or a word that starts an address or time phrase.
_NAME_STOP_WORDS = (
    "SO", "DC", "DIA CHI", "GIAO", "LUC", "TRUOC", "SAU", "SANG", "TRUA",
    "CHIEU", "TOI", "HOM NAY", "NGAY", "GAP", "SDT", "DT", "TEL", "BEN XE",
)
CARRIER_NAME_PATTERN = re.compile(
    r"\b(?:GUI\s+)?" + _KEYWORD_ALTERNATION + r"\s*:?\s*"
    r"(?P<name>[A-Z][A-Z0-9.&' ]*?)"
    r"(?=\s*(?:$|[,;/()\-]|\d{2,}|\b(?:" + "|".join(_NAME_STOP_WORDS) + r")\b))"
)


def fold(text: str | None) -> str:
    """Upper-case ``text`` and strip Vietnamese diacritics.

    Args:
        text: Any text, or None.

    Returns:
        Folded text ("Quận 7" -> "QUAN 7"), "" for None.
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = _COMBINING_MARKS.sub("", decomposed)
    stripped = stripped.replace("đ", "d").replace("Đ", "D")
    return unicodedata.normalize("NFC", stripped).upper()


def collapse_whitespace(text: str) -> str:
    """Collapse whitespace runs to one space and strip the ends."""
    return _WHITESPACE.sub(" ", text).strip()


def strip_phone_numbers(text: str) -> str:
    """Remove 10-11 digit numbers and spaced or dotted Vietnamese phone forms."""
    return _PHONE.sub("", text)


def strip_parentheticals(text: str) -> str:
    """Remove ``( ... )`` asides."""
    return _PARENTHETICAL.sub("", text)


def _is_title_case(word: str) -> bool:
    return word[:1].isupper() and (len(word) == 1 or word[1:].islower())


def strip_honorific_names(text: str) -> str:
    """Remove honorific + personal name pairs such as ``anh Duy`` or ``C. Hoa``.

    Only title-case names are removed, so all-caps carrier names like
    ``XE ANH KHOA`` survive.
    """

    def _replace(match: re.Match) -> str:
        title = match.group("title")
        name = match.group("name")
        if len(title) == 1 and title.isupper() and not match.group("dot"):
            return match.group(0)
        if name.isdigit() or not _is_title_case(name):
            return match.group(0)
        return ""

    return _HONORIFIC_NAME.sub(_replace, text)


def clean_address(text: str | None) -> str:
    """Strip phones, asides, contact names and delivery-time notes.

    Casing and diacritics are kept.

    Args:
        text: Raw address text.

    Returns:
        Cleaned address, "" when nothing is left.
    """
    if not text:
        return ""
    cleaned = strip_phone_numbers(text)
    cleaned = strip_parentheticals(cleaned)
    cleaned = _DELIVERY_TIME_NOTE.sub("", cleaned)
    cleaned = strip_honorific_names(cleaned)
    cleaned = _TRAILING_TAG.sub("", cleaned)
    cleaned = _SPACED_DASH.sub("-", cleaned)
    cleaned = collapse_whitespace(cleaned)
    return cleaned.strip(" ,;-")


def is_transport_reference(text: str | None) -> bool:
    """True if ``text`` mentions a carrier keyword (XE, CHÀNH XE, ...).

    Args:
        text: Raw address or note text.

    Returns:
        Whether a carrier keyword appears as a whole word.
    """
    return bool(_TRANSPORT_REFERENCE.search(fold(text)))


def is_express_marker(text: str | None) -> bool:
    """True if ``text`` names an express/courier handoff.

    The whole text being a marker always counts. A marker inside longer
    text counts only when no carrier keyword is present, so a carrier
    named "Phương Trang Express" is not an express handoff.

    Args:
        text: Raw address text.

    Returns:
        Whether the order leaves through an express courier.
    """
    folded = collapse_whitespace(fold(text)).strip(" .,;:-")
    if not folded:
        return False
    if folded in {fold(marker) for marker in EXPRESS_MARKERS}:
        return True
    if is_transport_reference(text):
        return False
    for marker in EXPRESS_MARKERS:
        if re.search(r"\b" + re.escape(fold(marker)) + r"\b", folded):
            return True
    return False


def normalize_cache_key(text: str | None) -> str:
    """Canonical key for route cache lookups.

    Args:
        text: Address text.

    Returns:
        Folded, lower-cased key keeping only letters, digits, ``/`` and ``-``.
    """
    lowered = fold(text).lower()
    lowered = _CACHE_KEY_DISALLOWED.sub(" ", lowered)
    return collapse_whitespace(lowered)


def normalize_carrier_name(name: str | None) -> str:
    """Reduce a carrier name to the bare form stored in the reference table.

    Args:
        name: Carrier name as written, keyword prefix allowed.

    Returns:
        Folded name without keyword, bus-bay suffix or company nouns.
    """
    folded = fold(strip_phone_numbers(name or ""))
    folded = collapse_whitespace(folded)
    folded = _LEADING_KEYWORD.sub("", folded)
    folded = _BAY_SUFFIX.sub("", folded)
    folded = _ORG_SUFFIX.sub("", folded)
    return collapse_whitespace(folded).strip(" .,;:-")


def find_carrier_names(text: str | None) -> list[str]:
    """Return distinct normalized carrier names in order of appearance.

    Args:
        text: Address or note text.

    Returns:
        Normalized names, first occurrence order.
    """
    folded = collapse_whitespace(fold(strip_phone_numbers(strip_parentheticals(text or ""))))
    names: list[str] = []
    for match in CARRIER_NAME_PATTERN.finditer(folded):
        name = normalize_carrier_name(match.group("name"))
        if name and name not in names:
            names.append(name)
    return names
