"""Ordered rewrite table for Vietnamese delivery-note idioms.

Each rule maps a colloquial or abbreviated phrase to a canonical token that
the note parser understands. Rules run top to bottom on the lower-cased
note, so multi-word phrases are listed before the single words they
contain. Canonical tokens:

    urgent, before, express,
    morning, noon, afternoon, evening,
    today, tomorrow, day-after, two-days-after,
    weekday-next-week:<n>   (n = 2 Monday ... 7 Saturday, 8 Sunday)

Clock expressions are rewritten to ``<H>h`` / ``<H>h<MM>`` as well.
"""

import re
from dataclasses import dataclass

URGENT = "urgent"
BEFORE = "before"
EXPRESS = "express"

MORNING = "morning"
NOON = "noon"
AFTERNOON = "afternoon"
EVENING = "evening"
DAY_PARTS = (MORNING, NOON, AFTERNOON, EVENING)

TODAY = "today"
TOMORROW = "tomorrow"
DAY_AFTER = "day-after"
TWO_DAYS_AFTER = "two-days-after"
RELATIVE_DAYS = (TODAY, TOMORROW, DAY_AFTER, TWO_DAYS_AFTER)

WEEKDAY_NEXT_WEEK = "weekday-next-week"

_WEEKDAY_WORDS = {
    "hai": 2,
    "ba": 3,
    "tư": 4,
    "bốn": 4,
    "năm": 5,
    "sáu": 6,
    "bảy": 7,
}


@dataclass(frozen=True)
class VocabularyRule:
    """One rewrite: every match of ``pattern`` becomes ``replacement``."""

    pattern: re.Pattern
    replacement: str


def _rule(pattern: str, replacement: str) -> VocabularyRule:
    return VocabularyRule(
        re.compile(r"(?<!\w)(?:" + pattern + r")(?!\w)", re.IGNORECASE),
        replacement,
    )


def _weekday_rules() -> list[VocabularyRule]:
    rules = [
        _rule(
            r"(?:thứ|thu|t)\s*([2-7])(?:\s+(?:tuần|tuan)\s+(?:sau|tới|toi))?",
            WEEKDAY_NEXT_WEEK + r":\1",
        ),
        _rule(
            r"(?:chủ nhật|chu nhat|cn)(?:\s+(?:tuần|tuan)\s+(?:sau|tới|toi))?",
            WEEKDAY_NEXT_WEEK + ":8",
        ),
    ]
    for word, number in _WEEKDAY_WORDS.items():
        rules.append(
            _rule(
                r"thứ\s+" + word + r"(?:\s+(?:tuần|tuan)\s+(?:sau|tới|toi))?",
                f"{WEEKDAY_NEXT_WEEK}:{number}",
            )
        )
    rules.append(_rule(r"(?:tuần|tuan)\s+(?:sau|tới)", WEEKDAY_NEXT_WEEK + ":2"))
    return rules


NOTE_VOCABULARY: tuple[VocabularyRule, ...] = (
    # Express handoff must be consumed before "nhanh" becomes urgent.
    _rule(r"chuyển phát nhanh|chuyen phat nhanh|cpn", EXPRESS),
    # Clock forms: "15 giờ 30", "15g30", "15 gio" -> "15h30", "15h"
    _rule(r"(\d{1,2})\s*(?:giờ|gio|g)\s*(\d{2})", r"\1h\2"),
    _rule(r"(\d{1,2})\s*(?:giờ|gio|g)", r"\1h"),
    _rule(r"(\d{1,2})\s*h\s+(\d{2})", r"\1h\2"),
    # Urgency
    _rule(
        r"khẩn cấp|khan cap|hỏa tốc|hoả tốc|hoa toc|ngay lập tức|ngay lap tuc"
        r"|sớm nhất|som nhat|nhanh nhất|nhanh nhat|càng sớm càng tốt|asap",
        URGENT,
    ),
    _rule(r"gấp|gap|khẩn|liền|sớm|som|sn|nhanh|nhah|mau lên|urgent", URGENT),
    # Before
    _rule(r"trước|truoc|trc|tr\.", BEFORE),
    # Day parts, meal times first
    _rule(r"ăn trưa|an trua|buổi trưa|buoi trua|trưa|trua", NOON),
    _rule(r"ăn tối|an toi|cuối giờ|cuoi gio|cuối ngày|cuoi ngay", EVENING),
    _rule(r"đầu giờ chiều|dau gio chieu|buổi chiều|buoi chieu|chiều|chieu|chiu", AFTERNOON),
    _rule(r"buổi sáng|buoi sang|sáng|sang", MORNING),
    _rule(r"buổi tối|buoi toi|tối|toi", EVENING),
    # Relative days, longest phrases first
    _rule(r"ngày kìa", TWO_DAYS_AFTER),
    _rule(r"ngày mốt|ngay mot|ngày kia|ngay kia|mốt", DAY_AFTER),
    _rule(r"ngày mai|ngay mai|mai", TOMORROW),
    _rule(r"hôm nay|hom nay|hnay|trong ngày|trong ngay|nay", TODAY),
    *_weekday_rules(),
)


def normalize_note(note: str | None) -> str:
    """Lower-case ``note`` and rewrite every vocabulary phrase to its token."""
    if not note:
        return ""
    text = note.lower()
    for rule in NOTE_VOCABULARY:
        text = rule.pattern.sub(rule.replacement, text)
    return re.sub(r"\s+", " ", text).strip()


def strip_vocabulary(text: str) -> str:
    """Remove every vocabulary phrase from ``text``, keeping everything else."""
    for rule in NOTE_VOCABULARY:
        text = rule.pattern.sub(" ", text)
    return re.sub(r"\s+", " ", text).strip()
