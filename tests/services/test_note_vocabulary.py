"""Tests for the delivery-note rewrite table."""

import pytest

from lastmile.services.note_vocabulary import (
    NOTE_VOCABULARY,
    normalize_note,
    strip_vocabulary,
)


class TestNormalizeNote:
    """Tests for phrase-to-token rewriting."""

    @pytest.mark.parametrize(
        "note, expected",
        [
            ("giao gấp trước 15h", "giao urgent before 15h"),
            ("15 giờ 30", "15h30"),
            ("15g", "15h"),
            ("sáng mai", "morning tomorrow"),
            ("chiều nay", "afternoon today"),
            ("ngày kìa", "two-days-after"),
            ("ngày mốt", "day-after"),
            ("thứ 3 tuần sau", "weekday-next-week:3"),
            ("chủ nhật", "weekday-next-week:8"),
            ("khẩn cấp", "urgent"),
        ],
    )
    def test_rewrites(self, note, expected):
        assert normalize_note(note) == expected

    def test_express_consumed_before_urgency(self):
        assert normalize_note("chuyển phát nhanh") == "express"

    def test_empty_note(self):
        assert normalize_note(None) == ""
        assert normalize_note("") == ""

    def test_words_inside_other_words_untouched(self):
        assert normalize_note("Phương Trang") == "phương trang"


class TestStripVocabulary:
    """Tests for vocabulary removal."""

    def test_removes_all_phrases(self):
        assert strip_vocabulary("gấp trước chiều nay") == ""

    def test_keeps_other_text(self):
        assert strip_vocabulary("Kho Bình Dương gấp") == "Kho Bình Dương"


def test_table_is_ordered_tuple():
    assert isinstance(NOTE_VOCABULARY, tuple)
    assert NOTE_VOCABULARY[0].replacement == "express"
