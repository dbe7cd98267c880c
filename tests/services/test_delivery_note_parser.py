"""Tests for delivery note parsing: deadlines, urgency and extraction."""

from datetime import date, datetime

import pytest

from lastmile.services.delivery_note_parser import DeliveryNoteParser

# Thursday
REFERENCE = datetime(2024, 3, 14, 9, 0)
# Saturday
SATURDAY_REFERENCE = datetime(2024, 3, 16, 9, 0)


@pytest.fixture
def parser():
    return DeliveryNoteParser(average_travel_minutes=15, buffer_minutes=15)


class TestDeadlines:
    """Tests for deadline and priority computation."""

    def test_urgent_before_reachable_today(self, parser):
        result = parser.parse("giao gấp trước 15h", reference=REFERENCE)
        assert result.deadline == datetime(2024, 3, 14, 15, 0)
        assert result.priority == 2
        assert result.urgent

    def test_urgent_before_unreachable_moves_to_next_working_day(self, parser):
        result = parser.parse("giao gấp trước 9h", reference=REFERENCE)
        assert result.deadline == datetime(2024, 3, 15, 9, 0)
        assert result.priority == 1

    def test_next_working_day_skips_sunday(self, parser):
        result = parser.parse("giao gấp trước 9h", reference=SATURDAY_REFERENCE)
        assert result.deadline == datetime(2024, 3, 18, 9, 0)

    def test_before_with_day_part(self, parser):
        result = parser.parse("giao trước 3h chiều", reference=REFERENCE)
        assert result.deadline == datetime(2024, 3, 14, 15, 0)
        assert result.priority == 2

    def test_small_hour_without_qualifier_is_afternoon(self, parser):
        result = parser.parse("trước 4h", reference=REFERENCE)
        assert result.deadline == datetime(2024, 3, 14, 16, 0)

    def test_hour_range_uses_end(self, parser):
        result = parser.parse("giao 14h-16h", reference=REFERENCE)
        assert result.deadline == datetime(2024, 3, 14, 16, 0)
        assert result.priority == 2

    def test_day_part_with_relative_day(self, parser):
        result = parser.parse("sáng mai", reference=REFERENCE)
        assert result.deadline == datetime(2024, 3, 15, 10, 0)
        assert result.priority == 1
        assert result.delivery_date == date(2024, 3, 15)

    def test_numeric_date_alone(self, parser):
        result = parser.parse("giao ngày 20/3", reference=REFERENCE)
        assert result.deadline == datetime(2024, 3, 20, 10, 0)
        assert result.priority == 1

    def test_weekday_next_week(self, parser):
        result = parser.parse("thứ 3 tuần sau", reference=REFERENCE)
        assert result.delivery_date == date(2024, 3, 19)
        assert result.deadline == datetime(2024, 3, 19, 10, 0)

    def test_urgent_alone_uses_earliest_arrival(self, parser):
        result = parser.parse("giao gấp", reference=REFERENCE)
        assert result.deadline == datetime(2024, 3, 14, 9, 30)
        assert result.priority == 2

    def test_travel_minutes_shift_earliest_arrival(self, parser):
        result = parser.parse("giao gấp", reference=REFERENCE, travel_minutes=45)
        assert result.deadline == datetime(2024, 3, 14, 10, 0)

    def test_lunch_deadline_moves_to_end_of_lunch(self, parser):
        result = parser.parse("giao trước 12h30", reference=REFERENCE)
        assert result.deadline == datetime(2024, 3, 14, 13, 30)

    def test_saturday_deadline_clamped_to_early_close(self, parser):
        result = parser.parse("giao trước 17h", reference=SATURDAY_REFERENCE)
        assert result.deadline == datetime(2024, 3, 16, 16, 30)

    def test_deadline_in_past_becomes_earliest_hard(self, parser):
        result = parser.parse("trước 8h", reference=REFERENCE)
        assert result.deadline == datetime(2024, 3, 14, 9, 30)
        assert result.priority == 2

    def test_urgent_with_day_part_is_hard(self, parser):
        result = parser.parse("giao gấp chiều nay", reference=REFERENCE)
        assert result.deadline == datetime(2024, 3, 14, 9, 30)
        assert result.priority == 2

    def test_early_morning_is_urgent(self, parser):
        result = parser.parse("sáng sớm", reference=REFERENCE)
        assert result.urgent
        assert result.deadline == datetime(2024, 3, 14, 9, 30)
        assert result.priority == 2

    def test_urgent_with_relative_day_is_hard(self, parser):
        result = parser.parse("gấp, sáng mai", reference=REFERENCE)
        assert result.deadline == datetime(2024, 3, 14, 9, 30)
        assert result.priority == 2

    @pytest.mark.parametrize(
        "note",
        ["giao tới 12/5 Lê Lợi, Q1", "giao tới 5/3 Lê Lợi, Q1", "12/5 Lê Lợi, Q1"],
    )
    def test_alley_number_is_not_a_date(self, parser, note):
        result = parser.parse(note, reference=REFERENCE)
        assert result.delivery_date is None
        assert result.deadline is None
        assert result.priority == 0

    def test_alley_number_kept_as_address(self, parser):
        result = parser.parse("giao tới 12/5 Lê Lợi, Q1", reference=REFERENCE)
        assert "12/5 Lê Lợi" in result.delivery_address

    def test_date_with_full_year(self, parser):
        result = parser.parse("20/3/2024", reference=REFERENCE)
        assert result.delivery_date == date(2024, 3, 20)
        assert result.priority == 1

    def test_date_after_deadline_word(self, parser):
        result = parser.parse("hạn 18/3", reference=REFERENCE)
        assert result.deadline == datetime(2024, 3, 18, 10, 0)

    def test_no_temporal_signal(self, parser):
        result = parser.parse("hàng dễ vỡ", reference=REFERENCE)
        assert result.deadline is None
        assert result.priority == 0

    def test_empty_note(self, parser):
        result = parser.parse(None, reference=REFERENCE)
        assert result.deadline is None
        assert result.priority == 0
        assert result.carrier_name == ""

    def test_without_reference_only_extracts(self, parser):
        result = parser.parse("Gửi xe Phương Trang trước 15h")
        assert result.carrier_name == "PHUONG TRANG"
        assert result.deadline is None


class TestExtraction:
    """Tests for carrier, address, time hint and cargo extraction."""

    def test_carrier_and_time_hint(self, parser):
        result = parser.parse("Gửi xe Phương Trang trước 15h", reference=REFERENCE)
        assert result.carrier_name == "PHUONG TRANG"
        assert result.time_hint == "before 15h"

    def test_delivery_address_after_keyword(self, parser):
        note = "Giao tới 45 Trần Hưng Đạo, Quận 1 trước 10h"
        assert parser.extract_delivery_address(note) == "45 Trần Hưng Đạo, Quận 1"

    def test_no_address_in_note(self, parser):
        assert parser.extract_delivery_address("giao gấp") == ""

    def test_cargo_type(self, parser):
        assert parser.extract_cargo_type("Hàng dễ vỡ, giao trước 10h") == "fragile"
        assert parser.extract_cargo_type("hàng đông lạnh") == "refrigerated"
        assert parser.extract_cargo_type("Đà Nẵng") is None
