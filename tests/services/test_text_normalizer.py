"""Tests for address and carrier-name text transforms."""

from lastmile.services.text_normalizer import (
    clean_address,
    find_carrier_names,
    fold,
    is_express_marker,
    is_transport_reference,
    normalize_cache_key,
    normalize_carrier_name,
    strip_honorific_names,
    strip_phone_numbers,
)


class TestFold:
    """Tests for diacritic folding."""

    def test_removes_diacritics_and_uppercases(self):
        assert fold("Gửi xe Phương Trang") == "GUI XE PHUONG TRANG"

    def test_maps_d_stroke(self):
        assert fold("Đà Nẵng") == "DA NANG"

    def test_none_is_empty(self):
        assert fold(None) == ""


class TestStripPhoneNumbers:
    """Tests for phone number removal."""

    def test_removes_ten_digit_number(self):
        assert strip_phone_numbers("anh Duy 0901234567").strip() == "anh Duy"

    def test_removes_dotted_form(self):
        assert "0901" not in strip_phone_numbers("LH 0901.234.567 giao")

    def test_keeps_house_numbers(self):
        assert strip_phone_numbers("1390 Võ Văn Kiệt") == "1390 Võ Văn Kiệt"


class TestStripHonorificNames:
    """Tests for honorific + name removal."""

    def test_removes_title_case_name(self):
        assert strip_honorific_names("giao chị Lan").strip() == "giao"

    def test_keeps_all_caps_carrier_name(self):
        assert strip_honorific_names("XE ANH KHOA") == "XE ANH KHOA"

    def test_keeps_street_names(self):
        assert strip_honorific_names("45 Bà Triệu") == "45 Bà Triệu"


class TestCleanAddress:
    """Tests for full address cleaning."""

    def test_strips_phone_aside_and_contact(self):
        raw = "123 Lê Lợi, Quận 1 (gọi trước) anh Duy 0901234567"
        assert clean_address(raw) == "123 Lê Lợi, Quận 1"

    def test_empty_input(self):
        assert clean_address(None) == ""
        assert clean_address("   ") == ""


class TestMarkers:
    """Tests for carrier and express detection."""

    def test_transport_reference(self):
        assert is_transport_reference("Gửi xe Phương Trang")
        assert is_transport_reference("CHÀNH XE KIM MÃ")
        assert not is_transport_reference("45 Xuân Thủy, Cầu Giấy")

    def test_express_marker(self):
        assert is_express_marker("Chuyển phát nhanh")
        assert is_express_marker("gửi CPN giúp")
        assert not is_express_marker("12 Nguyễn Trãi")
        assert not is_express_marker(None)

    def test_express_in_carrier_name_is_not_express(self):
        assert not is_express_marker("Gửi xe Phương Trang Express")
        assert is_express_marker(" CHUYỂN PHÁT NHANH. ")


class TestNormalizeCacheKey:
    """Tests for route cache keys."""

    def test_folds_lowercases_and_drops_punctuation(self):
        assert normalize_cache_key("12 Nguyễn Văn Linh, Quận 7") == "12 nguyen van linh quan 7"

    def test_equivalent_spellings_share_key(self):
        assert normalize_cache_key("12  NGUYỄN VĂN LINH,QUẬN 7") == normalize_cache_key(
            "12 Nguyễn Văn Linh, Quận 7"
        )


class TestCarrierNames:
    """Tests for carrier name normalization and extraction."""

    def test_strips_keyword_and_bay_suffix(self):
        assert normalize_carrier_name("Nhà xe Phương Trang - F5") == "PHUONG TRANG"

    def test_strips_organization_suffixes(self):
        assert normalize_carrier_name("Thành Bưởi Cty TNHH") == "THANH BUOI"

    def test_find_single_name(self):
        assert find_carrier_names("Gửi xe Phương Trang") == ["PHUONG TRANG"]

    def test_name_stops_at_house_number(self):
        assert find_carrier_names("XE ANH KHOA 1390 Võ Văn Kiệt") == ["ANH KHOA"]

    def test_find_multiple_names(self):
        names = find_carrier_names("Gửi xe Phương Trang / xe Thành Bưởi")
        assert names == ["PHUONG TRANG", "THANH BUOI"]
