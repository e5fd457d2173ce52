"""Tests for key normalization and numeric coercion."""

import pandas as pd

from lpdash.normalize import normalize_key, normalize_key_columns, to_amount, to_number


class TestNormalizeKey:
    def test_trims_and_lowercases(self):
        assert normalize_key("  Google Ads ") == "google ads"

    def test_missing_values_become_empty(self):
        assert normalize_key(None) == ""
        assert normalize_key(float("nan")) == ""

    def test_integral_float_has_no_fraction(self):
        assert normalize_key(1.0) == "1"
        assert normalize_key(1.5) == "1.5"

    def test_date_prefix_is_zero_padded(self):
        assert normalize_key("2024/1/5") == "2024-01-05"
        assert normalize_key("2024-1-05") == "2024-01-05"

    def test_time_component_is_dropped(self):
        assert normalize_key("2024-01-05 10:30:00") == "2024-01-05"
        assert normalize_key(pd.Timestamp("2024-01-05")) == "2024-01-05"

    def test_slash_and_dash_dates_agree(self):
        assert normalize_key("2025/01/28") == normalize_key("2025-1-28")

    def test_key_columns_fill_missing(self):
        df = pd.DataFrame({"date": ["2024/1/5"], "media": [" Yahoo "]})
        keys = normalize_key_columns(df, ["date", "media", "method"])
        assert keys.iloc[0].tolist() == ["2024-01-05", "yahoo", ""]


class TestToNumber:
    def test_thousands_separator(self):
        assert to_number("1,234") == 1234.0

    def test_blank_and_garbage_are_zero(self):
        assert to_number("") == 0.0
        assert to_number(None) == 0.0
        assert to_number("n/a") == 0.0
        assert to_number(float("inf")) == 0.0

    def test_numbers_pass_through(self):
        assert to_number(7) == 7.0
        assert to_number(" 2.5 ") == 2.5


class TestToAmount:
    def test_currency_text(self):
        assert to_amount("¥1,234") == 1234.0
        assert to_amount("12.5円") == 12.5

    def test_unparseable_is_zero(self):
        assert to_amount("") == 0.0
        assert to_amount("-") == 0.0
        assert to_amount(None) == 0.0

    def test_numbers_pass_through(self):
        assert to_amount(3000) == 3000.0
