"""
Tests for decoupe.core.format: numeric coercion and fr-MA formatting.

    safe_num(value, default) -> float   (None/""/garbage/inf → default)
    n_fixed / num3 / fmt_money / fmt_pct / fmt_date -> str
"""
from datetime import date

import pytest

from decoupe.core.format import (
    safe_num, round3, n_fixed, num3, fmt_money, fmt_mad, fmt_pct, fmt_date,
)


# ═══════════════════════════════════════════════════════════════════════════════
# safe_num
# ═══════════════════════════════════════════════════════════════════════════════

class TestSafeNum:

    def test_int_and_float(self):
        assert safe_num(3) == 3.0
        assert safe_num(2.5) == 2.5

    def test_numeric_string(self):
        assert safe_num("400") == 400.0

    def test_french_decimal_comma(self):
        assert safe_num("2,5") == 2.5

    def test_grouped_with_spaces(self):
        assert safe_num("1 234,5") == 1234.5

    def test_grouped_with_nbsp(self):
        assert safe_num("1\u00a0234") == 1234.0

    @pytest.mark.parametrize("value", [None, "", "   ", "abc", "1,2,3"])
    def test_garbage_gives_default(self, value):
        assert safe_num(value, 7.0) == 7.0

    def test_non_finite_gives_default(self):
        assert safe_num(float("inf"), 1.0) == 1.0
        assert safe_num(float("nan"), 1.0) == 1.0
        assert safe_num("inf", 1.0) == 1.0

    def test_oversized_int_gives_default(self):
        assert safe_num(10 ** 400, 3.0) == 3.0
        assert safe_num(-(10 ** 400)) == 0.0

    def test_bool_is_not_a_number(self):
        assert safe_num(True, 5.0) == 5.0

    def test_zero_is_kept(self):
        assert safe_num(0, 20.0) == 0.0
        assert safe_num("0", 20.0) == 0.0


def test_round3():
    assert round3(180.00049) == 180.0
    assert round3(2.1234) == 2.123


# ═══════════════════════════════════════════════════════════════════════════════
# Formatting
# ═══════════════════════════════════════════════════════════════════════════════

class TestFormatting:

    def test_n_fixed_groups_thousands(self):
        assert n_fixed(1234567.891, 2) == "1 234 567,89"

    def test_n_fixed_small(self):
        assert n_fixed(5, 2) == "5,00"

    def test_num3(self):
        assert num3(2.5) == "2,500"

    def test_money_mad(self):
        assert fmt_money(1274.4) == "1 274,40 DH"
        assert fmt_mad(10) == "10,00 DH"

    def test_money_eur(self):
        assert fmt_money(10, "EUR") == "10,00 €"

    def test_money_unknown_currency_uses_code(self):
        assert fmt_money(1, "usd") == "1,00 USD"

    def test_pct_whole(self):
        assert fmt_pct(20) == "20%"

    def test_pct_fraction(self):
        assert fmt_pct(12.5) == "12,5%"

    def test_date_iso(self):
        assert fmt_date("2025-01-15") == "15/01/2025"

    def test_date_object(self):
        assert fmt_date(date(2025, 3, 7)) == "07/03/2025"

    def test_date_empty(self):
        assert fmt_date(None) == ""

    def test_date_unparseable_echoed(self):
        assert fmt_date("pas une date") == "pas une date"
