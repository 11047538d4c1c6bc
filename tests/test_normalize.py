"""
Tests for decoupe.forms.normalize: raw line shapes → NormalizedLineItem.

Provided amounts win over derived ones; missing amounts are derived and
rounded to 3 decimals; malformed numbers fall back to defaults.
"""
import pytest

from decoupe.forms.normalize import normalize, normalize_line, billing_mode, resolve_line


# ═══════════════════════════════════════════════════════════════════════════════
# Derivation
# ═══════════════════════════════════════════════════════════════════════════════

class TestDerivation:

    def test_derived_amounts(self):
        line = normalize([{"designation": "Découpe", "quantity": 2,
                           "unit_price_excl_tax": 100, "discount_pct": 10,
                           "tax_rate_pct": 20}])[0]
        assert line.amount_excl_tax == 180.0
        assert line.tax_amount == 36.0
        assert line.amount_incl_tax == 216.0

    def test_provided_amount_wins(self):
        line = normalize([{"designation": "x", "quantite": 2, "prix_unitaire_ht": 100,
                           "remise_pct": 10, "montant_ht": 175}])[0]
        assert line.amount_excl_tax == 175
        # the rest is derived from the provided HT
        assert line.tax_amount == 35.0
        assert line.amount_incl_tax == 210.0

    def test_all_amounts_provided_are_untouched(self):
        line = normalize([{"designation": "x", "quantite": 1, "prix_unitaire_ht": 1,
                           "montant_ht": 10, "montant_tva": 1, "montant_ttc": 99}])[0]
        assert (line.amount_excl_tax, line.tax_amount, line.amount_incl_tax) == (10, 1, 99)

    def test_provided_amount_as_string(self):
        line = normalize([{"label": "x", "qty": 1, "unit_price": 5,
                           "amount_excl_tax": "12,5"}])[0]
        assert line.amount_excl_tax == 12.5

    def test_rounding_to_three_decimals(self):
        line = normalize([{"designation": "x", "quantite": "1.3333", "prix_unitaire_ht": 3}])[0]
        assert line.amount_excl_tax == 4.0

    def test_tax_rate_defaults_to_20(self):
        line = normalize([{"designation": "x", "quantite": 1, "prix_unitaire_ht": 100}])[0]
        assert line.tax_rate_pct == 20.0
        assert line.tax_amount == 20.0

    def test_zero_tax_rate_is_kept(self):
        line = normalize([{"designation": "x", "quantite": 1, "prix_unitaire_ht": 100,
                           "tva_pct": 0}])[0]
        assert line.tax_rate_pct == 0.0
        assert line.amount_incl_tax == 100.0

    def test_malformed_numbers_degrade(self):
        line = normalize([{"designation": "x", "quantite": "deux", "prix_unitaire_ht": "abc"}])[0]
        assert line.quantity == 0.0
        assert line.unit_price_excl_tax == 0.0
        assert line.amount_excl_tax == 0.0


# ═══════════════════════════════════════════════════════════════════════════════
# Field reconciliation
# ═══════════════════════════════════════════════════════════════════════════════

class TestFieldAliases:

    def test_designation_fallback_to_libelle(self):
        assert normalize([{"libelle": "Pliage"}])[0].designation == "Pliage"

    def test_designation_from_label(self):
        assert normalize([{"label": "Pliage"}])[0].designation == "Pliage"

    def test_designation_preferred_over_libelle(self):
        assert normalize([{"designation": "A", "libelle": "B"}])[0].designation == "A"

    def test_designation_missing_is_empty(self):
        assert normalize([{"quantite": 1}])[0].designation == ""

    def test_qty_alias(self):
        assert normalize([{"qty": "3"}])[0].quantity == 3.0

    def test_resolve_line_wire_shape(self):
        r = resolve_line({"label": "x", "qty": 2, "unit": "sheet", "unit_price": 9,
                          "discount": 5, "tax_rate": 10, "sku": "M-1"})
        assert r["designation"] == "x"
        assert r["quantity"] == 2
        assert r["billing_mode"] == "sheet"
        assert r["unit_price"] == 9
        assert r["discount_pct"] == 5
        assert r["tax_rate_pct"] == 10
        assert r["sku"] == "M-1"


class TestBillingMode:

    @pytest.mark.parametrize("raw,expected", [
        ("m2", "area"), ("M²", "area"), ("feuille", "sheet"), ("tôle", "sheet"),
        ("forfait", "service"), ("service", "service"), (None, "area"), ("??", "area"),
    ])
    def test_aliases(self, raw, expected):
        assert billing_mode(raw) == expected

    def test_mode_fallback(self):
        assert normalize([{"mode": "feuille"}])[0].billing_mode == "sheet"

    def test_mode_facturation_preferred(self):
        assert normalize([{"mode_facturation": "forfait", "mode": "feuille"}])[0].billing_mode == "service"


# ═══════════════════════════════════════════════════════════════════════════════
# Sequence handling
# ═══════════════════════════════════════════════════════════════════════════════

class TestSequence:

    def test_none_input(self):
        assert normalize(None) == []

    def test_empty_entries_dropped(self):
        lines = normalize([None, {}, {"designation": "A"}])
        assert len(lines) == 1

    def test_non_object_entries_dropped(self):
        lines = normalize(["Découpe laser", 42, {"designation": "A"}, ["x"]])
        assert [l.designation for l in lines] == ["A"]
        assert lines[0].line_number == 1

    def test_not_a_list(self):
        assert normalize("Découpe laser") == []
        assert normalize({"designation": "A"}) == []

    def test_resolve_line_non_object(self):
        r = resolve_line("Découpe laser")
        assert r["designation"] is None
        assert r["quantity"] is None

    def test_huge_quantity_degrades(self):
        line = normalize([{"designation": "x", "quantite": 10 ** 400, "prix_unitaire_ht": 5}])[0]
        assert line.quantity == 0.0
        assert line.amount_excl_tax == 0.0

    def test_line_numbers_assigned(self):
        lines = normalize([{"designation": "A"}, {"designation": "B"}, {"designation": "C"}])
        assert [l.line_number for l in lines] == [1, 2, 3]

    def test_line_number_from_input(self):
        assert normalize([{"designation": "A", "ligne_numero": 7}])[0].line_number == 7

    def test_notes_carried(self):
        assert normalize([{"designation": "A", "notes": "ébavuré"}])[0].notes == "ébavuré"

    def test_normalize_line_index(self):
        assert normalize_line({"designation": "A"}, 4).line_number == 5

    def test_sample_document(self, sample_document):
        lines = normalize(sample_document["items"])
        assert lines[0].quantity == 2.5
        assert lines[0].billing_mode == "area"
        assert lines[0].amount_excl_tax == 1000.0
        assert lines[1].billing_mode == "sheet"
        assert lines[1].amount_incl_tax == 216
