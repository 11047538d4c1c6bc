"""
Line-item normalizer.

Raw lines come from the quote form, from stored quotes and from AI
extraction, with different key spellings and numbers as strings. Every
accepted spelling is listed in LINE_FIELD_ALIASES; resolve_line() maps a raw
line onto one flat dict and normalize_line() turns that into a
NormalizedLineItem.

Amounts already present on the line (montant_ht, montant_tva, montant_ttc)
are kept as-is: stored quotes are the authority for what was quoted.
Missing amounts are derived and rounded to 3 decimals.

Malformed numbers never raise, they fall back to defaults.
"""

import logging
from collections.abc import Mapping
from typing import Iterable, List, Optional

from decoupe.core.format import safe_num, round3
from decoupe.forms.models import (
    BILLING_MODE_ALIASES, DEFAULT_TAX_RATE, NormalizedLineItem, RawLineItem,
)

log = logging.getLogger("decoupe.normalize")

# canonical field → accepted raw keys, highest priority first
LINE_FIELD_ALIASES = {
    "line_number":     ("ligne_numero", "line_number"),
    "designation":     ("designation", "libelle", "label"),
    "billing_mode":    ("mode_facturation", "mode", "unit"),
    "quantity":        ("quantite", "qty", "quantity"),
    "unit_price":      ("prix_unitaire_ht", "unit_price", "unit_price_excl_tax"),
    "discount_pct":    ("remise_pct", "discount", "discount_pct"),
    "tax_rate_pct":    ("tva_pct", "tax_rate", "tax_rate_pct"),
    "amount_excl_tax": ("montant_ht", "amount_excl_tax"),
    "tax_amount":      ("montant_tva", "tax_amount"),
    "amount_incl_tax": ("montant_ttc", "amount_incl_tax"),
    "notes":           ("notes",),
    "sku":             ("matiere_id", "sku"),
}


def _pick(raw: dict, keys) -> object:
    for k in keys:
        if raw.get(k) is not None:
            return raw[k]
    return None


def billing_mode(value) -> str:
    """Canonical billing mode (area | sheet | service); unknown → area."""
    if value is None:
        return "area"
    mode = BILLING_MODE_ALIASES.get(str(value).strip().lower())
    if mode is None:
        log.debug("Unknown billing mode %r, using area", value)
        return "area"
    return mode


def resolve_line(raw: RawLineItem) -> dict:
    """Flatten any accepted raw shape to canonical keys. Values stay raw (unconverted)."""
    if not isinstance(raw, Mapping):
        raw = {}
    return {field: _pick(raw, keys) for field, keys in LINE_FIELD_ALIASES.items()}


def line_inputs(raw: RawLineItem) -> dict:
    """Coerced pricing inputs of a raw line: quantity, unit price, discount, tax rate."""
    r = resolve_line(raw)
    return {
        "quantity": safe_num(r["quantity"], 0.0),
        "unit_price": safe_num(r["unit_price"], 0.0),
        "discount_pct": safe_num(r["discount_pct"], 0.0),
        "tax_rate_pct": safe_num(r["tax_rate_pct"], DEFAULT_TAX_RATE),
    }


def normalize_line(raw: RawLineItem, index: int) -> NormalizedLineItem:
    r = resolve_line(raw)
    inputs = line_inputs(raw)
    qty = inputs["quantity"]
    pu = inputs["unit_price"]
    remise = inputs["discount_pct"]
    tva = inputs["tax_rate_pct"]

    ht = safe_num(r["amount_excl_tax"], round3(qty * pu * (1 - remise / 100)))
    mtva = safe_num(r["tax_amount"], round3(ht * tva / 100))
    ttc = safe_num(r["amount_incl_tax"], round3(ht + mtva))

    notes = r["notes"]
    return NormalizedLineItem(
        line_number=int(safe_num(r["line_number"], index + 1)),
        designation="" if r["designation"] is None else str(r["designation"]),
        billing_mode=billing_mode(r["billing_mode"]),
        quantity=qty,
        unit_price_excl_tax=pu,
        discount_pct=remise,
        tax_rate_pct=tva,
        amount_excl_tax=ht,
        tax_amount=mtva,
        amount_incl_tax=ttc,
        notes=str(notes) if notes is not None else None,
    )


def line_items(raw_items) -> list:
    """Usable raw lines: non-empty mappings from a list or tuple, anything else dropped."""
    if not isinstance(raw_items, (list, tuple)):
        return []
    malformed = sum(1 for it in raw_items if it and not isinstance(it, Mapping))
    if malformed:
        log.debug("Dropped %d malformed line item(s)", malformed)
    return [it for it in raw_items if isinstance(it, Mapping) and it]


def normalize(raw_items: Optional[Iterable[RawLineItem]]) -> List[NormalizedLineItem]:
    """Normalize a possibly-null sequence of raw lines. Empty and non-object entries are dropped."""
    items = line_items(raw_items)
    return [normalize_line(it, i) for i, it in enumerate(items)]
