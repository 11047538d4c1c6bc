"""
Document totals.

calculate_totals() is the one source of truth for the amounts shown to the
user and sent for validation. It always recomputes from the raw line fields
(qty × unit price − line discount), never from amounts stored on the lines.
"""

import logging
from typing import Iterable

from decoupe.core.format import safe_num, round3
from decoupe.forms.models import (
    DEFAULT_TAX_RATE, DocumentTotals, NormalizedLineItem, QuoteDocument,
)
from decoupe.forms.normalize import line_inputs, line_items

log = logging.getLogger("decoupe.totals")


def document_tax_rate(document: QuoteDocument) -> float:
    return safe_num(document.get("tax_rate"), DEFAULT_TAX_RATE)


def document_discount(document: QuoteDocument) -> float:
    return min(100.0, max(0.0, safe_num(document.get("global_discount"), 0.0)))


def calculate_totals(document: QuoteDocument) -> DocumentTotals:
    items = line_items(document.get("items"))
    subtotal = 0.0
    for item in items:
        inp = line_inputs(item)
        item_total = inp["quantity"] * inp["unit_price"]
        item_discount = item_total * (inp["discount_pct"] / 100)
        subtotal += item_total - item_discount

    subtotal = round3(subtotal)
    discount = round3(subtotal * document_discount(document) / 100)
    net = round3(subtotal - discount)
    tax = round3(net * document_tax_rate(document) / 100)
    return {
        "subtotal_excl_tax": subtotal,
        "discount_applied": discount,
        "net_excl_tax": net,
        "tax_applied": tax,
        "grand_total": round3(net + tax),
        "items_count": len(items),
    }


def lines_grand_total(lines: Iterable[NormalizedLineItem], global_discount: float) -> float:
    """Grand total as implied by the normalized lines' own TTC amounts."""
    ttc = sum(line.amount_incl_tax for line in lines)
    return round3(ttc * (1 - global_discount / 100))


def reconcile(document: QuoteDocument, lines, totals: DocumentTotals,
              tolerance: float = 0.01) -> float:
    """Drift between line amounts and recomputed totals. Logs when over tolerance.

    Stored line amounts are displayed as-is but never override the totals.
    """
    drift = round3(lines_grand_total(lines, document_discount(document)) - totals["grand_total"])
    if abs(drift) > tolerance:
        log.warning("Quote %s: line amounts differ from recomputed total by %.3f",
                    document.get("number", "?"), drift,
                    extra={"quote_number": document.get("number")})
    return drift
