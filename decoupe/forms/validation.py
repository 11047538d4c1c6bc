"""Required-field checks run before any network call or rendering."""

from typing import List

from decoupe.core.format import safe_num
from decoupe.forms.models import QuoteDocument, ValidationError
from decoupe.forms.normalize import resolve_line


def _blank(value) -> bool:
    return value is None or not str(value).strip()


def _name(party) -> object:
    return party.get("name") if isinstance(party, dict) else None


def validate(document: QuoteDocument) -> List[ValidationError]:
    """Return every violated rule; an empty list means the document can be generated."""
    errors: List[ValidationError] = []
    if not isinstance(document, dict):
        document = {}

    if _blank(document.get("number")):
        errors.append({"field": "number", "message": "Numéro de devis obligatoire"})
    if _blank(document.get("date")):
        errors.append({"field": "date", "message": "Date du devis obligatoire"})
    if _blank(_name(document.get("customer"))):
        errors.append({"field": "customer.name", "message": "Nom du client obligatoire"})
    if _blank(_name(document.get("company"))):
        errors.append({"field": "company.name", "message": "Nom de l'entreprise obligatoire"})

    items = document.get("items")
    if not isinstance(items, (list, tuple)) or not items:
        errors.append({"field": "items", "message": "Au moins un article requis"})
        items = []

    for index, item in enumerate(items):
        n = index + 1
        if not isinstance(item, dict):
            errors.append({"field": f"items[{index}]",
                           "message": f"Article {n} illisible",
                           "value": item})
            continue
        r = resolve_line(item)
        if _blank(r["designation"]):
            errors.append({"field": f"items[{index}].label",
                           "message": f"Libellé obligatoire pour l'article {n}"})
        qty = safe_num(r["quantity"], 0.0)
        if qty <= 0:
            errors.append({"field": f"items[{index}].qty",
                           "message": f"Quantité invalide pour l'article {n}",
                           "value": r["quantity"]})
        if safe_num(r["unit_price"], 0.0) < 0:
            errors.append({"field": f"items[{index}].unit_price",
                           "message": f"Prix unitaire invalide pour l'article {n}",
                           "value": r["unit_price"]})
    return errors


def summarize(errors: List[ValidationError]) -> str:
    return "Devis invalide : " + ", ".join(e["message"] for e in errors)
