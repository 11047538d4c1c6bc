"""
Company profile and stored-devis conversion.

The database keeps quotes in the French record shape (numero, date_devis,
client{nom, adresse, ...}, lignes[]). The generator speaks QuoteDocument.
These helpers translate one into the other and fill in the issuer block
from the saved company profile.
"""

import copy
import logging
from typing import List, Optional

from decoupe.core.format import safe_num
from decoupe.core.store import KeyValueStore
from decoupe.forms.models import DEFAULT_TAX_RATE, Party, QuoteDocument

log = logging.getLogger("decoupe.convert")

COMPANY_KEY = "company_profile"

DEFAULT_CURRENCY = "MAD"
DEFAULT_PAYMENT_TERMS = "Paiement à 30 jours fin de mois"

DEFAULT_COMPANY: Party = {
    "name": "DECOUPE EXPRESS",
    "address": "BOULEVARD MOULAY YOUSSEF PARC INDUSTRIEL MOHAMMEDIA",
    "postal_code": "28810",
    "city": "MOHAMMEDIA",
    "phone": "TEL: 05 23 30 58 80 / 06 66 04 58 24",
    "email": "contact@decoupe-express.ma",
    "ice": "002741154000000",
    "rc": "27441/14",
    "if": "40208300",
}

# Customer record column → Party key
_CLIENT_FIELDS = {
    "nom": "name",
    "adresse": "address",
    "code_postal": "postal_code",
    "ville": "city",
    "telephone": "phone",
    "email": "email",
    "ice": "ice",
    "rc": "rc",
}


def load_company(store: KeyValueStore) -> Party:
    """Saved issuer profile, or DEFAULT_COMPANY if none was saved."""
    profile = store.get(COMPANY_KEY)
    if not isinstance(profile, dict) or not profile.get("name"):
        return copy.deepcopy(DEFAULT_COMPANY)
    return profile


def save_company(store: KeyValueStore, profile: Party) -> None:
    if not (profile or {}).get("name"):
        raise ValueError("Company name is required")
    store.set(COMPANY_KEY, dict(profile))
    log.info("Company profile saved: %s", profile["name"])


def with_issuer(document: QuoteDocument, company: Party) -> QuoteDocument:
    """Copy of document with blank issuer fields taken from company."""
    doc = copy.deepcopy(document)
    issuer = doc.get("company")
    issuer = dict(issuer) if isinstance(issuer, dict) else {}
    for key, value in (company or {}).items():
        if value and not issuer.get(key):
            issuer[key] = value
    doc["company"] = issuer
    return doc


def _customer(client: dict) -> Party:
    party = {}
    for src, dst in _CLIENT_FIELDS.items():
        if client.get(src) not in (None, ""):
            party[dst] = client[src]
    return party


def _wire_line(ligne: dict) -> dict:
    item = {
        "label": ligne.get("designation") or ligne.get("libelle") or "",
        "qty": ligne.get("quantite"),
        "unit": ligne.get("mode_facturation"),
        "unit_price": ligne.get("prix_unitaire_ht"),
        "discount": ligne.get("remise_pct"),
        "tax_rate": ligne.get("tva_pct"),
        "notes": ligne.get("notes"),
    }
    if ligne.get("ligne_numero") is not None:
        item["line_number"] = ligne["ligne_numero"]
    if ligne.get("matiere_id"):
        item["sku"] = ligne["matiere_id"]
    # Stored amounts are kept so the rendered lines show what was quoted
    for src, dst in (("montant_ht", "amount_excl_tax"), ("montant_tva", "tax_amount"),
                     ("montant_ttc", "amount_incl_tax")):
        if ligne.get(src) is not None:
            item[dst] = ligne[src]
    return {k: v for k, v in item.items() if v is not None}


def from_records(devis: dict, client: Optional[dict], lignes: Optional[List[dict]],
                 company: Optional[Party] = None) -> QuoteDocument:
    """Build a QuoteDocument from a devis row, its client row and its line rows."""
    client = client or {}
    doc: QuoteDocument = {
        "id": devis.get("id", ""),
        "number": devis.get("numero", ""),
        "date": devis.get("date_devis", ""),
        "currency": devis.get("devise") or DEFAULT_CURRENCY,
        "customer_id": client.get("id", devis.get("client_id", "")),
        "customer": _customer(client),
        "company": copy.deepcopy(company) if company else copy.deepcopy(DEFAULT_COMPANY),
        "items": [_wire_line(l) for l in (lignes or []) if l],
        "global_discount": safe_num(devis.get("remise_globale_pct"), 0.0),
        "tax_rate": safe_num(devis.get("taux_tva"), DEFAULT_TAX_RATE),
        "payment_terms": devis.get("conditions") or DEFAULT_PAYMENT_TERMS,
    }
    if devis.get("date_validite"):
        doc["valid_until"] = devis["date_validite"]
    if devis.get("notes"):
        doc["notes"] = devis["notes"]
    return doc


def from_devis(devis: dict, company: Optional[Party] = None) -> QuoteDocument:
    """Same as from_records, for a devis carrying its client and lignes inline."""
    return from_records(devis, devis.get("client"), devis.get("lignes"), company)
