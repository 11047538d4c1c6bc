"""
Quote document shapes.

Documents travel as plain dicts (the same JSON the remote generation
service accepts); these TypedDicts name the keys. Line items arrive in two
legacy shapes that the normalizer reconciles:

    DevisLine  - French form/database rows (designation, quantite, prix_unitaire_ht, ...)
    WireLine   - remote-service items (label, qty, unit_price, discount, tax_rate, ...)
"""

from typing import List, Literal, NamedTuple, Optional, TypedDict, Union

BillingMode = Literal["area", "sheet", "service"]

BILLING_MODES = ("area", "sheet", "service")

# Source spellings seen in stored quotes → canonical billing mode
BILLING_MODE_ALIASES = {
    "m2": "area", "m²": "area", "area": "area", "surface": "area",
    "feuille": "sheet", "sheet": "sheet", "tole": "sheet", "tôle": "sheet",
    "service": "service", "forfait": "service", "prestation": "service",
}

DEFAULT_TAX_RATE = 20.0


# "if" (identifiant fiscal) is a keyword, hence the functional form
Party = TypedDict("Party", {
    "name": str,
    "address": str,
    "postal_code": str,
    "city": str,
    "phone": str,
    "email": str,
    "ice": str,
    "rc": str,
    "if": str,
    "logo": str,
}, total=False)


class DevisLine(TypedDict, total=False):
    ligne_numero: int
    designation: str
    libelle: str
    mode_facturation: str
    mode: str
    quantite: Union[float, str]
    qty: Union[float, str]
    prix_unitaire_ht: Union[float, str]
    remise_pct: Union[float, str]
    tva_pct: Union[float, str]
    montant_ht: Union[float, str]
    montant_tva: Union[float, str]
    montant_ttc: Union[float, str]
    notes: str
    matiere_id: Optional[str]


class WireLine(TypedDict, total=False):
    line_number: int
    sku: str
    label: str
    qty: Union[float, str]
    unit: str
    unit_price: Union[float, str]
    discount: Union[float, str]
    tax_rate: Union[float, str]
    amount_excl_tax: Union[float, str]
    tax_amount: Union[float, str]
    amount_incl_tax: Union[float, str]
    notes: str


RawLineItem = Union[DevisLine, WireLine]


class QuoteDocument(TypedDict, total=False):
    id: str
    number: str
    date: str
    valid_until: str
    currency: str
    customer_id: str
    customer: Party
    company: Party
    items: List[RawLineItem]
    global_discount: float
    tax_rate: float
    payment_terms: str
    notes: str


class NormalizedLineItem(NamedTuple):
    line_number: int
    designation: str
    billing_mode: str
    quantity: float
    unit_price_excl_tax: float
    discount_pct: float
    tax_rate_pct: float
    amount_excl_tax: float
    tax_amount: float
    amount_incl_tax: float
    notes: Optional[str] = None


class DocumentTotals(TypedDict):
    subtotal_excl_tax: float
    discount_applied: float
    net_excl_tax: float
    tax_applied: float
    grand_total: float
    items_count: int


class Zone(TypedDict, total=False):
    x: float
    y: float
    width: float
    height: float


class ValidationError(TypedDict, total=False):
    field: str
    message: str
    value: object


# Keys of a template zone configuration, in drawing order
ZONE_NAMES = ("entreprise", "numero", "date", "client", "lignes", "totaux")
