"""
Decoupe Express Quote PDF Renderer
==================================
Draws a resolved quote (header + normalized lines + totals) to PDF.

Three modes, picked from the background asset:
  - none   → full basic layout on a blank A4 page, fixed positions
  - image  → page sized to the PNG/JPEG, image full-bleed, text at zones
  - pdf    → first page of the uploaded PDF, text at zones over its content

Coordinates are PDF points with the origin bottom-left. Background problems
raise TemplateError; anything else going wrong raises RenderError. A failed
render never returns bytes.
"""

import io
import logging
from typing import List, Optional

from PIL import Image
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError
from reportlab.lib.colors import Color, HexColor
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from decoupe.core.format import fmt_date, fmt_money, fmt_pct, n_fixed, num3
from decoupe.forms.background import BackgroundAsset
from decoupe.forms.errors import QuoteGenerationError, RenderError, TemplateError
from decoupe.forms.models import DocumentTotals, NormalizedLineItem, QuoteDocument
from decoupe.forms.totals import document_discount, document_tax_rate
from decoupe.forms.zones import ZoneStore, default_zones

log = logging.getLogger("decoupe.renderer")

PDF_MIME = "application/pdf"

# ═══════════════════════════════════════════════════════════════════════════════
# COLORS / FONTS
# ═══════════════════════════════════════════════════════════════════════════════
ORANGE = Color(1, 0.5, 0)              # brand orange, company name
BLACK  = HexColor("#000000")
GRAY   = HexColor("#555555")
RULE   = HexColor("#BBBBBB")
FONT   = "Helvetica"
BOLD   = "Helvetica-Bold"

# ═══════════════════════════════════════════════════════════════════════════════
# BASIC LAYOUT CONSTANTS (A4, 595 x 842)
# ═══════════════════════════════════════════════════════════════════════════════
W, H = A4
ML = 50                  # left margin
MR = W - 45              # right edge for right-aligned values
TITLE_X = W - 150
TABLE_TOP = H - 350
TABLE_HEADERS = ["Désignation", "Qté", "Prix U.", "Remise", "Total HT"]
TABLE_WIDTHS = [250, 60, 80, 60, 80]
ROW_H = 15
DESC_LINE_H = 11
PAGE_BOTTOM = 110        # leave room for totals/footer before breaking

# ═══════════════════════════════════════════════════════════════════════════════
# OVERLAY CONSTANTS
# ═══════════════════════════════════════════════════════════════════════════════
OVERLAY_ROW_H = 15
DEFAULT_TABLE_W = 500
# Column starts as a fraction of the lignes zone width
OVERLAY_COLS = {"designation": 0.0, "quantite": 0.60, "prix": 0.72, "total": 0.86}


def _tagged(tag: str, value) -> str:
    """'ICE: 123', without doubling a tag the stored value already carries."""
    s = str(value).strip()
    return s if s.upper().startswith(tag.upper()) else f"{tag}: {s}"


def _city_line(party: dict) -> str:
    return " ".join(str(p) for p in (party.get("postal_code"), party.get("city")) if p)


def _fit(text: str, font: str, size: float, width: float) -> str:
    """First line of text that fits width, with an ellipsis when cut."""
    parts = simpleSplit(str(text or ""), font, size, width)
    if not parts:
        return ""
    if len(parts) == 1:
        return parts[0]
    return simpleSplit(parts[0] + "…", font, size, width)[0]


def count_pages(pdf: bytes) -> int:
    try:
        return len(PdfReader(io.BytesIO(pdf)).pages)
    except PyPdfError:
        return 0


# ═══════════════════════════════════════════════════════════════════════════════
# BASIC LAYOUT
# ═══════════════════════════════════════════════════════════════════════════════

def render_basic(document: QuoteDocument, lines: List[NormalizedLineItem],
                 totals: DocumentTotals) -> bytes:
    """Full quote on blank A4 pages. Raises RenderError on any failure."""
    try:
        return _render_basic(document, lines, totals)
    except QuoteGenerationError:
        raise
    except Exception as e:
        raise RenderError(f"Basic layout failed: {e}", stage="basic_layout") from e


def _render_basic(document, lines, totals) -> bytes:
    company = document.get("company") or {}
    customer = document.get("customer") or {}
    currency = document.get("currency") or "MAD"
    number = str(document.get("number", ""))

    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4, invariant=1)
    c.setTitle(f"Devis {number}")
    c.setAuthor(company.get("name", ""))

    def text(x, y, txt, font=FONT, size=10, color=BLACK, align="left"):
        c.setFont(font, size)
        c.setFillColor(color)
        s = "" if txt is None else str(txt)
        if align == "right":
            c.drawRightString(x, y, s)
        else:
            c.drawString(x, y, s)

    page_num = 1

    def footer():
        c.setFillColor(GRAY)
        c.setFont(FONT, 8)
        c.drawRightString(MR, 20, f"Page {page_num}")
        if document.get("payment_terms"):
            c.drawString(ML, 34, f"Conditions: {document['payment_terms']}"[:120])
        c.setFillColor(BLACK)

    # ── Issuer block (top-left) ────────────────────────────────────────────────
    y = H - 50
    text(ML, y, company.get("name", ""), BOLD, 18, ORANGE)
    y -= 25
    for line in (company.get("address"), _city_line(company), company.get("phone"),
                 company.get("email")):
        if line:
            text(ML, y, line, FONT, 10)
            y -= 15
    ids = [_tagged(tag, company[key]) for tag, key in (("ICE", "ice"), ("RC", "rc"), ("IF", "if"))
           if company.get(key)]
    if ids:
        text(ML, y, "  ".join(ids), FONT, 9)
        y -= 15

    # ── Title / number / date (top-right) ─────────────────────────────────────
    text(TITLE_X, H - 50, "DEVIS", BOLD, 20)
    text(TITLE_X, H - 80, f"N° {number}", FONT, 12)
    text(TITLE_X, H - 100, f"Date: {fmt_date(document.get('date'))}", FONT, 12)
    if document.get("valid_until"):
        text(TITLE_X, H - 116, f"Valable jusqu'au: {fmt_date(document['valid_until'])}", FONT, 9)

    # ── Customer block ────────────────────────────────────────────────────────
    y = min(y - 10, H - 200)
    text(ML, y, "Facturé à:", BOLD, 12)
    y -= 20
    text(ML, y, customer.get("name", ""), FONT, 11)
    y -= 15
    for line in (customer.get("address"), _city_line(customer),
                 customer.get("phone") and f"Tél: {customer['phone']}",
                 customer.get("email"),
                 customer.get("ice") and _tagged("ICE", customer["ice"])):
        if line:
            text(ML, y, line, FONT, 10)
            y -= 15

    # ── Line items table ──────────────────────────────────────────────────────
    def table_header(ty):
        x = ML
        for header, width in zip(TABLE_HEADERS, TABLE_WIDTHS):
            text(x, ty, header, BOLD, 10)
            x += width
        c.setStrokeColor(RULE)
        c.setLineWidth(0.5)
        c.line(ML, ty - 5, ML + sum(TABLE_WIDTHS), ty - 5)
        return ty - 20

    y = table_header(min(y - 20, TABLE_TOP))
    desc_w = TABLE_WIDTHS[0] - 8

    for line in lines:
        desc_lines = simpleSplit(line.designation, FONT, 9, desc_w) or [""]
        row_h = max(ROW_H, len(desc_lines) * DESC_LINE_H + 4)

        if y - row_h < PAGE_BOTTOM:
            footer()
            c.showPage()
            page_num += 1
            y = table_header(H - 60)

        values = [
            None,
            num3(line.quantity),
            fmt_money(line.unit_price_excl_tax, currency),
            fmt_pct(line.discount_pct),
            fmt_money(line.amount_excl_tax, currency),
        ]
        dy = y
        for dline in desc_lines:
            text(ML, dy, dline, FONT, 9)
            dy -= DESC_LINE_H
        x = ML + TABLE_WIDTHS[0]
        for value, width in zip(values[1:], TABLE_WIDTHS[1:]):
            text(x, y, value, FONT, 9)
            x += width
        y -= row_h

    # ── Totals (bottom-right) ─────────────────────────────────────────────────
    rows = [("Total HT", fmt_money(totals["subtotal_excl_tax"], currency), False)]
    discount_pct = document_discount(document)
    if totals["discount_applied"]:
        rows.append((f"Remise ({fmt_pct(discount_pct)})",
                     "-" + fmt_money(totals["discount_applied"], currency), False))
        rows.append(("Net HT", fmt_money(totals["net_excl_tax"], currency), False))
    rows.append((f"TVA ({fmt_pct(document_tax_rate(document))})",
                 fmt_money(totals["tax_applied"], currency), False))
    rows.append(("Total TTC", fmt_money(totals["grand_total"], currency), True))

    y -= 20
    if y - 20 * len(rows) < 50:
        footer()
        c.showPage()
        page_num += 1
        y = H - 60
    for label, value, emphasized in rows:
        size = 12 if emphasized else 11
        text(W - 220, y, label, BOLD, size)
        text(MR, y, value, BOLD if emphasized else FONT, size, align="right")
        y -= 20

    if document.get("notes"):
        y -= 10
        for note_line in simpleSplit(str(document["notes"]), FONT, 9, W - 2 * ML)[:6]:
            if y < 50:
                break
            text(ML, y, note_line, FONT, 9, GRAY)
            y -= 11

    footer()
    c.save()
    return buf.getvalue()


# ═══════════════════════════════════════════════════════════════════════════════
# ZONE OVERLAY (shared by image and PDF backgrounds)
# ═══════════════════════════════════════════════════════════════════════════════

def draw_overlay(c, document: QuoteDocument, lines: List[NormalizedLineItem],
                 totals: DocumentTotals, zones: dict) -> None:
    """Draw quote fields at zone positions, in a fixed order."""
    company = document.get("company") or {}
    customer = document.get("customer") or {}

    def text(x, y, txt, font=FONT, size=10):
        c.setFont(font, size)
        c.setFillColor(BLACK)
        c.drawString(x, y, "" if txt is None else str(txt))

    # Issuer
    z = zones["entreprise"]
    y = z["y"]
    if company.get("name"):
        text(z["x"], y, company["name"], BOLD, 11)
        y -= 13
    for line in (company.get("address"), _city_line(company), company.get("phone")):
        if line:
            text(z["x"], y, line, FONT, 9)
            y -= 11

    # Number, date
    text(zones["numero"]["x"], zones["numero"]["y"], document.get("number", ""), BOLD, 12)
    text(zones["date"]["x"], zones["date"]["y"], fmt_date(document.get("date")), FONT, 10)

    # Customer: name, address, postal/city, phone
    z = zones["client"]
    y = z["y"]
    text(z["x"], y, customer.get("name", ""), BOLD, 11)
    y -= 15
    if customer.get("address"):
        text(z["x"], y, customer["address"], FONT, 10)
        y -= 12
    if _city_line(customer):
        text(z["x"], y, _city_line(customer), FONT, 10)
        y -= 12
    if customer.get("phone"):
        text(z["x"], y, f"Tél: {customer['phone']}", FONT, 10)

    # Line rows
    z = zones["lignes"]
    width = z.get("width") or DEFAULT_TABLE_W
    bottom = z["y"] - z["height"] if z.get("height") else None
    cols = {k: z["x"] + frac * width for k, frac in OVERLAY_COLS.items()}
    desc_w = (OVERLAY_COLS["quantite"] - OVERLAY_COLS["designation"]) * width - 6
    y = z["y"]
    for i, line in enumerate(lines):
        if bottom is not None and y < bottom:
            log.warning("Quote %s: %d line(s) do not fit the table zone and were left out",
                        document.get("number", "?"), len(lines) - i)
            break
        text(cols["designation"], y, _fit(line.designation, FONT, 9, desc_w), FONT, 9)
        text(cols["quantite"], y, num3(line.quantity), FONT, 9)
        text(cols["prix"], y, n_fixed(line.unit_price_excl_tax, 2), FONT, 9)
        text(cols["total"], y, n_fixed(line.amount_excl_tax, 2), FONT, 9)
        y -= OVERLAY_ROW_H

    # Totals: HT, TVA, TTC
    z = zones["totaux"]
    text(z["x"], z["y"], n_fixed(totals["net_excl_tax"], 2), BOLD, 10)
    text(z["x"], z["y"] - 15, n_fixed(totals["tax_applied"], 2), BOLD, 10)
    text(z["x"], z["y"] - 30, n_fixed(totals["grand_total"], 2), BOLD, 12)


# ═══════════════════════════════════════════════════════════════════════════════
# IMAGE BACKGROUND
# ═══════════════════════════════════════════════════════════════════════════════

def _image_page_size(img) -> tuple:
    """Page size in points, honouring the image's DPI (72 when absent)."""
    dpi = img.info.get("dpi") or (72, 72)
    try:
        dx, dy = float(dpi[0]) or 72.0, float(dpi[1]) or 72.0
    except (TypeError, ValueError, IndexError):
        dx = dy = 72.0
    w_px, h_px = img.size
    return w_px * 72.0 / dx, h_px * 72.0 / dy


def render_on_image(asset: BackgroundAsset, document, lines, totals, zones) -> bytes:
    try:
        img = Image.open(io.BytesIO(asset.data))
        img.load()
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise TemplateError(f"Background image unreadable: {e}", stage="template_load") from e

    page_w, page_h = _image_page_size(img)
    try:
        buf = io.BytesIO()
        c = canvas.Canvas(buf, pagesize=(page_w, page_h), invariant=1)
        c.setTitle(f"Devis {document.get('number', '')}")
        c.drawImage(ImageReader(img), 0, 0, width=page_w, height=page_h, mask="auto")
        draw_overlay(c, document, lines, totals, zones)
        c.save()
    except Exception as e:
        raise TemplateError(f"Overlay on image failed: {e}", stage="template_render") from e
    return buf.getvalue()


# ═══════════════════════════════════════════════════════════════════════════════
# PDF BACKGROUND
# ═══════════════════════════════════════════════════════════════════════════════

def _open_background_pdf(data: bytes) -> PdfReader:
    try:
        reader = PdfReader(io.BytesIO(data), strict=False)
        if reader.is_encrypted and not reader.decrypt(""):
            raise TemplateError("Background PDF is password protected", stage="template_load")
        if not reader.pages:
            raise TemplateError("Background PDF has no pages", stage="template_load")
        return reader
    except TemplateError:
        raise
    except Exception as e:
        raise TemplateError(f"Background PDF unreadable: {e}", stage="template_load") from e


def render_on_pdf(asset: BackgroundAsset, document, lines, totals, zones) -> bytes:
    reader = _open_background_pdf(asset.data)
    try:
        box = reader.pages[0].mediabox
        overlay_buf = io.BytesIO()
        c = canvas.Canvas(overlay_buf, pagesize=(float(box.right), float(box.top)), invariant=1)
        draw_overlay(c, document, lines, totals, zones)
        c.save()
        overlay_buf.seek(0)

        writer = PdfWriter()
        writer.append(reader)
        writer.pages[0].merge_page(PdfReader(overlay_buf).pages[0])
        out = io.BytesIO()
        writer.write(out)
    except Exception as e:
        raise TemplateError(f"Overlay on PDF failed: {e}", stage="template_render") from e
    return out.getvalue()


# ═══════════════════════════════════════════════════════════════════════════════
# RENDERER
# ═══════════════════════════════════════════════════════════════════════════════

class QuoteRenderer:
    """Picks the render mode from the background. Zones are read once per render."""

    mime_type = PDF_MIME
    extension = "pdf"

    def __init__(self, zone_store: Optional[ZoneStore] = None):
        self.zone_store = zone_store

    def zones(self) -> dict:
        return self.zone_store.load_zones() if self.zone_store else default_zones()

    def render(self, document: QuoteDocument, lines: List[NormalizedLineItem],
               totals: DocumentTotals, background: Optional[BackgroundAsset] = None) -> bytes:
        if background is None:
            return render_basic(document, lines, totals)
        zones = self.zones()
        if background.is_image:
            log.info("Rendering %s on image background", document.get("number"))
            return render_on_image(background, document, lines, totals, zones)
        if background.is_pdf:
            log.info("Rendering %s on PDF background", document.get("number"))
            return render_on_pdf(background, document, lines, totals, zones)
        raise TemplateError(f"Unrecognized background format: {background.mime_type}",
                            stage="template_load")
