"""
Shared pytest fixtures for the Decoupe Express test suite.

Nothing touches the network or the real data/ folder: DECOUPE_DATA_DIR points
at a tmp directory, the webhook is a StubSession and retry sleeps are no-ops.
"""
import base64
import io
import os
import pytest

import pdfplumber


# ── Temp data directory (per-test isolation) ──────────────────────────────────

@pytest.fixture(autouse=True)
def temp_data_dir(tmp_path, monkeypatch):
    """Redirect DATA_DIR to an isolated tmp directory, webhook unset."""
    data = str(tmp_path / "data")
    os.makedirs(data, exist_ok=True)
    monkeypatch.setenv("DECOUPE_DATA_DIR", data)
    for var in ("DECOUPE_WEBHOOK_URL", "DECOUPE_WEBHOOK_TOKEN", "DECOUPE_ORG_ID",
                "DECOUPE_REMOTE_TIMEOUT", "DECOUPE_REMOTE_ATTEMPTS", "DECOUPE_JSON_LOGS"):
        monkeypatch.delenv(var, raising=False)
    return data


@pytest.fixture
def memory_store():
    from decoupe.core.store import MemoryStore
    return MemoryStore()


# ── Fake HTTP ─────────────────────────────────────────────────────────────────

class StubResponse:
    """Just enough of requests.Response for the remote client."""
    def __init__(self, status_code=200, json_body=None, text="", content=b""):
        self.status_code = status_code
        self._json = json_body
        self.text = text
        self.content = content

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


class StubSession:
    """Replays queued responses (or raises queued exceptions). The last one repeats."""
    def __init__(self, post=None, get=None):
        self.post_queue = list(post or [])
        self.get_queue = list(get or [])
        self.posts = []
        self.gets = []

    @staticmethod
    def _next(queue):
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    def post(self, url, json=None, headers=None, timeout=None):
        self.posts.append({"url": url, "json": json, "headers": headers or {},
                           "timeout": timeout})
        return self._next(self.post_queue)

    def get(self, url, timeout=None):
        self.gets.append({"url": url, "timeout": timeout})
        return self._next(self.get_queue)


@pytest.fixture
def stub_session():
    return StubSession


@pytest.fixture
def stub_response():
    return StubResponse


@pytest.fixture
def sleeps():
    """Records retry waits instead of sleeping."""
    return []


@pytest.fixture
def no_sleep_policy(sleeps):
    from decoupe.agents.quote_service import RetryPolicy

    def make(max_attempts=3):
        return RetryPolicy(max_attempts, sleep=sleeps.append)
    return make


# ── Sample documents ──────────────────────────────────────────────────────────

@pytest.fixture
def sample_company():
    return {
        "name": "DECOUPE EXPRESS",
        "address": "Boulevard Moulay Youssef Parc Industriel",
        "postal_code": "28810",
        "city": "Mohammedia",
        "phone": "05 23 30 58 80",
        "ice": "002741154000000",
        "rc": "27441/14",
        "if": "40208300",
    }


@pytest.fixture
def sample_document(sample_company):
    """Two French-shaped lines, one with stored amounts, 10% global discount."""
    return {
        "id": "devis-42",
        "number": "DEV-202501-042",
        "date": "2025-01-15",
        "valid_until": "2025-02-15",
        "currency": "MAD",
        "customer": {
            "name": "Atelier Benali",
            "address": "12 Rue des Tanneurs",
            "postal_code": "20250",
            "city": "Casablanca",
            "phone": "0661234567",
        },
        "company": sample_company,
        "items": [
            {"designation": "Découpe laser inox 2mm", "mode_facturation": "m2",
             "quantite": "2,5", "prix_unitaire_ht": 400, "remise_pct": 0, "tva_pct": 20},
            {"designation": "Tôle acier 3mm", "mode_facturation": "feuille",
             "quantite": 2, "prix_unitaire_ht": 100, "remise_pct": 10, "tva_pct": 20,
             "montant_ht": 180, "montant_tva": 36, "montant_ttc": 216},
        ],
        "global_discount": 10,
        "tax_rate": 20,
        "payment_terms": "Paiement à 30 jours fin de mois",
    }


@pytest.fixture
def wire_document(sample_company):
    """Same quote in the remote service's item shape."""
    return {
        "id": "devis-43",
        "number": "DEV-202501-043",
        "date": "2025-01-16",
        "currency": "MAD",
        "customer": {"name": "Menuiserie Alami", "city": "Rabat"},
        "company": sample_company,
        "items": [
            {"label": "Pliage", "qty": 4, "unit": "service", "unit_price": 50},
            {"label": "Découpe plasma", "qty": "1.5", "unit": "area", "unit_price": "300",
             "discount": 5},
        ],
        "tax_rate": 20,
    }


# ── Backgrounds ───────────────────────────────────────────────────────────────

def _data_uri(mime, data):
    return f"data:{mime};base64,{base64.b64encode(data).decode()}"


@pytest.fixture
def png_bytes():
    """A4-ish letterhead at 72 dpi: 595 x 842 px, light grey band on top."""
    from PIL import Image, ImageDraw
    img = Image.new("RGB", (595, 842), "white")
    ImageDraw.Draw(img).rectangle([0, 0, 595, 60], fill=(230, 230, 230))
    buf = io.BytesIO()
    img.save(buf, format="PNG", dpi=(72, 72))
    return buf.getvalue()


@pytest.fixture
def png_background_uri(png_bytes):
    return _data_uri("image/png", png_bytes)


@pytest.fixture
def pdf_bytes():
    """Two-page letterhead PDF with a printed header on page 1."""
    from reportlab.lib.pagesizes import A4
    from reportlab.pdfgen import canvas
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setFont("Helvetica-Bold", 14)
    c.drawString(50, 810, "EN-TETE ATELIER")
    c.showPage()
    c.drawString(50, 810, "CONDITIONS GENERALES")
    c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture
def pdf_background_uri(pdf_bytes):
    return _data_uri("application/pdf", pdf_bytes)


# ── PDF inspection ────────────────────────────────────────────────────────────

def _pdf_text(data, page=None):
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        pages = pdf.pages if page is None else [pdf.pages[page]]
        return "\n".join((p.extract_text() or "") for p in pages)


@pytest.fixture
def pdf_text():
    """pdf_text(bytes, page=None) -> extracted text."""
    return _pdf_text


# ── Flask test client ─────────────────────────────────────────────────────────

@pytest.fixture
def generator(memory_store, no_sleep_policy):
    from decoupe.agents.orchestrator import QuoteGenerator
    from decoupe.agents.quote_service import RemoteQuoteService
    service = RemoteQuoteService(url="", session=StubSession(), policy=no_sleep_policy())
    return QuoteGenerator(store=memory_store, service=service)


@pytest.fixture
def app(memory_store, generator):
    from app import create_app
    application = create_app(store=memory_store, generator=generator)
    application.config["TESTING"] = True
    return application


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c
