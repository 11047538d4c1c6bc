"""
orchestrator.py - LangGraph quote generation pipeline for Decoupe Express
Version: 1.0.0

    validate → prepare → remote → template → basic → END

Each renderer tier is an object with a name and render(job). A tier returns
{"pdf": bytes, ...} on success, None to step aside (no webhook configured,
no background uploaded), or raises a QuoteGenerationError. A failed or
skipped tier hands over to the next one; the first PDF ends the run.

Only two things end a run without a PDF:
  - validation_error → before any network call or rendering
  - render_error     → the basic layout itself failed, nothing left to try

The remote webhook is an optimisation, never a hard dependency: timeouts and
network errors are recorded in `fallbacks` and the quote is drawn locally.
"""

import logging
import re
import threading
import time
from datetime import datetime
from typing import Any, Callable, List, Optional, TypedDict

from langgraph.graph import END, StateGraph

from decoupe.agents.drafts import GenerationHistory
from decoupe.agents.quote_service import RemoteQuoteService
from decoupe.core.store import KeyValueStore
from decoupe.forms.background import BackgroundAsset, BackgroundLibrary
from decoupe.forms.errors import QuoteGenerationError, RemoteServiceError, RenderError
from decoupe.forms.models import QuoteDocument
from decoupe.forms.normalize import normalize
from decoupe.forms.quote_renderer import PDF_MIME, QuoteRenderer, count_pages
from decoupe.forms.totals import calculate_totals, reconcile
from decoupe.forms.validation import summarize, validate
from decoupe.forms.zones import ZoneStore

log = logging.getLogger("decoupe.orchestrator")


# ─── Pipeline State ──────────────────────────────────────────────────────────

class GenerationJob(TypedDict, total=False):
    """State carried through the generation graph."""
    document: QuoteDocument
    template_id: Optional[str]
    background: Any              # BackgroundAsset | data URI | None
    validation_errors: list
    lines: list
    totals: dict
    tier: str
    pdf: bytes
    pdf_url: str
    last_error: dict
    error: dict                  # terminal failure only
    fallbacks: list
    steps_completed: list
    started_at: str


def _step(state: dict, name: str) -> dict:
    steps = state.get("steps_completed", [])
    steps.append({"step": name, "timestamp": datetime.now().isoformat()})
    state["steps_completed"] = steps
    return state


def safe_file_name(number: str, extension: str = "pdf") -> str:
    safe = re.sub(r"[^\w.-]", "_", str(number or "").strip()) or "devis"
    return f"{safe}.{extension}"


# ═════════════════════════════════════════════════════════════════════════════
# RENDERER TIERS
# ═════════════════════════════════════════════════════════════════════════════

class RemoteTier:
    """Webhook generation, then download of the uploaded PDF."""
    name = "remote"

    def __init__(self, service: RemoteQuoteService):
        self.service = service

    def render(self, job: GenerationJob) -> Optional[dict]:
        if not self.service.configured:
            return None
        body = self.service.generate(job["document"], job.get("template_id"))
        quote = body.get("quote") or {}
        pdf_url = quote.get("pdf_url") or (body.get("upload") or {}).get("url")
        if not pdf_url:
            raise RemoteServiceError("Generation service returned no pdf_url",
                                     stage="response_parse")
        return {"pdf": self.service.download(pdf_url), "pdf_url": pdf_url}


class TemplateTier:
    """Zone overlay on the request's background, or the saved one."""
    name = "template"

    def __init__(self, renderer: QuoteRenderer, library: Optional[BackgroundLibrary] = None):
        self.renderer = renderer
        self.library = library

    def _background(self, job: GenerationJob) -> Optional[BackgroundAsset]:
        bg = job.get("background")
        if isinstance(bg, str):
            return BackgroundAsset.from_data_uri(bg)
        if bg is None and self.library is not None:
            return self.library.load()
        return bg

    def render(self, job: GenerationJob) -> Optional[dict]:
        background = self._background(job)
        if background is None:
            return None
        return {"pdf": self.renderer.render(job["document"], job["lines"], job["totals"],
                                            background)}


class BasicTier:
    """Fixed A4 layout. Last resort: its failure is the run's failure."""
    name = "basic"

    def __init__(self, renderer: QuoteRenderer):
        self.renderer = renderer

    def render(self, job: GenerationJob) -> Optional[dict]:
        return {"pdf": self.renderer.render(job["document"], job["lines"], job["totals"])}


# ═════════════════════════════════════════════════════════════════════════════
# GENERATOR
# ═════════════════════════════════════════════════════════════════════════════

class QuoteGenerator:
    def __init__(self, store: Optional[KeyValueStore] = None,
                 service: Optional[RemoteQuoteService] = None,
                 renderer: Optional[QuoteRenderer] = None,
                 tiers: Optional[List] = None,
                 recorder: Optional[Callable[[str, str], None]] = None,
                 history: Optional[GenerationHistory] = None):
        self.renderer = renderer or QuoteRenderer(ZoneStore(store) if store else None)
        self.service = service or RemoteQuoteService()
        self.tiers = tiers or [
            RemoteTier(self.service),
            TemplateTier(self.renderer, BackgroundLibrary(store) if store else None),
            BasicTier(self.renderer),
        ]
        self.recorder = recorder
        self.history = history if history is not None else (
            GenerationHistory(store) if store else None)
        self._record_threads: List[threading.Thread] = []
        self._app = self.build_graph().compile()

    # ── Nodes ────────────────────────────────────────────────────────────────

    def _validate_node(self, state: GenerationJob) -> GenerationJob:
        state["started_at"] = datetime.now().isoformat()
        errors = validate(state.get("document") or {})
        if errors:
            state["validation_errors"] = errors
            state["error"] = {"error_type": "validation_error", "error": summarize(errors),
                              "stage": "client_validation"}
            return _step(state, "validate:failed")
        return _step(state, "validate")

    def _prepare_node(self, state: GenerationJob) -> GenerationJob:
        document = state["document"]
        state["lines"] = normalize(document.get("items"))
        state["totals"] = calculate_totals(document)
        reconcile(document, state["lines"], state["totals"])
        return _step(state, "prepare")

    def _tier_node(self, tier) -> Callable[[GenerationJob], GenerationJob]:
        def node(state: GenerationJob) -> GenerationJob:
            number = state["document"].get("number")
            try:
                out = tier.render(state)
            except QuoteGenerationError as e:
                return self._fallback(state, tier, e)
            except Exception as e:
                log.exception("Tier %s crashed on %s", tier.name, number)
                return self._fallback(state, tier,
                                      RenderError(f"{type(e).__name__}: {e}", stage=tier.name))
            if out is None:
                log.debug("Tier %s skipped for %s", tier.name, number)
                return _step(state, f"{tier.name}:skipped")
            state["tier"] = tier.name
            state["pdf"] = out["pdf"]
            if out.get("pdf_url"):
                state["pdf_url"] = out["pdf_url"]
            return _step(state, tier.name)
        return node

    def _fallback(self, state: GenerationJob, tier, error: QuoteGenerationError) -> GenerationJob:
        detail = error.as_dict()
        state["fallbacks"].append(dict(detail, tier=tier.name))
        state["last_error"] = detail
        log.info("Tier %s failed for %s (%s: %s), falling back",
                 tier.name, state["document"].get("number"), error.category, error.message,
                 extra={"tier": tier.name, "error_type": error.category,
                        "quote_number": state["document"].get("number")})
        return _step(state, f"{tier.name}:failed")

    @staticmethod
    def _should_continue(state: GenerationJob) -> str:
        return END if state.get("error") else "next"

    @staticmethod
    def _after_tier(state: GenerationJob) -> str:
        return END if state.get("pdf") else "next"

    def build_graph(self) -> StateGraph:
        graph = StateGraph(GenerationJob)
        graph.add_node("validate", self._validate_node)
        graph.add_node("prepare", self._prepare_node)
        names = [t.name for t in self.tiers]
        for tier in self.tiers:
            graph.add_node(tier.name, self._tier_node(tier))

        graph.set_entry_point("validate")
        graph.add_conditional_edges("validate", self._should_continue,
                                    {"next": "prepare", END: END})
        graph.add_edge("prepare", names[0])
        for i, name in enumerate(names):
            nxt = names[i + 1] if i + 1 < len(names) else END
            graph.add_conditional_edges(name, self._after_tier, {"next": nxt, END: END})
        return graph

    # ── Public API ───────────────────────────────────────────────────────────

    def generate(self, document: QuoteDocument, template_id: Optional[str] = None,
                 background=None) -> dict:
        """Run the pipeline. Always returns a result dict, never raises."""
        t0 = time.monotonic()
        state = self._app.invoke({
            "document": document or {},
            "template_id": template_id,
            "background": background,
            "fallbacks": [],
            "steps_completed": [],
        })
        result = self._result(state)
        duration_ms = int((time.monotonic() - t0) * 1000)
        number = (document or {}).get("number")

        if result["ok"]:
            log.info("Quote %s generated by %s tier (%d bytes, %d ms)",
                     number, result["tier"], result["file_size"], duration_ms,
                     extra={"quote_number": number, "tier": result["tier"],
                            "duration_ms": duration_ms})
            if result.get("pdf_url"):
                self._record_remote(document, result["pdf_url"])
        elif result["error_type"] == "validation_error":
            log.info("Quote %s rejected: %s", number, result["error"],
                     extra={"quote_number": number, "error_type": "validation_error"})
        else:
            log.error("Quote %s could not be generated: %s", number, result["error"],
                      extra={"quote_number": number, "error_type": result["error_type"],
                             "duration_ms": duration_ms})

        if self.history is not None:
            self.history.record(dict(result, quote_number=number))
        return result

    def _result(self, state: GenerationJob) -> dict:
        fallbacks = state.get("fallbacks", [])
        if state.get("pdf"):
            pdf = state["pdf"]
            result = {
                "ok": True,
                "tier": state["tier"],
                "pdf": pdf,
                "mime_type": PDF_MIME,
                "file_name": safe_file_name(state["document"].get("number")),
                "file_size": len(pdf),
                "pages": count_pages(pdf),
                "totals": state.get("totals"),
                "fallbacks": fallbacks,
            }
            if state.get("pdf_url"):
                result["pdf_url"] = state["pdf_url"]
            return result

        error = state.get("error") or state.get("last_error") or {
            "error_type": "render_error", "error": "No renderer produced a document",
            "stage": "final"}
        result = {"ok": False, **error, "fallbacks": fallbacks}
        if state.get("validation_errors"):
            result["validation_errors"] = state["validation_errors"]
        return result

    # ── Remote side effect ───────────────────────────────────────────────────

    def _record_remote(self, document: QuoteDocument, pdf_url: str) -> None:
        """Hand the PDF URL to the recorder without waiting for it."""
        if self.recorder is None or not document.get("id"):
            return
        devis_id = document["id"]

        def run():
            try:
                self.recorder(devis_id, pdf_url)
                log.info("PDF URL recorded for devis %s", devis_id)
            except Exception as e:
                log.warning("Could not record PDF URL for devis %s: %s", devis_id, e)

        t = threading.Thread(target=run, name=f"record-pdf-{devis_id}", daemon=True)
        t.start()
        self._record_threads = [r for r in self._record_threads if r.is_alive()]
        self._record_threads.append(t)

    def wait_for_recorders(self, timeout: float = 5.0) -> None:
        for t in self._record_threads:
            t.join(timeout)
        self._record_threads = [t for t in self._record_threads if t.is_alive()]
