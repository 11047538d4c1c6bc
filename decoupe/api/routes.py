"""
Quote generation API.

Routes:
    POST   /api/quotes/generate     - PDF attachment, or JSON failure (422 / 502)
    POST   /api/quotes/validate     - field-level validation errors
    POST   /api/quotes/totals       - recomputed totals
    GET    /api/quotes/history      - recent generation results
    GET    /api/template/zones      - current overlay zones
    PUT    /api/template/zones      - replace overlay zones
    PUT    /api/template/background - upload letterhead (data URI)
    DELETE /api/template/background - remove letterhead
    GET    /api/remote/health       - webhook reachability
"""

import io
import logging

from flask import Blueprint, current_app, jsonify, request, send_file

from decoupe.agents.drafts import GenerationHistory
from decoupe.forms.background import BackgroundLibrary
from decoupe.forms.convert import load_company, with_issuer
from decoupe.forms.errors import TemplateError
from decoupe.forms.totals import calculate_totals
from decoupe.forms.validation import validate
from decoupe.forms.zones import ZoneStore

log = logging.getLogger("decoupe.api")

bp = Blueprint("decoupe", __name__)

# Request keys that are not part of the document itself
_REQUEST_KEYS = ("template_id", "background")


def _ctx() -> dict:
    return current_app.extensions["decoupe"]


def _document(data: dict) -> dict:
    """The posted document, with the issuer block filled from the company profile."""
    if not isinstance(data, dict):
        data = {}
    doc = data.get("document")
    if not isinstance(doc, dict):
        doc = {k: v for k, v in data.items() if k not in _REQUEST_KEYS}
    return with_issuer(doc, load_company(_ctx()["store"]))


# ─── Quotes ──────────────────────────────────────────────────────────────────

@bp.route("/api/quotes/generate", methods=["POST"])
def api_generate():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"ok": False, "error": "JSON body required"}), 400
    result = _ctx()["generator"].generate(
        _document(data),
        template_id=data.get("template_id"),
        background=data.get("background"),
    )
    if not result["ok"]:
        status = 422 if result["error_type"] == "validation_error" else 502
        return jsonify(result), status

    resp = send_file(
        io.BytesIO(result["pdf"]),
        mimetype=result["mime_type"],
        as_attachment=True,
        download_name=result["file_name"],
    )
    resp.headers["X-Quote-Tier"] = result["tier"]
    resp.headers["X-Quote-Pages"] = str(result["pages"])
    if result.get("pdf_url"):
        resp.headers["X-Quote-Url"] = result["pdf_url"]
    return resp


@bp.route("/api/quotes/validate", methods=["POST"])
def api_validate():
    data = request.get_json(silent=True)
    errors = validate(_document(data))
    return jsonify({"ok": not errors, "errors": errors})


@bp.route("/api/quotes/totals", methods=["POST"])
def api_totals():
    data = request.get_json(silent=True)
    return jsonify({"ok": True, "totals": calculate_totals(_document(data))})


@bp.route("/api/quotes/history")
def api_history():
    return jsonify(GenerationHistory(_ctx()["store"]).all())


# ─── Template ────────────────────────────────────────────────────────────────

@bp.route("/api/template/zones", methods=["GET"])
def api_zones_get():
    return jsonify(ZoneStore(_ctx()["store"]).load_zones())


@bp.route("/api/template/zones", methods=["PUT"])
def api_zones_put():
    zones = request.get_json(silent=True)
    try:
        ZoneStore(_ctx()["store"]).save_zones(zones)
    except ValueError as e:
        return jsonify({"ok": False, "error": str(e)}), 400
    return jsonify({"ok": True, "zones": zones})


@bp.route("/api/template/background", methods=["PUT"])
def api_background_put():
    data = request.get_json(silent=True) or {}
    try:
        asset = BackgroundLibrary(_ctx()["store"]).save(data.get("data_uri", ""),
                                                        data.get("name", ""))
    except TemplateError as e:
        return jsonify({"ok": False, **e.as_dict()}), 400
    return jsonify({"ok": True, "mime_type": asset.mime_type, "size": len(asset.data),
                    "name": asset.name})


@bp.route("/api/template/background", methods=["DELETE"])
def api_background_delete():
    BackgroundLibrary(_ctx()["store"]).clear()
    return jsonify({"ok": True})


# ─── Remote ──────────────────────────────────────────────────────────────────

@bp.route("/api/remote/health")
def api_remote_health():
    service = _ctx()["generator"].service
    return jsonify({
        "ok": True,
        "configured": service.configured,
        "reachable": service.test_connection(),
    })
