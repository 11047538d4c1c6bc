"""
settings.py - Centralized runtime settings for Decoupe Express

Single source of truth for everything read from the environment.

Env vars:
  DECOUPE_WEBHOOK_URL      - Remote quote generation endpoint (empty = local only)
  DECOUPE_WEBHOOK_TOKEN    - Optional bearer token for the endpoint
  DECOUPE_ORG_ID           - Organisation id sent with every request
  DECOUPE_REMOTE_TIMEOUT   - Per-attempt timeout in seconds (default 30)
  DECOUPE_REMOTE_ATTEMPTS  - Attempts before falling back (default 3)
  SECRET_KEY               - Flask session key

Security:
  - Sensitive values are never logged in full (masked)
  - validate_all() reports which settings are set, not their values
"""

import os
import logging

log = logging.getLogger("decoupe.settings")

# ─── Setting Definitions ────────────────────────────────────────────────────

_REGISTRY = {
    "webhook_url": {
        "env": "DECOUPE_WEBHOOK_URL",
        "required": False,
        "desc": "Remote quote generation webhook",
        "default": "",
    },
    "webhook_token": {
        "env": "DECOUPE_WEBHOOK_TOKEN",
        "required": False,
        "desc": "Bearer token for the generation webhook",
        "sensitive": True,
    },
    "org_id": {
        "env": "DECOUPE_ORG_ID",
        "required": False,
        "desc": "Organisation id sent with generation requests",
        "default": "default",
    },
    "remote_timeout": {
        "env": "DECOUPE_REMOTE_TIMEOUT",
        "required": False,
        "desc": "Per-attempt timeout for the generation webhook (seconds)",
        "default": "30",
    },
    "remote_attempts": {
        "env": "DECOUPE_REMOTE_ATTEMPTS",
        "required": False,
        "desc": "Attempts against the webhook before local fallback",
        "default": "3",
    },
    "secret_key": {
        "env": "SECRET_KEY",
        "required": False,
        "desc": "Flask secret key",
        "default": "decoupe-express-dev",
        "sensitive": True,
    },
}


# ─── Public API ──────────────────────────────────────────────────────────────

def get_setting(name: str) -> str:
    """Get a setting by registry name. Returns empty string if not set."""
    entry = _REGISTRY.get(name)
    if not entry:
        log.warning("Unknown setting requested: %s", name)
        return ""

    val = os.environ.get(entry["env"], "")
    if not val and "default" in entry:
        val = entry["default"]
    return val


def get_int(name: str) -> int:
    """Integer setting; falls back to the registry default on garbage input."""
    raw = get_setting(name)
    try:
        return int(raw)
    except (TypeError, ValueError):
        default = _REGISTRY.get(name, {}).get("default", "0")
        log.warning("Setting %s=%r is not an integer, using %s", name, raw, default)
        return int(default)


def mask(value: str) -> str:
    """Mask a secret for safe logging. Shows first 8 chars."""
    if not value:
        return "(not set)"
    if len(value) <= 12:
        return value[:4] + "****"
    return value[:8] + "****" + f"({len(value)} chars)"


def validate_all() -> dict:
    """Validate all settings. Returns status report."""
    results = {}
    warnings = []
    for name, entry in _REGISTRY.items():
        val = get_setting(name)
        is_set = bool(val)
        results[name] = {
            "set": is_set,
            "env": entry["env"],
            "desc": entry["desc"],
            "value": ("set" if is_set else "not set") if entry.get("sensitive") else val,
            "required": entry.get("required", False),
        }
        if entry.get("required") and not is_set:
            warnings.append(f"REQUIRED setting missing: {entry['env']} ({entry['desc']})")

    return {
        "settings": results,
        "total": len(results),
        "set": sum(1 for r in results.values() if r["set"]),
        "missing": sum(1 for r in results.values() if not r["set"]),
        "warnings": warnings,
    }


def startup_check() -> dict:
    """Run on startup. Logs warnings for missing settings."""
    report = validate_all()
    log.info("Settings: %d/%d configured", report["set"], report["total"])
    for w in report["warnings"]:
        log.warning("SETTING: %s", w)
    if not get_setting("webhook_url"):
        log.info("No DECOUPE_WEBHOOK_URL, quotes will be rendered locally")
    return report
