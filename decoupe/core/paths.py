"""
decoupe/core/paths.py - Centralized Path Configuration

Single source of truth for the directories the application writes to.
Every module imports from here instead of computing its own DATA_DIR.

Priority: DECOUPE_DATA_DIR env → git-tracked data/ folder.
"""

import os
import logging

log = logging.getLogger("decoupe.paths")

# ── Project Root ──────────────────────────────────────────────────────────────
_THIS_FILE = os.path.abspath(__file__)
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(_THIS_FILE)))

_GIT_DATA_DIR = os.path.join(PROJECT_ROOT, "data")


def resolve_data_dir() -> str:
    """Find the data directory. Re-read on every call so tests can redirect it."""
    env_dir = os.environ.get("DECOUPE_DATA_DIR", "")
    if env_dir:
        os.makedirs(env_dir, exist_ok=True)
        return env_dir
    os.makedirs(_GIT_DATA_DIR, exist_ok=True)
    return _GIT_DATA_DIR


def settings_path() -> str:
    """Key-value store file (zones, background, company profile, drafts, history)."""
    return os.path.join(resolve_data_dir(), "settings.json")


def log_dir() -> str:
    return os.path.join(resolve_data_dir(), "logs")


def validate_paths() -> dict:
    """Runtime validation, call at app startup to catch path issues early.

    Returns:
        {"ok": bool, "errors": [str], "resolved": {name: path}}
    """
    data_dir = resolve_data_dir()
    result = {"ok": True, "errors": [], "resolved": {
        "PROJECT_ROOT": PROJECT_ROOT,
        "DATA_DIR": data_dir,
        "SETTINGS_PATH": settings_path(),
    }}

    test_file = os.path.join(data_dir, ".write_test")
    try:
        with open(test_file, "w") as f:
            f.write("ok")
        os.remove(test_file)
    except OSError as e:
        result["errors"].append(f"DATA_DIR not writable: {e}")
        result["ok"] = False

    if result["ok"]:
        log.info("DATA_DIR: %s", data_dir)
    else:
        log.warning("Path validation failed: %s", "; ".join(result["errors"]))
    return result
