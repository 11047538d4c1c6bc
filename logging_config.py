"""
Structured logging configuration for Decoupe Express.
Import and call setup_logging() once at app startup.
"""
import logging
import logging.handlers
import os
import json
from datetime import datetime, timezone

from decoupe.core.paths import log_dir

# Extra record attributes set by the generation pipeline and remote client
EXTRA_FIELDS = ("quote_number", "tier", "attempt", "duration_ms", "error_type")


def _extras(record) -> dict:
    return {key: getattr(record, key) for key in EXTRA_FIELDS if hasattr(record, key)}


class JSONFormatter(logging.Formatter):
    """Structured JSON log lines for machine parsing."""
    def format(self, record):
        entry = {
            "ts": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "module": record.module,
            "func": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(_extras(record))
        return json.dumps(entry, default=str, ensure_ascii=False)


class HumanFormatter(logging.Formatter):
    """Readable console format with color."""
    COLORS = {
        "DEBUG": "\033[36m", "INFO": "\033[32m",
        "WARNING": "\033[33m", "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record):
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now().strftime("%H:%M:%S")
        line = f"{color}{ts} [{record.levelname[0]}] {record.name}: {record.getMessage()}"
        extras = _extras(record)
        if extras:
            line += " (" + " ".join(f"{k}={v}" for k, v in extras.items()) + ")"
        line += self.RESET
        if record.exc_info and record.exc_info[0]:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(level=None, json_logs=None):
    """
    Configure logging for the full application.

    Args:
        level: Override log level (default: from LOG_LEVEL env or INFO)
        json_logs: Force JSON format (default: True when DECOUPE_JSON_LOGS is set)
    """
    if level is None:
        level = os.environ.get("LOG_LEVEL", "INFO").upper()
    if json_logs is None:
        json_logs = bool(os.environ.get("DECOUPE_JSON_LOGS"))

    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    root.handlers.clear()

    # Console handler
    console = logging.StreamHandler()
    console.setFormatter(JSONFormatter() if json_logs else HumanFormatter())
    root.addHandler(console)

    # File handler - rotates at 5MB, keeps 5 backups
    try:
        logs = log_dir()
        os.makedirs(logs, exist_ok=True)
        fh = logging.handlers.RotatingFileHandler(
            os.path.join(logs, "decoupe.log"),
            maxBytes=5_000_000, backupCount=5, encoding="utf-8",
        )
        fh.setFormatter(JSONFormatter())
        root.addHandler(fh)
    except OSError as e:
        logging.getLogger("decoupe").warning("File logging disabled: %s", e)

    # Quiet noisy libs
    for name in ("urllib3", "werkzeug", "PIL", "reportlab", "pypdf"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("decoupe").info("Logging initialized (level=%s, json=%s)", level, json_logs)
    return root
