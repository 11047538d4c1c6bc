"""Quote drafts and the generation history, kept in the key-value store."""

import copy
import logging
from datetime import datetime
from typing import List, Optional

from decoupe.core.store import KeyValueStore

log = logging.getLogger("decoupe.drafts")

DRAFTS_KEY = "quote_drafts"
HISTORY_KEY = "pdf_generation_history"
HISTORY_LIMIT = 50

# Result keys never written to history
_BINARY_KEYS = ("pdf",)


def _list(store: KeyValueStore, key: str) -> list:
    value = store.get(key)
    return value if isinstance(value, list) else []


class DraftBook:
    """Unfinished quotes. Storage failures are logged, not raised."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def all(self) -> List[dict]:
        try:
            return _list(self.store, DRAFTS_KEY)
        except OSError as e:
            log.error("Could not read drafts: %s", e)
            return []

    def get(self, draft_id: str) -> Optional[dict]:
        return next((d for d in self.all() if d.get("id") == draft_id), None)

    def save(self, draft: dict) -> Optional[dict]:
        stamped = dict(draft, saved_at=datetime.now().isoformat())
        drafts = self.all()
        for i, existing in enumerate(drafts):
            if existing.get("id") == draft.get("id"):
                drafts[i] = stamped
                break
        else:
            drafts.append(stamped)
        try:
            self.store.set(DRAFTS_KEY, drafts)
        except (OSError, TypeError, ValueError) as e:
            log.error("Could not save draft %s: %s", draft.get("number", draft.get("id")), e)
            return None
        log.info("Draft saved: %s", draft.get("number", draft.get("id")))
        return stamped

    def delete(self, draft_id: str) -> bool:
        drafts = self.all()
        kept = [d for d in drafts if d.get("id") != draft_id]
        if len(kept) == len(drafts):
            return False
        try:
            self.store.set(DRAFTS_KEY, kept)
        except OSError as e:
            log.error("Could not delete draft %s: %s", draft_id, e)
            return False
        return True


class GenerationHistory:
    """Most recent generation results first, without the PDF bytes."""

    def __init__(self, store: KeyValueStore, limit: int = HISTORY_LIMIT):
        self.store = store
        self.limit = limit

    def all(self) -> List[dict]:
        try:
            return _list(self.store, HISTORY_KEY)
        except OSError as e:
            log.error("Could not read generation history: %s", e)
            return []

    def record(self, result: dict) -> dict:
        entry = {k: copy.deepcopy(v) for k, v in result.items() if k not in _BINARY_KEYS}
        entry["generated_at"] = datetime.now().isoformat()
        history = [entry] + self.all()
        try:
            self.store.set(HISTORY_KEY, history[:self.limit])
        except (OSError, TypeError, ValueError) as e:
            log.error("Could not save generation history: %s", e)
        return entry
