"""
Template zone configuration.

Zones are the rectangles (PDF points, origin bottom-left) where overlay
text lands on an uploaded background. One configuration per installation,
saved as a whole under ZONES_KEY.
"""

import copy
import json
import logging
from numbers import Real

from decoupe.core.store import KeyValueStore
from decoupe.forms.models import ZONE_NAMES

log = logging.getLogger("decoupe.zones")

ZONES_KEY = "pdf_template_zones"

# Positions measured on the workshop's letterhead
DEFAULT_ZONES = {
    "entreprise": {"x": 50, "y": 750},
    "numero":     {"x": 240, "y": 770},
    "date":       {"x": 240, "y": 750},
    "client":     {"x": 50, "y": 680},
    "lignes":     {"x": 50, "y": 400, "width": 500, "height": 200},
    "totaux":     {"x": 450, "y": 200},
}


def default_zones() -> dict:
    return copy.deepcopy(DEFAULT_ZONES)


def _is_num(v) -> bool:
    return isinstance(v, Real) and not isinstance(v, bool)


def check_zones(zones) -> list:
    """Problems with a zone config; empty list when usable."""
    if not isinstance(zones, dict):
        return ["zones must be an object"]
    problems = []
    for name in ZONE_NAMES:
        zone = zones.get(name)
        if not isinstance(zone, dict):
            problems.append(f"missing zone '{name}'")
            continue
        for key in ("x", "y"):
            if not _is_num(zone.get(key)):
                problems.append(f"zone '{name}' needs numeric {key}")
        for key in ("width", "height"):
            if key in zone and not (_is_num(zone[key]) and zone[key] > 0):
                problems.append(f"zone '{name}' {key} must be a positive number")
    return problems


class ZoneStore:
    def __init__(self, store: KeyValueStore):
        self.store = store

    def load_zones(self) -> dict:
        """Saved zones, or the defaults when nothing usable is saved."""
        saved = self.store.get(ZONES_KEY)
        if saved is None:
            return default_zones()
        if isinstance(saved, str):
            try:
                saved = json.loads(saved)
            except json.JSONDecodeError as e:
                log.warning("Saved template zones are not valid JSON (%s), using defaults", e)
                return default_zones()
        problems = check_zones(saved)
        if problems:
            log.warning("Saved template zones unusable (%s), using defaults", "; ".join(problems))
            return default_zones()
        return saved

    def save_zones(self, zones: dict) -> None:
        """Replace the whole configuration. Raises ValueError on a malformed config."""
        problems = check_zones(zones)
        if problems:
            raise ValueError("; ".join(problems))
        self.store.set(ZONES_KEY, copy.deepcopy(zones))
        log.info("Template zones saved")

    def reset(self) -> None:
        self.store.delete(ZONES_KEY)
