"""Tests for decoupe.forms.zones: persisted overlay zone configuration."""
import json
import logging

import pytest

from decoupe.forms.zones import ZoneStore, ZONES_KEY, DEFAULT_ZONES, default_zones, check_zones


@pytest.fixture
def zones(memory_store):
    return ZoneStore(memory_store)


def _custom():
    cfg = default_zones()
    cfg["numero"] = {"x": 400, "y": 790}
    cfg["lignes"] = {"x": 40, "y": 450, "width": 520, "height": 250}
    return cfg


class TestLoadSave:

    def test_fresh_store_gives_defaults(self, zones):
        assert zones.load_zones() == DEFAULT_ZONES

    def test_round_trip(self, zones):
        cfg = _custom()
        zones.save_zones(cfg)
        assert zones.load_zones() == cfg

    def test_save_replaces_whole_config(self, zones):
        zones.save_zones(_custom())
        zones.save_zones(default_zones())
        assert zones.load_zones()["numero"] == DEFAULT_ZONES["numero"]

    def test_reset(self, zones):
        zones.save_zones(_custom())
        zones.reset()
        assert zones.load_zones() == DEFAULT_ZONES

    def test_defaults_are_copies(self, zones):
        zones.load_zones()["numero"]["x"] = 1
        assert zones.load_zones()["numero"]["x"] == DEFAULT_ZONES["numero"]["x"]

    def test_json_string_value_accepted(self, memory_store, zones):
        memory_store.set(ZONES_KEY, json.dumps(_custom()))
        assert zones.load_zones() == _custom()


class TestCorruption:

    def test_unparseable_json_falls_back(self, memory_store, zones, caplog):
        memory_store.set(ZONES_KEY, "{not json")
        with caplog.at_level(logging.WARNING, logger="decoupe.zones"):
            assert zones.load_zones() == DEFAULT_ZONES
        assert "not valid JSON" in caplog.text

    def test_missing_zone_falls_back(self, memory_store, zones, caplog):
        cfg = _custom()
        del cfg["totaux"]
        memory_store.set(ZONES_KEY, cfg)
        with caplog.at_level(logging.WARNING, logger="decoupe.zones"):
            assert zones.load_zones() == DEFAULT_ZONES
        assert "totaux" in caplog.text

    def test_wrong_type_falls_back(self, memory_store, zones):
        memory_store.set(ZONES_KEY, [1, 2, 3])
        assert zones.load_zones() == DEFAULT_ZONES

    def test_save_rejects_malformed(self, memory_store, zones):
        cfg = _custom()
        cfg["date"] = {"x": "left", "y": 10}
        with pytest.raises(ValueError, match="date"):
            zones.save_zones(cfg)
        assert memory_store.get(ZONES_KEY) is None


class TestCheckZones:

    def test_defaults_valid(self):
        assert check_zones(DEFAULT_ZONES) == []

    def test_negative_width(self):
        cfg = default_zones()
        cfg["lignes"]["width"] = -1
        assert check_zones(cfg) == ["zone 'lignes' width must be a positive number"]

    def test_bool_is_not_numeric(self):
        cfg = default_zones()
        cfg["client"]["x"] = True
        assert check_zones(cfg) == ["zone 'client' needs numeric x"]

    def test_not_a_dict(self):
        assert check_zones("zones") == ["zones must be an object"]
