"""
Tests for the region and regional-unit tables.
"""

from __future__ import annotations

from firemap_geo.regions import (
    REGIONS,
    find_region,
    find_regional_unit,
    is_regional_unit,
    region_matches,
    regional_unit_variants,
)
from firemap_geo.spatial import clamp_to_greece, haversine_km, in_greece


class TestFindRegion:
    def test_thirteen_regions(self):
        assert len(REGIONS) == 13

    def test_english_and_greek_names(self):
        assert find_region("Crete").key == "crete"
        assert find_region("Περιφέρεια Κρήτης").key == "crete"
        assert find_region("ΠΕΡΙΦΕΡΕΙΑ ΔΥΤΙΚΗΣ ΕΛΛΑΔΑΣ").key == "western_greece"
        assert find_region("Region of Western Greece").key == "western_greece"

    def test_longest_name_wins(self):
        assert find_region("Περιφέρεια Δυτικής Μακεδονίας").key == "western_macedonia"
        assert find_region("Περιφέρεια Κεντρικής Μακεδονίας").key == "central_macedonia"

    def test_unknown(self):
        assert find_region("Atlantis") is None
        assert find_region("") is None

    def test_centres_inside_greece(self):
        for region in REGIONS.values():
            assert in_greece(region.latitude, region.longitude), region.key


class TestRegionMatches:
    def test_bilingual_match(self):
        assert region_matches("Crete", "Περιφέρεια Κρήτης")
        assert region_matches("Western Greece", "Περιφέρεια Δυτικής Ελλάδας")

    def test_different_regions(self):
        assert not region_matches("Crete", "Περιφέρεια Αττικής")

    def test_substring_match_for_unknown_names(self):
        assert region_matches("Λέσβου", "Περιφερειακή Ενότητα Λέσβου")

    def test_empty_never_matches(self):
        assert not region_matches("", "Περιφέρεια Αττικής")
        assert not region_matches("Crete", "")
        assert not region_matches(None, None)


class TestRegionalUnits:
    def test_lookup_by_any_spelling(self):
        unit = find_regional_unit("Ανατολικής_Αττικής")
        assert unit is not None
        assert unit.name == "East Attica"
        assert unit.region == "attica"
        assert find_regional_unit("#Evia").name == "Euboea"

    def test_is_regional_unit(self):
        assert is_regional_unit("Φθιώτιδας")
        assert is_regional_unit("Περιφερειακή Ενότητα Αχαΐας")
        assert not is_regional_unit("Βαρνάβας")

    def test_variants_start_with_given_name(self):
        variants = regional_unit_variants("Ανατολικής_Αττικής")
        assert variants[0] == "Ανατολικής Αττικής"
        assert "East Attica" in variants
        assert "Ανατολική Αττική" in variants

    def test_unknown_name_comes_back_alone(self):
        assert regional_unit_variants("Βαρνάβας") == ["Βαρνάβας"]
        assert regional_unit_variants("") == []


class TestSpatial:
    def test_bounding_box(self):
        assert in_greece(38.2466, 21.7359)
        assert not in_greece(48.85, 2.35)
        assert not in_greece(None, 23.7)

    def test_clamp(self):
        assert clamp_to_greece(43.0, 18.0) == (42.0, 19.0)
        assert clamp_to_greece(38.0, 23.0) == (38.0, 23.0)

    def test_haversine(self):
        assert haversine_km(38.2466, 21.7359, 38.2466, 21.7359) == 0.0
        # Athens to Patras is roughly 180 km as the crow flies
        assert 170 < haversine_km(37.9838, 23.7275, 38.2466, 21.7359) < 185
