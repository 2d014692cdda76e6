"""
Tests for 112 alert parsing.
Pure text processing, no dataset or network required.
"""

from __future__ import annotations

from firemap_geo.alerts import (
    detect_warning_type,
    extract_hashtags,
    extract_regional_context,
    filter_regional_units,
    is_activation,
    is_greek,
    parse_alert,
)
from firemap_geo.models import WarningType

GREEK_ALERT = (
    "⚠️ Ενεργοποίηση 112 Δασική πυρκαγιά στην περιοχή #Βαρνάβας της Περιφερειακής "
    "Ενότητας #Ανατολικής_Αττικής ‼️ Αν βρίσκεστε στην περιοχή απομακρυνθείτε μέσω "
    "#Καπανδριτίου προς #Μαραθώνα ‼️"
)

ENGLISH_ALERT = (
    "⚠️ Activation 112 Wildfire in #Varnavas of the regional unit of #East_Attica ‼️ "
    "If you are in the area move away via #Kapandriti to #Marathonas ‼️"
)


class TestGreekAlert:
    def test_roles(self):
        parsed = parse_alert(GREEK_ALERT)
        assert parsed.danger_zones == ["Βαρνάβας"]
        assert parsed.route_locations == ["Καπανδριτίου"]
        assert parsed.safe_zones == ["Μαραθώνα"]
        # the fire location moved to the danger zones
        assert parsed.fire_locations == []

    def test_metadata(self):
        parsed = parse_alert(GREEK_ALERT)
        assert parsed.regional_context == "Ανατολικής Αττικής"
        assert parsed.language == "el"
        assert parsed.is_activation is True
        assert parsed.warning_type is WarningType.WILDFIRE
        assert parsed.primary_locations == ["Βαρνάβας"]

    def test_named_danger_zone(self):
        parsed = parse_alert(
            "Αν βρίσκεστε στον #Άγιο_Στέφανο απομακρυνθείτε προς #Κηφισιά ‼️"
        )
        assert parsed.danger_zones == ["Άγιο Στέφανο"]
        assert parsed.safe_zones == ["Κηφισιά"]
        assert parsed.route_locations == []

    def test_several_safe_zones(self):
        parsed = parse_alert(
            "Αν βρίσκεστε στην περιοχή #Ντράφι απομακρυνθείτε προς #Μαραθώνα και #Νέα_Μάκρη ‼️"
        )
        assert parsed.danger_zones == ["Ντράφι"]
        assert parsed.safe_zones == ["Μαραθώνα", "Νέα Μάκρη"]

    def test_fire_without_evacuation(self):
        parsed = parse_alert("Πυρκαγιά σε εξέλιξη στο #Ξυλόκαστρο #Κορινθίας")
        assert parsed.fire_locations == ["Ξυλόκαστρο"]
        assert parsed.danger_zones == []
        assert parsed.regional_context == "Κορινθίας"


class TestEnglishAlert:
    def test_roles(self):
        parsed = parse_alert(ENGLISH_ALERT)
        assert parsed.danger_zones == ["Varnavas"]
        assert parsed.route_locations == ["Kapandriti"]
        assert parsed.safe_zones == ["Marathonas"]

    def test_metadata(self):
        parsed = parse_alert(ENGLISH_ALERT)
        assert parsed.regional_context == "East Attica"
        assert parsed.language == "en"
        assert parsed.is_activation is True
        assert parsed.warning_type is WarningType.WILDFIRE


class TestHashtagFallback:
    def test_every_location_hashtag_is_a_danger_zone(self):
        parsed = parse_alert("Ενεργοποίηση #112 #Πεντέλη #Ντράφι #Ανατολικής_Αττικής")
        assert parsed.danger_zones == ["Πεντέλη", "Ντράφι"]
        assert parsed.safe_zones == []
        assert parsed.warning_type is WarningType.EMERGENCY

    def test_no_hashtags(self):
        parsed = parse_alert("Μείνετε σε εσωτερικούς χώρους")
        assert parsed.primary_locations == []
        assert parsed.regional_context is None


class TestHelpers:
    def test_extract_hashtags(self):
        assert extract_hashtags("#φωτιά #Πεντέλη #Fire #Π #Πεντέλη #Νέα_Μάκρη") == ["Πεντέλη", "Νέα Μάκρη"]
        assert extract_hashtags("") == []

    def test_regional_context_patterns(self):
        assert extract_regional_context("στην Περιφερειακής Ενότητας #Εύβοιας") == "Εύβοιας"
        assert extract_regional_context("Fire in #Limni regional unit of #Evia") == "Evia"
        assert extract_regional_context("#Πεντέλη") is None

    def test_filter_regional_units(self):
        assert filter_regional_units(["Βαρνάβας", "Ανατολικής Αττικής", "Φθιώτιδας"]) == ["Βαρνάβας"]

    def test_language(self):
        assert is_greek("Πυρκαγιά")
        assert not is_greek("Wildfire in #Varnavas")
        assert not is_greek("")

    def test_activation(self):
        assert is_activation("ACTIVATION 112 Wildfire")
        assert not is_activation("Wildfire in #Varnavas")

    def test_activation_keycap_emoji(self):
        text = "⚠️ Ενεργοποίηση 1\ufe0f\u20e31\ufe0f\u20e32\ufe0f\u20e3 #Πεντέλη"
        assert is_activation(text)
        assert is_activation("Activation 1\u20e31\u20e32\u20e3 #Penteli")
        assert parse_alert(text).is_activation is True

    def test_warning_types(self):
        assert detect_warning_type("Flood warning for #Volos") is WarningType.FLOOD
        assert detect_warning_type("Καπνός στην περιοχή") is WarningType.SMOKE
        assert detect_warning_type("Εκκένωση οικισμού") is WarningType.EVACUATION
        assert detect_warning_type("πυρκαγιά και εκκένωση") is WarningType.WILDFIRE
        assert detect_warning_type("Μείνετε σπίτι") is WarningType.EMERGENCY
