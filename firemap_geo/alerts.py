"""
Location extraction from 112 emergency alert text.

A typical Greek activation reads:

    ⚠️ Ενεργοποίηση 1⃣1⃣2⃣ Δασική πυρκαγιά στην περιοχή #Βαρνάβας της
    Περιφερειακής Ενότητας #Ανατολικής_Αττικής ‼️ Αν βρίσκεστε στην περιοχή
    απομακρυνθείτε μέσω #Καπανδριτίου προς #Μαραθώνα ‼️

Place names only ever appear as hashtags. The sentence they sit in tells us
their role: where the fire is, who must leave, which road to take and where
to go. Hashtags naming the regional unit are context, not targets.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from firemap_geo.models import AlertLocations, WarningType
from firemap_geo.regions import is_regional_unit

logger = logging.getLogger(__name__)

NON_LOCATION_HASHTAGS = {
    "112", "fire", "wildfire", "emergency", "evacuation", "alert", "warning",
    "φωτιά", "εκκένωση", "κίνδυνος", "προειδοποίηση", "δασική", "πυρκαγιά",
}

_HASHTAG_RE = re.compile(r"#(\w+)")
_GREEK_CHAR_RE = re.compile(r"[Ͱ-Ͽἀ-῿]")

# Sentence terminators seen in alerts: emoji markers, line breaks, end of text
_END = r"(?=\s*(?:‼|⚠|\n|$))"

_VARIATION_SELECTOR = "\ufe0f"

_ACTIVATION_MARKERS = (
    "activation 112", "ενεργοποίηση 112",
    "activation 1⃣1⃣2⃣", "ενεργοποίηση 1⃣1⃣2⃣",
)

# (warning type, lower-case keywords), first match wins
_WARNING_KEYWORDS: tuple[tuple[WarningType, tuple[str, ...]], ...] = (
    (WarningType.WILDFIRE, ("wildfire", "wild fire", "πυρκαγιά", "πυρκαγιάς", "φωτιά")),
    (WarningType.EVACUATION, ("evacuation", "evacuate", "εκκένωση", "εκκενώστε",
                              "εκκενώσετε", "απομάκρυνση")),
    (WarningType.FLOOD, ("flood", "πλημμύρα", "πλημμύρες", "κατακλυσμός")),
    (WarningType.SMOKE, ("smoke", "καπνός", "καπνού", "καπνό", "καπνοί")),
)

# ── Patterns ──────────────────────────────────────────────────────────

_FLAGS = re.IGNORECASE | re.DOTALL

GREEK_CONTEXT_PATTERNS = [
    re.compile(r"της\s+Περιφερειακής\s+Ενότητας\s+#(\w+)", re.IGNORECASE),
    re.compile(r"Περιφερειακής\s+Ενότητας\s+#(\w+)", re.IGNORECASE),
    re.compile(r"#\w+\s+#(\w+(?:ίας|ανίας))(?:\s|$)", re.IGNORECASE),
]

ENGLISH_CONTEXT_PATTERNS = [
    re.compile(r"of\s+the\s+regional\s+unit\s+of\s+#(\w+)", re.IGNORECASE),
    re.compile(r"regional\s+unit\s+of\s+#(\w+)", re.IGNORECASE),
]

# groups: danger, route, safe
GREEK_EVACUATION_PATTERNS = [
    re.compile(r"Αν\s+βρίσκεστε\s+στ\w*\s+περιοχ\w*\s*(.*?)\s*απομακρυνθείτε\s*"
               r"(?:μέσω\s+(.*?)\s*)?προς\s+(.*?)" + _END, _FLAGS),
    re.compile(r"Αν\s+βρίσκεστε\s+στ\w*\s*(.*?)\s*απομακρυνθείτε\s*"
               r"(?:μέσω\s+(.*?)\s*)?προς\s+(.*?)" + _END, _FLAGS),
    re.compile(r"()απομακρυνθείτε\s*(?:μέσω\s+(.*?)\s*)?προς\s+(.*?)" + _END, _FLAGS),
]

ENGLISH_EVACUATION_PATTERNS = [
    re.compile(r"If\s+you\s+are\s+in(?:\s+the)?\s+(?:area\s+)?(.*?)\s*move\s+away\s+"
               r"(?:via\s+(.*?)\s+)?to\s+(.*?)" + _END, _FLAGS),
    re.compile(r"()move\s+away\s+(?:via\s+(.*?)\s+)?to\s+(.*?)" + _END, _FLAGS),
]

GREEK_AREA_RE = re.compile(r"Αν\s+βρίσκεστε\s+στ\w*\s+περιοχ\w*\s+(?!#)", re.IGNORECASE)
ENGLISH_AREA_RE = re.compile(r"If\s+you\s+are\s+in(?:\s+the)?\s+area\s+(?!#)", re.IGNORECASE)

GREEK_FIRE_PATTERNS = [
    re.compile(r"Δασική\s+πυρκαγιά\s+στην\s+περιοχή\s*(.*?)(?=\s+της\s+Περιφερειακής|\s*‼|\s*⚠|\s*$)",
               _FLAGS),
    re.compile(r"πυρκαγιά.*?στ\w*\s+περιοχ\w*\s*(.*?)(?=\s+της\s+Περιφερειακής|\s*‼|\s*⚠|\s*$)",
               _FLAGS),
    re.compile(r"πυρκαγιά.*?(#\w+)", _FLAGS),
]

ENGLISH_FIRE_PATTERNS = [
    re.compile(r"Wildfire\s+in\s*(.*?)(?=\s+of\s+the\s+regional|\s*‼|\s*⚠|\s*$)", _FLAGS),
    re.compile(r"Fire\s+in\s*(.*?)(?=\s+of\s+the\s+regional|\s*‼|\s*⚠|\s*$)", _FLAGS),
]


# ── Helpers ───────────────────────────────────────────────────────────

def is_greek(text: str) -> bool:
    return bool(_GREEK_CHAR_RE.search(text or ""))


def is_activation(text: str) -> bool:
    # 112Greece writes the keycaps as "1\ufe0f\u20e3", with an emoji variation selector
    lowered = (text or "").replace(_VARIATION_SELECTOR, "").lower()
    return any(marker in lowered for marker in _ACTIVATION_MARKERS)


def detect_warning_type(text: str) -> WarningType:
    lowered = (text or "").lower()
    for warning_type, keywords in _WARNING_KEYWORDS:
        if any(k in lowered for k in keywords):
            return warning_type
    return WarningType.EMERGENCY


def is_location_hashtag(tag: str) -> bool:
    return len(tag) > 1 and tag.lower() not in NON_LOCATION_HASHTAGS


def extract_hashtags(text: str) -> list[str]:
    """Location hashtags in order of appearance, '_' read as a space, no duplicates."""
    out: list[str] = []
    for tag in _HASHTAG_RE.findall(text or ""):
        if not is_location_hashtag(tag):
            continue
        name = tag.replace("_", " ").strip()
        if name and name not in out:
            out.append(name)
    return out


def extract_regional_context(text: str, greek: Optional[bool] = None) -> Optional[str]:
    if greek is None:
        greek = is_greek(text)
    patterns = GREEK_CONTEXT_PATTERNS if greek else ENGLISH_CONTEXT_PATTERNS
    for pattern in patterns:
        match = pattern.search(text or "")
        if match:
            return match.group(1).replace("_", " ")
    return None


def filter_regional_units(names: Iterable[str]) -> list[str]:
    kept = []
    for name in names:
        if is_regional_unit(name):
            logger.debug("Dropping regional unit hashtag '%s'", name)
            continue
        kept.append(name)
    return kept


def _parse_fire(text: str, greek: bool) -> Optional[list[str]]:
    for pattern in (GREEK_FIRE_PATTERNS if greek else ENGLISH_FIRE_PATTERNS):
        match = pattern.search(text)
        if match:
            return extract_hashtags(match.group(1))
    return None


def _parse_evacuation(text: str, greek: bool) -> Optional[tuple[list[str], list[str], list[str]]]:
    for pattern in (GREEK_EVACUATION_PATTERNS if greek else ENGLISH_EVACUATION_PATTERNS):
        match = pattern.search(text)
        if match:
            danger, route, safe = (match.group(i) or "" for i in (1, 2, 3))
            return extract_hashtags(danger), extract_hashtags(route), extract_hashtags(safe)
    return None


# ── Parser ────────────────────────────────────────────────────────────

def parse_alert(text: str) -> AlertLocations:
    """
    Split an alert's hashtags into danger zones, safe zones, evacuation routes
    and fire locations, and pick up the regional unit the alert refers to.
    """
    text = text or ""
    greek = is_greek(text)
    result = AlertLocations(
        regional_context=extract_regional_context(text, greek),
        language="el" if greek else "en",
        is_activation=is_activation(text),
        warning_type=detect_warning_type(text),
    )

    fire = _parse_fire(text, greek)
    if fire is not None:
        result.fire_locations = fire

    evacuation = _parse_evacuation(text, greek)
    if evacuation is not None:
        result.danger_zones, result.route_locations, result.safe_zones = evacuation
        area_re = GREEK_AREA_RE if greek else ENGLISH_AREA_RE
        if not result.danger_zones and result.fire_locations and area_re.search(text):
            # "if you are in the area" points back at the fire location
            result.danger_zones = result.fire_locations
            result.fire_locations = []

    if fire is None and evacuation is None:
        logger.debug("No alert pattern matched, treating every hashtag as a danger zone")
        result.danger_zones = extract_hashtags(text)

    result.danger_zones = filter_regional_units(result.danger_zones)
    result.safe_zones = filter_regional_units(result.safe_zones)
    result.route_locations = filter_regional_units(result.route_locations)
    result.fire_locations = filter_regional_units(result.fire_locations)

    logger.debug("Parsed alert: danger=%s safe=%s route=%s fire=%s context=%s",
                 result.danger_zones, result.safe_zones, result.route_locations,
                 result.fire_locations, result.regional_context)
    return result
