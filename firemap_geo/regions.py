"""
Greek administrative regions and regional units.

Two tables:
  - the thirteen regions (περιφέρειες) with their approximate centres, used
    for region matching and as the offline regional approximation
  - the regional units (περιφερειακές ενότητες) with every spelling seen in
    112 alerts and geocoder responses. The public geocoder indexes Greek and
    English spellings inconsistently, so synonyms must be enumerated.

All lookups are accent- and case-insensitive.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from firemap_geo.normalize import normalize, region_base, strip_region_prefix


@dataclass(frozen=True)
class Region:
    key: str
    name: str                  # Greek genitive, as written in fire-service records
    latitude: float
    longitude: float
    variants: tuple[str, ...]


@dataclass(frozen=True)
class RegionalUnit:
    name: str                  # English display name
    region: str                # Region.key
    variants: tuple[str, ...]


# ══════════════════════════════════════════════════════════════════════
# REGIONS
# ══════════════════════════════════════════════════════════════════════

REGIONS: dict[str, Region] = {}


def _region(key: str, name: str, lat: float, lon: float, variants: list[str]):
    REGIONS[key] = Region(key, name, lat, lon, tuple([name, *variants]))


_region("attica", "Αττικής", 37.9838, 23.7275, ["Αττική", "Attica", "Attiki"])
_region("central_macedonia", "Κεντρικής Μακεδονίας", 40.6401, 22.9444,
        ["Κεντρική Μακεδονία", "Central Macedonia"])
_region("western_greece", "Δυτικής Ελλάδας", 38.2466, 21.7359,
        ["Δυτική Ελλάδα", "Δυτικής Ελλάδος", "Western Greece", "West Greece"])
_region("thessaly", "Θεσσαλίας", 39.6383, 22.4179, ["Θεσσαλία", "Thessaly"])
_region("crete", "Κρήτης", 35.3387, 25.1442, ["Κρήτη", "Crete", "Kriti"])
_region("east_macedonia_thrace", "Ανατολικής Μακεδονίας και Θράκης", 41.1169, 25.4045,
        ["Ανατολική Μακεδονία και Θράκη", "Eastern Macedonia and Thrace",
         "East Macedonia and Thrace"])
_region("epirus", "Ηπείρου", 39.6675, 20.8511, ["Ήπειρος", "Epirus"])
_region("peloponnese", "Πελοποννήσου", 37.5047, 22.3742, ["Πελοπόννησος", "Peloponnese"])
_region("western_macedonia", "Δυτικής Μακεδονίας", 40.3007, 21.7887,
        ["Δυτική Μακεδονία", "Western Macedonia", "West Macedonia"])
_region("central_greece", "Στερεάς Ελλάδας", 38.9000, 22.4331,
        ["Στερεά Ελλάδα", "Στερεάς Ελλάδος", "Central Greece"])
_region("north_aegean", "Βορείου Αιγαίου", 39.1000, 26.5547,
        ["Βόρειο Αιγαίο", "North Aegean", "Northern Aegean"])
_region("south_aegean", "Νοτίου Αιγαίου", 36.4335, 28.2183,
        ["Νότιο Αιγαίο", "South Aegean", "Southern Aegean"])
_region("ionian_islands", "Ιονίων Νήσων", 39.6243, 19.9217,
        ["Ιόνια Νησιά", "Ionian Islands"])


# ══════════════════════════════════════════════════════════════════════
# REGIONAL UNITS
# ══════════════════════════════════════════════════════════════════════

REGIONAL_UNITS: list[RegionalUnit] = []
_UNIT_BY_VARIANT: dict[str, RegionalUnit] = {}


def _add(variants: list[str], region: str):
    unit = RegionalUnit(variants[0], region, tuple(variants))
    REGIONAL_UNITS.append(unit)
    for variant in variants:
        _UNIT_BY_VARIANT[normalize(variant)] = unit


# ── Eastern Macedonia and Thrace ──────────────────────────────────────

_add(["Evros", "Έβρου", "Έβρος"], "east_macedonia_thrace")
_add(["Rhodope", "Rodopi", "Ροδόπης", "Ροδόπη"], "east_macedonia_thrace")
_add(["Xanthi", "Ξάνθης", "Ξάνθη"], "east_macedonia_thrace")
_add(["Drama", "Δράμας", "Δράμα"], "east_macedonia_thrace")
_add(["Kavala", "Καβάλας", "Καβάλα"], "east_macedonia_thrace")
_add(["Thasos", "Thassos", "Θάσου", "Θάσος"], "east_macedonia_thrace")

# ── Central Macedonia ─────────────────────────────────────────────────

_add(["Thessaloniki", "Salonika", "Θεσσαλονίκης", "Θεσσαλονίκη"], "central_macedonia")
_add(["Imathia", "Ημαθίας", "Ημαθία"], "central_macedonia")
_add(["Pella", "Πέλλας", "Πέλλα"], "central_macedonia")
_add(["Kilkis", "Κιλκίς"], "central_macedonia")
_add(["Pieria", "Πιερίας", "Πιερία"], "central_macedonia")
_add(["Serres", "Σερρών", "Σέρρες"], "central_macedonia")
_add(["Chalkidiki", "Halkidiki", "Χαλκιδικής", "Χαλκιδική"], "central_macedonia")

# ── Western Macedonia ─────────────────────────────────────────────────

_add(["Kozani", "Κοζάνης", "Κοζάνη"], "western_macedonia")
_add(["Grevena", "Γρεβενών", "Γρεβενά"], "western_macedonia")
_add(["Kastoria", "Καστοριάς", "Καστοριά"], "western_macedonia")
_add(["Florina", "Φλώρινας", "Φλώρινα"], "western_macedonia")

# ── Epirus ────────────────────────────────────────────────────────────

_add(["Ioannina", "Ιωαννίνων", "Ιωάννινα", "Γιάννενα"], "epirus")
_add(["Thesprotia", "Θεσπρωτίας", "Θεσπρωτία"], "epirus")
_add(["Preveza", "Prevezza", "Πρέβεζας", "Πρεβέζης", "Πρέβεζα"], "epirus")
_add(["Arta", "Άρτας", "Άρτα"], "epirus")

# ── Thessaly ──────────────────────────────────────────────────────────

_add(["Larissa", "Larisa", "Λάρισας", "Λάρισα"], "thessaly")
_add(["Trikala", "Τρικάλων", "Τρίκαλα"], "thessaly")
_add(["Karditsa", "Καρδίτσας", "Καρδίτσα"], "thessaly")
_add(["Magnesia", "Magnisia", "Μαγνησίας", "Μαγνησία"], "thessaly")
_add(["Sporades", "Σποράδων", "Σποράδες"], "thessaly")

# ── Ionian Islands ────────────────────────────────────────────────────

_add(["Corfu", "Kerkyra", "Κέρκυρας", "Κέρκυρα"], "ionian_islands")
_add(["Zakynthos", "Zakinthos", "Zante", "Ζακύνθου", "Ζάκυνθος"], "ionian_islands")
_add(["Kefalonia", "Kefallonia", "Cephalonia", "Κεφαλονιάς", "Κεφαλληνίας", "Κεφαλονιά"],
     "ionian_islands")
_add(["Lefkada", "Lefkas", "Λευκάδας", "Λευκάδα"], "ionian_islands")

# ── Western Greece ────────────────────────────────────────────────────

_add(["Aetolia-Acarnania", "Aitoloakarnania", "Etoloakarnania",
      "Αιτωλοακαρνανίας", "Αιτωλοακαρνανία"], "western_greece")
_add(["Achaea", "Achaia", "Αχαΐας", "Αχαΐα"], "western_greece")
_add(["Elis", "Ilia", "Eleia", "Ηλείας", "Ηλεία", "Ήλιδα"], "western_greece")

# ── Central Greece ────────────────────────────────────────────────────

_add(["Phthiotis", "Fthiotida", "Φθιώτιδας", "Φθιώτιδα"], "central_greece")
_add(["Evrytania", "Ευρυτανίας", "Ευρυτανία"], "central_greece")
_add(["Phocis", "Fokida", "Φωκίδας", "Φωκίδα"], "central_greece")
_add(["Boeotia", "Viotia", "Βοιωτίας", "Βοιωτία"], "central_greece")
_add(["Euboea", "Evia", "Εύβοιας", "Εύβοια"], "central_greece")

# ── Attica ────────────────────────────────────────────────────────────

_add(["Attica", "Αττικής", "Αττική", "Athens"], "attica")
_add(["East Attica", "Ανατολικής Αττικής", "Ανατολική Αττική"], "attica")
_add(["West Attica", "Δυτικής Αττικής", "Δυτική Αττική"], "attica")
_add(["North Athens", "Βορείου Τομέα Αθηνών", "Βόρειος Τομέας Αθηνών"], "attica")
_add(["Piraeus", "Πειραιώς", "Πειραιά", "Πειραιάς"], "attica")

# ── Peloponnese ───────────────────────────────────────────────────────

_add(["Argolis", "Argolida", "Αργολίδας", "Αργολίδα"], "peloponnese")
_add(["Arcadia", "Arkadia", "Αρκαδίας", "Αρκαδία"], "peloponnese")
_add(["Corinthia", "Korinthia", "Κορινθίας", "Κορινθία"], "peloponnese")
_add(["Laconia", "Lakonia", "Λακωνίας", "Λακωνία"], "peloponnese")
_add(["Messenia", "Messinia", "Μεσσηνίας", "Μεσσηνία"], "peloponnese")

# ── North Aegean ──────────────────────────────────────────────────────

_add(["Lesbos", "Lesvos", "Λέσβου", "Λέσβος", "Μυτιλήνη"], "north_aegean")
_add(["Chios", "Khios", "Χίου", "Χίος"], "north_aegean")
_add(["Samos", "Σάμου", "Σάμος"], "north_aegean")
_add(["Lemnos", "Limnos", "Λήμνου", "Λήμνος"], "north_aegean")

# ── South Aegean ──────────────────────────────────────────────────────

_add(["Rhodes", "Rodos", "Ρόδου", "Ρόδος"], "south_aegean")
_add(["Cyclades", "Κυκλάδων", "Κυκλάδες"], "south_aegean")

# ── Crete ─────────────────────────────────────────────────────────────

_add(["Chania", "Hania", "Χανίων", "Χανιά"], "crete")
_add(["Rethymno", "Rethymnon", "Ρεθύμνου", "Ρέθυμνο"], "crete")
_add(["Heraklion", "Iraklion", "Iraklio", "Ηρακλείου", "Ηράκλειο"], "crete")
_add(["Lasithi", "Lassithi", "Λασιθίου", "Λασίθι"], "crete")


# Longest variants first so "ΔΥΤΙΚΗΣ ΜΑΚΕΔΟΝΙΑΣ" wins over any shorter overlap
_REGION_VARIANTS: list[tuple[str, Region]] = sorted(
    ((normalize(v), region) for region in REGIONS.values() for v in region.variants),
    key=lambda item: len(item[0]),
    reverse=True,
)


def _clean_token(text: str) -> str:
    return normalize(strip_region_prefix(normalize(text.replace("_", " ").lstrip("#"))))


def find_region(text: Optional[str]) -> Optional[Region]:
    """Identify which of the thirteen regions a free-text region name refers to."""
    name = region_base(text)
    if not name:
        return None
    padded = f" {name} "
    for variant, region in _REGION_VARIANTS:
        if f" {variant} " in padded:
            return region
    return None


def find_regional_unit(text: Optional[str]) -> Optional[RegionalUnit]:
    if not text:
        return None
    return _UNIT_BY_VARIANT.get(_clean_token(text))


def is_regional_unit(token: Optional[str]) -> bool:
    return find_regional_unit(token) is not None


def regional_unit_variants(text: Optional[str]) -> list[str]:
    """
    The given name followed by every known synonym of its regional unit.
    Unknown names come back alone, so callers can always iterate the result.
    """
    if not text:
        return []
    name = text.replace("_", " ").lstrip("#").strip()
    variants = [name]
    unit = find_regional_unit(name)
    if unit is not None:
        seen = {normalize(name)}
        for variant in unit.variants:
            if normalize(variant) not in seen:
                seen.add(normalize(variant))
                variants.append(variant)
    return variants


def region_matches(query_region: Optional[str], entry_region: Optional[str]) -> bool:
    """
    True when two region names denote the same region.

    Known regions are compared by identity, so "Crete" matches "Περιφέρεια
    Κρήτης". Otherwise the de-prefixed names must contain one another. An
    empty name on either side never matches.
    """
    left = region_base(query_region)
    right = region_base(entry_region)
    if not left or not right:
        return False

    left_region = find_region(left)
    right_region = find_region(right)
    if left_region is not None and right_region is not None:
        return left_region.key == right_region.key

    return left in right or right in left
