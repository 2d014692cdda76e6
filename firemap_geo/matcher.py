"""
Dataset matcher: find a settlement in the gazetteer for a place description.

Strategy:
  1. Generate ordered search keys for the descriptor (full, de-prefixed,
     morphological variants, sides of compound names, composite key).
  2. Look each key up, keeping geolocated entries that pass the region
     filter. The filter is strict: a key whose entries are all in another
     region contributes nothing.
  3. Classify every hit as exact or partial. Exact hits win; among them the
     key with the fewest gazetteer entries is the most specific.
  4. Nothing found: first-part fallback for "A - B" names (the caller must
     cross-verify it), then a fuzzy term-overlap scan over all keys.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from firemap_geo.gazetteer import GazetteerIndex
from firemap_geo.models import GazetteerEntry
from firemap_geo.normalize import (
    NormalizedKey,
    base_name,
    composite_key,
    generate_morphological_variants,
    normalize,
    significant_words,
    split_compound,
    strip_admin_prefix,
    with_municipality_prefix,
)
from firemap_geo.regions import REGIONS, find_region, find_regional_unit, region_matches

logger = logging.getLogger(__name__)

FUZZY_THRESHOLD = 0.4
FIRST_PART_ACCEPT_SCORE = 0.5


class MatchKind(str, Enum):
    EXACT = "exact"
    PARTIAL = "partial"
    FIRST_PART = "first_part"
    FUZZY = "fuzzy"


@dataclass(frozen=True)
class DatasetMatch:
    entry: GazetteerEntry
    key: NormalizedKey
    kind: MatchKind
    score: float = 1.0

    @property
    def is_exact(self) -> bool:
        return self.kind is MatchKind.EXACT

    @property
    def latitude(self) -> float:
        return self.entry.latitude

    @property
    def longitude(self) -> float:
        return self.entry.longitude


@dataclass(frozen=True)
class Candidate:
    entry: GazetteerEntry
    key: NormalizedKey
    exact: bool
    total_for_key: int
    order: int


# ── Region filter ─────────────────────────────────────────────────────

class RegionFilter:
    """
    Strict region predicate over gazetteer entries.

    Built from an incident's region name, or from an alert's regional
    context (a regional unit, matched at the level of its parent region).
    An inactive filter accepts everything.
    """

    def __init__(self, names: Iterable[str] = ()):
        self.names = tuple(n for n in names if n and n.strip())

    @classmethod
    def for_region(cls, region: Optional[str]) -> "RegionFilter":
        return cls([region] if region else [])

    @classmethod
    def for_context(cls, context: Optional[str]) -> "RegionFilter":
        if not context:
            return cls()
        unit = find_regional_unit(context)
        if unit is not None:
            return cls([REGIONS[unit.region].name])
        region = find_region(context)
        if region is not None:
            return cls([region.name])
        return cls([context.replace("_", " ").lstrip("#")])

    def __bool__(self) -> bool:
        return bool(self.names)

    def matches(self, entry: GazetteerEntry) -> bool:
        if not self.names:
            return True
        return any(
            region_matches(name, entry.region)
            or (entry.sub_region and region_matches(name, entry.sub_region))
            for name in self.names
        )

    def __repr__(self) -> str:
        return f"RegionFilter({list(self.names)!r})"


# ── Key generation ────────────────────────────────────────────────────

def _add(keys: list[NormalizedKey], text: str) -> None:
    if text:
        key = NormalizedKey(text)
        if key not in keys:
            keys.append(key)


def generate_search_keys(descriptor: str, region: str = "") -> list[NormalizedKey]:
    """
    Ordered lookup keys for a place description, most authoritative first.
    Pure: depends only on its arguments.
    """
    full = normalize(descriptor)
    if not full:
        return []

    keys: list[NormalizedKey] = []
    _add(keys, full)

    base = base_name(full)
    _add(keys, base)
    _add(keys, with_municipality_prefix(base))
    for variant in generate_morphological_variants(base)[1:]:
        _add(keys, variant)
        _add(keys, with_municipality_prefix(variant))

    parts = split_compound(base)
    if len(parts) > 1:
        for part in parts:
            side = base_name(part)
            _add(keys, side)
            _add(keys, with_municipality_prefix(side))
            for variant in generate_morphological_variants(side)[1:]:
                _add(keys, variant)
                _add(keys, with_municipality_prefix(variant))

    if region:
        composite = composite_key(region, descriptor)
        if composite:
            _add(keys, composite.value)

    return keys


def exact_forms(descriptor: str) -> set[str]:
    """Key values that denote exactly the described place."""
    full = normalize(descriptor)
    if not full:
        return set()
    forms = {full}
    for part in split_compound(full):
        normalized_part = normalize(part)
        side = base_name(part)
        forms.add(normalized_part)
        forms.update(generate_morphological_variants(side))
    return forms


def _entry_names(entry: GazetteerEntry) -> set[str]:
    names: set[str] = set()
    for name in (entry.settlement_name, entry.municipality, *entry.aliases):
        base = base_name(name)
        if base:
            names.update(generate_morphological_variants(base))
    return names


def _overlap(entry: GazetteerEntry, key: NormalizedKey) -> int:
    """How well an entry's settlement name matches a key: 2 same, 1 contains, 0 neither."""
    settlement = normalize(entry.settlement_name)
    if not settlement:
        return 0
    key_base = normalize(strip_admin_prefix(key.value))
    if settlement in generate_morphological_variants(key_base) or key_base in generate_morphological_variants(settlement):
        return 2
    if settlement in key_base or key_base in settlement:
        return 1
    return 0


def best_by_population(entries: Iterable[GazetteerEntry]) -> Optional[GazetteerEntry]:
    """Highest population wins; ties and unknown populations keep first-registered."""
    best: Optional[GazetteerEntry] = None
    for entry in entries:
        if best is None or entry.population > best.population:
            best = entry
    return best


# ── Matcher ───────────────────────────────────────────────────────────

class DatasetMatcher:
    def __init__(self, index: GazetteerIndex, fuzzy_threshold: float = FUZZY_THRESHOLD):
        self.index = index
        self.fuzzy_threshold = fuzzy_threshold

    def valid_entries(
        self, entries: Iterable[GazetteerEntry], region_filter: Optional[RegionFilter] = None,
    ) -> list[GazetteerEntry]:
        valid = [e for e in entries if e.has_geolocation]
        if region_filter:
            valid = [e for e in valid if region_filter.matches(e)]
        return valid

    def lookup(
        self,
        keys: list[NormalizedKey],
        region_filter: Optional[RegionFilter] = None,
        descriptor: str = "",
    ) -> list[Candidate]:
        """Candidates from every key, in key order, classified exact or partial."""
        forms = exact_forms(descriptor)
        snapshot = self.index.snapshot()
        candidates: list[Candidate] = []
        order = 0
        for key in keys:
            entries = snapshot.get(key, ())
            if not entries:
                continue
            valid = self.valid_entries(entries, region_filter)
            if not valid:
                logger.debug("Key '%s': %d entries, none usable with %r",
                             key, len(entries), region_filter)
                continue
            for entry in valid:
                exact = key.value in forms or key.value in _entry_names(entry)
                candidates.append(Candidate(entry, key, exact, len(entries), order))
                order += 1
        return candidates

    def select(self, candidates: list[Candidate]) -> Optional[DatasetMatch]:
        exact = [c for c in candidates if c.exact]
        if exact:
            best = min(
                exact,
                key=lambda c: (c.total_for_key, -_overlap(c.entry, c.key), -c.entry.population, c.order),
            )
            return DatasetMatch(best.entry, best.key, MatchKind.EXACT)

        if candidates:
            best = min(candidates, key=lambda c: (-c.entry.population, c.order))
            return DatasetMatch(best.entry, best.key, MatchKind.PARTIAL)
        return None

    def match(
        self,
        descriptor: str,
        region_filter: Optional[RegionFilter] = None,
        region: str = "",
    ) -> Optional[DatasetMatch]:
        """Direct key lookup. No fallbacks."""
        keys = generate_search_keys(descriptor, region)
        if not keys:
            return None
        result = self.select(self.lookup(keys, region_filter, descriptor))
        if result is not None:
            logger.debug("Dataset %s match for '%s' via key '%s': %s",
                         result.kind.value, descriptor, result.key, result.entry.settlement_name)
        return result

    def match_first_part(
        self,
        descriptor: str,
        region_filter: Optional[RegionFilter] = None,
        region: str = "",
    ) -> Optional[DatasetMatch]:
        """
        For "A - B" descriptors, find entries whose key contains "A".
        Score = 0.7 exact / 0.5 partial containment of "A" in the candidate's
        own first part, plus 0.3 for a region match; accepted above 0.5.
        The result must be cross-verified by the caller before use.
        """
        parts = split_compound(base_name(descriptor))
        if len(parts) < 2:
            return None
        first = base_name(parts[0])
        if not first:
            return None

        best: Optional[DatasetMatch] = None
        seen: set[int] = set()
        for key, entries in self.index.snapshot().items():
            if first not in key.value:
                continue
            for entry in self.valid_entries(entries, region_filter):
                if id(entry) in seen:
                    continue
                seen.add(id(entry))
                score = self._first_part_score(first, entry, region)
                if score <= FIRST_PART_ACCEPT_SCORE:
                    continue
                if (
                    best is None
                    or score > best.score
                    or (score == best.score and entry.population > best.entry.population)
                ):
                    best = DatasetMatch(entry, key, MatchKind.FIRST_PART, score)

        if best is not None:
            logger.debug("First-part candidate for '%s': %s (score %.2f)",
                         descriptor, best.entry.settlement_name, best.score)
        return best

    @staticmethod
    def _first_part_score(first: str, entry: GazetteerEntry, region: str) -> float:
        entry_parts = split_compound(base_name(entry.municipality))
        entry_first = base_name(entry_parts[0]) if entry_parts else ""
        if not entry_first:
            score = 0.0
        elif entry_first == first:
            score = 0.7
        elif first in entry_first or entry_first in first:
            score = 0.5
        else:
            score = 0.0
        if region and region_matches(region, entry.region):
            score += 0.3
        return min(score, 1.0)

    def match_fuzzy(
        self,
        descriptor: str,
        region_filter: Optional[RegionFilter] = None,
    ) -> Optional[DatasetMatch]:
        """
        Score every key by the share of the descriptor's terms it contains;
        keep keys above the threshold and take the best-scoring key's most
        populous entry.
        """
        terms = significant_words(base_name(descriptor))
        if not terms:
            return None

        best: Optional[DatasetMatch] = None
        for key, entries in self.index.snapshot().items():
            matched = sum(1 for term in terms if term in key.value)
            score = matched / len(terms)
            if score <= self.fuzzy_threshold:
                continue
            if best is not None and score <= best.score:
                continue
            entry = best_by_population(self.valid_entries(entries, region_filter))
            if entry is not None:
                best = DatasetMatch(entry, key, MatchKind.FUZZY, score)

        if best is not None:
            logger.debug("Fuzzy match for '%s' via key '%s' (score %.2f)",
                         descriptor, best.key, best.score)
        return best
