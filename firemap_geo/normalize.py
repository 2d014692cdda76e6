"""
Greek place-name normalization.

Fire-service records, 112 alert hashtags and the settlement dataset spell the
same place differently:
  - accents and casing ("Πολιχνίτος" vs "ΠΟΛΙΧΝΙΤΟΣ")
  - administrative prefixes ("Δ. ΠΑΤΡΕΩΝ", "Δήμος Πατρέων", "Municipality of Patras")
  - grammatical case endings ("ΠΟΛΙΧΝΙΤΟΥ" is the genitive of "ΠΟΛΙΧΝΙΤΟΣ")

Every comparison between place names goes through this module first.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass

_WHITESPACE_RE = re.compile(r"\s+")
_COMPOUND_SPLIT_RE = re.compile(r"\s*[-–—,]\s*")
_NON_WORD_RE = re.compile(r"[^\w\s]")

MUNICIPALITY_PREFIX = "ΔΗΜΟΣ"

# Word prefixes must be followed by whitespace; abbreviated forms end in a dot.
# Longer alternatives come first so "Δ.Ε." is not consumed as "Δ.".
_ADMIN_PREFIX_RE = re.compile(
    r"^\s*(?:"
    r"(?:δ[ηή]μοτικ[ηή]\s+εν[οό]τητα|δ[ηή]μοτικ[οό]\s+διαμ[εέ]ρισμα|δ[ηή]μο[σς]"
    r"|τοπικ[ηή]\s+κοιν[οό]τητα|κοιν[οό]τητα|municipality\s+of|municipality)(?=\s)"
    r"|δ[ηή]μ\.|δ\.\s?ε\.|δ\.\s?δ\.|δ\.|τ\.\s?κ\.|κοιν\."
    r")\s*",
    re.IGNORECASE,
)

_REGION_PREFIX_RE = re.compile(
    r"^\s*(?:"
    r"(?:περιφερειακ[ηή]\s+εν[οό]τητα|περιφ[εέ]ρεια|regional\s+unit\s+of|region\s+of|region)(?=\s)"
    r"|π\.\s?ε\.|περ\."
    r")\s*",
    re.IGNORECASE,
)

# (suffix, replacements) for Greek nominal case endings. Every matching rule
# applies, so "ΑΓΡΙΝΙΟ" yields both "ΑΓΡΙΝΙΟΣ" and "ΑΓΡΙΝΙ".
_SUFFIX_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("ΟΥ", ("ΟΣ",)),
    ("ΟΣ", ("ΟΥ", "Ο", "ΟΝ")),
    ("ΟΝ", ("Ο", "ΟΣ")),
    ("Ο", ("ΟΣ", "ΟΝ")),
    ("ΑΣ", ("Α",)),
    ("Α", ("ΑΣ",)),
    ("ΗΣ", ("Η",)),
    ("Η", ("ΗΣ",)),
    ("ΙΟ", ("Ι",)),
    ("Ι", ("ΙΟ",)),
)


def normalize(text: str | None) -> str:
    """Strip diacritics, upper-case and collapse whitespace. Empty in, empty out."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    recomposed = unicodedata.normalize("NFC", stripped)
    return _WHITESPACE_RE.sub(" ", recomposed).strip().upper()


def strip_admin_prefix(text: str) -> str:
    """
    Remove a leading municipality/community prefix ("Δήμος", "Δ.", "ΔΗΜ.",
    "Κοινότητα", "Municipality of", ...). Returns the input unchanged when no
    prefix matches or when nothing would remain after stripping.
    """
    if not text:
        return text
    stripped = _ADMIN_PREFIX_RE.sub("", text, count=1).strip()
    return stripped or text


def strip_region_prefix(text: str) -> str:
    """Remove a leading "Περιφέρεια" / "Περιφερειακή Ενότητα" / "Region of" prefix."""
    if not text:
        return text
    stripped = _REGION_PREFIX_RE.sub("", text, count=1).strip()
    return stripped or text


def base_name(text: str | None) -> str:
    """Normalized, de-prefixed form of a municipality or settlement name."""
    return normalize(strip_admin_prefix(normalize(text)))


def region_base(text: str | None) -> str:
    return normalize(strip_region_prefix(normalize(text)))


def generate_morphological_variants(word: str) -> list[str]:
    """
    Return the normalized word followed by its plausible alternate case forms.

    The result has no duplicates and a stable order, so callers building
    ordered key lists get the same keys every time.
    """
    normalized = normalize(word)
    if not normalized:
        return []

    variants = [normalized]
    for suffix, replacements in _SUFFIX_RULES:
        # keep at least a two-letter stem
        if len(normalized) <= len(suffix) + 1 or not normalized.endswith(suffix):
            continue
        stem = normalized[: -len(suffix)]
        for replacement in replacements:
            candidate = stem + replacement
            if candidate not in variants:
                variants.append(candidate)
    return variants


def split_compound(text: str) -> list[str]:
    """Split "ΔΟΜΟΚΟΥ - ΞΥΝΙΑΔΑΣ" style names on dashes and commas."""
    return [part for part in _COMPOUND_SPLIT_RE.split(text.strip()) if part]


def is_compound(text: str) -> bool:
    return len(split_compound(text)) > 1


def significant_words(text: str, min_length: int = 3) -> list[str]:
    """Words of a name long enough to be worth indexing on their own."""
    words = re.split(r"[\s\-–—]+", text)
    return [w for w in words if len(w) >= min_length]


def with_municipality_prefix(base: str) -> str:
    return f"{MUNICIPALITY_PREFIX} {base}" if base else ""


def sanitize_cache_part(text: str | None) -> str:
    """Lower-case, punctuation-free, underscore-joined form used inside cache keys."""
    if not text:
        return "unknown"
    cleaned = _NON_WORD_RE.sub("", text).strip()
    if not cleaned:
        return "unknown"
    return _WHITESPACE_RE.sub("_", cleaned).lower()


@dataclass(frozen=True, order=True)
class NormalizedKey:
    """A gazetteer lookup key. Only ever holds normalized text."""

    value: str

    @classmethod
    def of(cls, text: str | None) -> "NormalizedKey":
        return cls(normalize(text))

    def __str__(self) -> str:
        return self.value

    def __bool__(self) -> bool:
        return bool(self.value)


def composite_key(region: str | None, name: str | None) -> NormalizedKey | None:
    """The "REGION-MUNICIPALITY" key used for runtime additions."""
    region_part = region_base(region)
    name_part = base_name(name)
    if not region_part or not name_part:
        return None
    return NormalizedKey(f"{region_part}-{name_part}")
