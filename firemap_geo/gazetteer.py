"""
Gazetteer of Greek settlements.

The bundled dataset is a JSON array of settlements. At start-up every entry is
registered under several normalized keys so that the different ways a place
is written still land on it:

  - the full municipality name            "ΔΗΜΟΣ ΔΟΜΟΚΟΥ"
  - the de-prefixed municipality name     "ΔΟΜΟΚΟΥ"
  - each significant word of that name    "ΔΟΜΟΚΟΥ", "ΔΗΜΟΣ ΔΟΜΟΚΟΥ"
  - the settlement name                   "ΞΥΝΙΑΔΑ", "ΔΗΜΟΣ ΞΥΝΙΑΔΑ"

Design:
  - The index is append-only and versioned. Writers take a single lock,
    build a new mapping and swap it in; readers grab the current mapping
    and never block.
  - Coordinates found by the external geocoder are appended at runtime and
    persisted to a side file next to the dataset (best effort). On the next
    load they are merged in without overwriting bundled keys.
  - A missing or unparseable dataset is the one fatal condition: without it
    the whole fallback chain is meaningless.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Iterable, Optional

from pydantic import ValidationError

from firemap_geo.config import GazetteerConfig, get_settings
from firemap_geo.models import GazetteerEntry
from firemap_geo.normalize import (
    NormalizedKey,
    base_name,
    composite_key,
    normalize,
    significant_words,
    with_municipality_prefix,
)
from firemap_geo.spatial import in_greece

logger = logging.getLogger(__name__)

RUNTIME_SETTLEMENT_TYPE = "runtime"


class GazetteerLoadError(RuntimeError):
    """The settlement dataset is missing or unreadable."""


# ── Loading ───────────────────────────────────────────────────────────

def load_entries(path: str | Path) -> list[GazetteerEntry]:
    """
    Read the bundled dataset. Individual malformed records are skipped;
    a missing file, invalid JSON or a non-array document raise
    GazetteerLoadError.
    """
    path = Path(path)
    if not path.exists():
        raise GazetteerLoadError(f"Settlement dataset not found at {path}")

    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise GazetteerLoadError(f"Settlement dataset at {path} is unreadable: {e}") from e

    if not isinstance(raw, list):
        raise GazetteerLoadError(
            f"Settlement dataset at {path} must be a JSON array, got {type(raw).__name__}"
        )

    entries: list[GazetteerEntry] = []
    skipped = 0
    downgraded = 0
    for record in raw:
        if not isinstance(record, dict):
            skipped += 1
            continue
        try:
            entry = GazetteerEntry.model_validate(record)
        except ValidationError as e:
            skipped += 1
            logger.debug("Skipping malformed settlement record %r: %s", record.get("city"), e)
            continue
        if not entry.has_geolocation and _flag_set(record.get("has_geolocation")):
            downgraded += 1
        entries.append(entry)

    if skipped:
        logger.warning("Skipped %d malformed settlement records in %s", skipped, path)
    if downgraded:
        logger.warning("%d settlements flagged as geolocated had missing or out-of-bounds "
                       "coordinates and were treated as not geolocated", downgraded)
    logger.info("Loaded %d settlements from %s", len(entries), path)
    return entries


def _flag_set(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    return bool(value)


def load_additions(path: str | Path) -> dict[str, dict]:
    """Read the runtime-additions side file. Problems are logged, never raised."""
    path = Path(path)
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable gazetteer additions file %s: %s", path, e)
        return {}
    if not isinstance(raw, dict):
        logger.warning("Ignoring gazetteer additions file %s: expected a JSON object", path)
        return {}
    return {k: v for k, v in raw.items() if isinstance(v, dict)}


def index_keys_for(entry: GazetteerEntry) -> list[NormalizedKey]:
    """Every key an entry is reachable under, most specific first."""
    keys: list[str] = []

    municipality = normalize(entry.municipality)
    if municipality:
        base = base_name(municipality)
        keys.append(municipality)
        keys.append(base)
        for word in significant_words(base):
            keys.append(word)
            keys.append(with_municipality_prefix(word))

    settlement = normalize(entry.settlement_name)
    if settlement:
        keys.append(settlement)
        keys.append(with_municipality_prefix(settlement))

    for alias in entry.aliases:
        alias_key = base_name(alias)
        keys.append(alias_key)
        keys.append(with_municipality_prefix(alias_key))

    out: list[NormalizedKey] = []
    seen: set[str] = set()
    for key in keys:
        if key and key not in seen:
            seen.add(key)
            out.append(NormalizedKey(key))
    return out


# ── Index ─────────────────────────────────────────────────────────────

class GazetteerIndex:
    """
    Normalized key -> ordered tuple of GazetteerEntry.

    Reads take a snapshot of the current mapping and are lock-free. Writes
    (runtime additions) are serialized by a single lock and replace the
    mapping wholesale, bumping `version`.
    """

    def __init__(
        self,
        entries: Iterable[GazetteerEntry] = (),
        additions_path: Optional[Path] = None,
        persist_additions: bool = False,
    ):
        self._write_lock = threading.Lock()
        self._persist_lock = threading.Lock()
        self._additions_path = additions_path
        self._persist_additions = persist_additions and additions_path is not None
        self._additions: dict[str, dict] = {}
        self._version = 0
        self._entry_count = 0

        keys: dict[NormalizedKey, tuple[GazetteerEntry, ...]] = {}
        for entry in entries:
            self._register(keys, entry, index_keys_for(entry))
            self._entry_count += 1
        self._keys = keys

    @classmethod
    def from_config(cls, config: Optional[GazetteerConfig] = None) -> "GazetteerIndex":
        """Load the bundled dataset plus any persisted runtime additions."""
        config = config or get_settings().gazetteer
        additions_path = config.resolved_additions_path
        index = cls(
            load_entries(config.dataset_path),
            additions_path=additions_path,
            persist_additions=config.persist_additions,
        )
        index.merge_additions(load_additions(additions_path))
        return index

    @staticmethod
    def _register(
        keys: dict[NormalizedKey, tuple[GazetteerEntry, ...]],
        entry: GazetteerEntry,
        entry_keys: Iterable[NormalizedKey],
    ) -> None:
        for key in entry_keys:
            existing = keys.get(key, ())
            if not any(e is entry for e in existing):
                keys[key] = existing + (entry,)

    # ── reads ──

    def get(self, key: NormalizedKey) -> tuple[GazetteerEntry, ...]:
        return self._keys.get(key, ())

    def __contains__(self, key: NormalizedKey) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def snapshot(self) -> dict[NormalizedKey, tuple[GazetteerEntry, ...]]:
        """The current mapping. Never mutated after publication."""
        return self._keys

    @property
    def version(self) -> int:
        return self._version

    @property
    def entry_count(self) -> int:
        return self._entry_count

    def stats(self) -> dict:
        return {
            "version": self._version,
            "keys": len(self._keys),
            "entries": self._entry_count,
            "runtime_additions": len(self._additions),
        }

    # ── writes ──

    def merge_additions(self, additions: dict[str, dict]) -> int:
        """
        Merge persisted runtime additions. A key that already resolves to
        bundled entries is left alone. Returns the number of entries merged.
        """
        merged = 0
        with self._write_lock:
            keys = dict(self._keys)
            for raw_key, payload in additions.items():
                entry = _entry_from_addition(raw_key, payload)
                if entry is None:
                    logger.debug("Ignoring invalid gazetteer addition %r", raw_key)
                    continue
                entry_keys = [
                    k for k in _runtime_keys(raw_key, entry)
                    if not keys.get(k)
                ]
                if not entry_keys:
                    continue
                self._register(keys, entry, entry_keys)
                self._additions[raw_key] = payload
                self._entry_count += 1
                merged += 1
            if merged:
                self._keys = keys
                self._version += 1
        if merged:
            logger.info("Merged %d runtime gazetteer additions", merged)
        return merged

    def add_runtime_location(
        self,
        *,
        name: str,
        region: str,
        latitude: float,
        longitude: float,
        municipality: str = "",
        settlement_name: str = "",
        persist: bool = True,
    ) -> Optional[GazetteerEntry]:
        """
        Append a coordinate discovered by the external geocoder, keyed by the
        de-prefixed `name` and by the composite region-name key. With `persist`
        the side file is rewritten before returning; async callers pass False
        and run `persist()` in a worker thread. Returns the new entry, or None
        if nothing was added.
        """
        if not in_greece(latitude, longitude):
            return None
        name_key = NormalizedKey(base_name(name))
        if not name_key:
            return None
        composite = composite_key(region, name)

        entry = GazetteerEntry(
            country="Greece",
            region=region or "",
            municipality=municipality or name,
            settlement_name=settlement_name or name,
            latitude=latitude,
            longitude=longitude,
            has_geolocation=True,
            settlement_type=RUNTIME_SETTLEMENT_TYPE,
        )
        entry_keys = [name_key] + ([composite] if composite else [])
        addition_key = str(composite or name_key)

        with self._write_lock:
            keys = dict(self._keys)
            self._register(keys, entry, entry_keys)
            self._keys = keys
            self._version += 1
            self._entry_count += 1
            self._additions[addition_key] = {
                "latitude": latitude,
                "longitude": longitude,
                "region": entry.region,
                "municipality": entry.municipality,
                "name": name,
            }

        logger.info("Gazetteer learned %s -> (%.5f, %.5f)", addition_key, latitude, longitude)
        if persist:
            self.persist()
        return entry

    def persist(self) -> None:
        """
        Rewrite the side file with every runtime addition so far. Blocking;
        the write lock is only held while the additions are copied.
        """
        if not self._persist_additions:
            return
        with self._persist_lock:
            with self._write_lock:
                additions = dict(self._additions)
            self._write_additions(additions)

    def _write_additions(self, additions: dict[str, dict]) -> None:
        """Atomically replace the side file."""
        path = self._additions_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(additions, f, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
        except OSError as e:
            logger.error("Could not persist gazetteer additions to %s: %s", path, e)


def _entry_from_addition(raw_key: str, payload: dict) -> Optional[GazetteerEntry]:
    region = payload.get("region")
    name = payload.get("name") or payload.get("municipality")
    if region is None and "-" in raw_key:
        # bare {latitude, longitude} payloads: recover the parts from the key
        region, _, key_name = raw_key.partition("-")
        name = name or key_name
    try:
        entry = GazetteerEntry(
            country="Greece",
            region=region or "",
            municipality=payload.get("municipality") or name or raw_key,
            settlement_name=name or raw_key,
            latitude=payload.get("latitude"),
            longitude=payload.get("longitude"),
            has_geolocation=True,
            settlement_type=RUNTIME_SETTLEMENT_TYPE,
        )
    except ValidationError:
        return None
    return entry if entry.has_geolocation else None


def _runtime_keys(raw_key: str, entry: GazetteerEntry) -> list[NormalizedKey]:
    keys = [NormalizedKey.of(raw_key)]
    name_key = NormalizedKey(base_name(entry.settlement_name))
    if name_key and name_key not in keys:
        keys.append(name_key)
    return keys

