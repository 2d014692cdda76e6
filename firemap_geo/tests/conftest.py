"""
Shared fixtures: a small gazetteer, a scripted Nominatim and a resolver
wired to both. No test touches the network.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import httpx
import pytest

from firemap_geo.cache import ResolutionCache
from firemap_geo.config import CacheConfig, GazetteerConfig, GeocodingConfig, ResolverConfig
from firemap_geo.gazetteer import GazetteerIndex, load_entries
from firemap_geo.geocode import NominatimClient, RateLimiter
from firemap_geo.resolver import LocationResolver


def settlement(city, municipality, region, lat, lon, population=0, sub_region="", **extra) -> dict:
    record = {
        "country": "Greece",
        "section": "",
        "region": region,
        "sub_region": sub_region,
        "municipality": municipality,
        "city": city,
        "population": population,
        "latitude": lat,
        "longitude": lon,
        "has_geolocation": lat is not None and lon is not None,
        "settlement_type": "village",
    }
    record.update(extra)
    return record


SAMPLE_SETTLEMENTS = [
    settlement("Patras", "Municipality of Patras", "Western Greece", 38.2466, 21.7359,
               population=167446, sub_region="Achaea"),
    settlement("Πολιχνίτος", "Δήμος Δυτικής Λέσβου", "Περιφέρεια Βορείου Αιγαίου", "39.0790", "26.1830",
               population=2005, sub_region="Περιφερειακή Ενότητα Λέσβου"),
    settlement("Δομοκός", "Δήμος Δομοκού", "Περιφέρεια Στερεάς Ελλάδας", 39.1278, 22.2989,
               population=2522, sub_region="Περιφερειακή Ενότητα Φθιώτιδας"),
    settlement("Ξυνιάδα", "Δήμος Δομοκού", "Περιφέρεια Στερεάς Ελλάδας", 39.0500, 22.2833,
               population=312, sub_region="Περιφερειακή Ενότητα Φθιώτιδας"),
    settlement("Λίμνη", "Δήμος Μαντουδίου - Λίμνης - Αγίας Άννας", "Περιφέρεια Στερεάς Ελλάδας",
               38.7667, 23.3167, population=2046, sub_region="Περιφερειακή Ενότητα Εύβοιας"),
    settlement("Μαντούδι", "Δήμος Μαντουδίου - Λίμνης - Αγίας Άννας", "Περιφέρεια Στερεάς Ελλάδας",
               38.7939, 23.4839, population=2536, sub_region="Περιφερειακή Ενότητα Εύβοιας"),
    settlement("Μαραθώνας", "Δήμος Μαραθώνος", "Περιφέρεια Αττικής", 38.1536, 23.9631,
               population=8014, sub_region="Περιφερειακή Ενότητα Ανατολικής Αττικής"),
    settlement("Βαρνάβας", "Δήμος Μαραθώνος", "Περιφέρεια Αττικής", 38.2211, 23.9281,
               population=1724, sub_region="Περιφερειακή Ενότητα Ανατολικής Αττικής"),
    settlement("Άγιος Νικόλαος", "Δήμος Σαρωνικού", "Περιφέρεια Αττικής", 37.7370, 23.9480,
               population=640, sub_region="Περιφερειακή Ενότητα Ανατολικής Αττικής"),
    settlement("Άγιος Νικόλαος", "Δήμος Αγίου Νικολάου", "Περιφέρεια Κρήτης", None, None,
               population=11421, sub_region="Περιφερειακή Ενότητα Λασιθίου"),
    settlement("Αγία Μαρίνα", "Δήμος Λέρου", "Περιφέρεια Νοτίου Αιγαίου", 37.1583, 26.8500,
               population=1200, sub_region="Περιφερειακή Ενότητα Καλύμνου"),
]


def write_dataset(directory: Path, records: list, name: str = "settlements.json") -> Path:
    path = directory / name
    path.write_text(json.dumps(records, ensure_ascii=False), encoding="utf-8")
    return path


def nominatim_result(lat, lon, display_name="", **address) -> dict:
    return {
        "lat": str(lat),
        "lon": str(lon),
        "display_name": display_name,
        "address": address,
    }


class FakeNominatim:
    """
    httpx.MockTransport handler. `routes` maps a substring of the `q`
    parameter to the JSON array to answer with; unmatched queries get [].
    """

    def __init__(self, routes: Optional[dict[str, list]] = None):
        self.routes = routes or {}
        self.queries: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.queries)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        q = request.url.params.get("q", "")
        self.queries.append(q)
        for fragment, payload in self.routes.items():
            if fragment in q:
                return httpx.Response(200, json=payload)
        return httpx.Response(200, json=[])


def geocoding_config(**overrides) -> GeocodingConfig:
    values = {"min_delay_seconds": 0.0, "backoff_base": 0.0, "nominatim_url": "https://nominatim.test"}
    values.update(overrides)
    return GeocodingConfig(**values)


def make_geocoder(handler, **overrides) -> NominatimClient:
    config = geocoding_config(**overrides)
    return NominatimClient(
        config,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        rate_limiter=RateLimiter(0.0),
    )


@pytest.fixture
def sample_dataset(tmp_path) -> Path:
    return write_dataset(tmp_path, SAMPLE_SETTLEMENTS)


@pytest.fixture
def gazetteer(tmp_path, sample_dataset) -> GazetteerIndex:
    return GazetteerIndex(
        load_entries(sample_dataset),
        additions_path=tmp_path / "settlements_additions.json",
        persist_additions=True,
    )


@pytest.fixture
def fake_nominatim() -> FakeNominatim:
    return FakeNominatim()


@pytest.fixture
def make_resolver(gazetteer, fake_nominatim):
    """Factory: a resolver over the sample gazetteer and the scripted geocoder."""

    def _make(routes: Optional[dict[str, list]] = None, **resolver_overrides) -> LocationResolver:
        if routes:
            fake_nominatim.routes.update(routes)
        return LocationResolver(
            gazetteer,
            make_geocoder(fake_nominatim),
            ResolutionCache(CacheConfig()),
            ResolverConfig(**resolver_overrides),
        )

    return _make


@pytest.fixture
def gazetteer_config(tmp_path, sample_dataset) -> GazetteerConfig:
    return GazetteerConfig(dataset_path=str(sample_dataset), additions_path="", persist_additions=True)
