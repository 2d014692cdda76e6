"""
Tests for the HTTP API, with the resolver wired to the sample gazetteer.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from firemap_geo.api import create_app


@pytest.fixture
def client(make_resolver):
    with TestClient(create_app(make_resolver())) as test_client:
        yield test_client


class TestHealth:
    def test_reports_gazetteer(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["gazetteer_entries"] == 11
        assert body["gazetteer_version"] == 0
        assert body["cache_entries"] == 0


class TestResolveIncident:
    def test_dataset_hit(self, client):
        resp = client.post("/resolve/incident", json={
            "region": "Western Greece", "municipality": "Municipality of Patras",
        })
        assert resp.status_code == 200
        body = resp.json()
        assert (body["latitude"], body["longitude"]) == (38.2466, 21.7359)
        assert body["source"] == "dataset_exact"
        assert body["is_geocoded"] is True

    def test_camel_case_specific_location(self, client):
        resp = client.post("/resolve/incident", json={
            "region": "Περιφέρεια Βορείου Αιγαίου", "specificLocation": "Πολιχνίτος",
        })
        assert resp.json()["latitude"] == pytest.approx(39.079)

    def test_empty_body_gives_default(self, client):
        body = client.post("/resolve/incident", json={}).json()
        assert body["source"] == "default"
        assert body["is_geocoded"] is False


class TestResolveIncidents:
    def test_batch_is_spread(self, client):
        incidents = [
            {"status": "ΣΕ ΕΞΕΛΙΞΗ", "region": "Περιφέρεια Αττικής",
             "municipality": "Δήμος Μαραθώνος", "location": name}
            for name in ("Βαρνάβας", "Καλέντζι", "Γραμματικό")
        ]
        resp = client.post("/resolve/incidents", json={"incidents": incidents})
        assert resp.status_code == 200
        body = resp.json()
        assert len({(i["latitude"], i["longitude"]) for i in body}) == 3
        assert all(i["status"] == "ΣΕ ΕΞΕΛΙΞΗ" for i in body)

    def test_batch_too_large(self, client):
        resp = client.post("/resolve/incidents", json={"incidents": [{}] * 501})
        assert resp.status_code == 413


class TestResolveAlert:
    def test_alert_text(self, client):
        text = ("Δασική πυρκαγιά στην περιοχή #Βαρνάβας της Περιφερειακής Ενότητας "
                "#Ανατολικής_Αττικής ‼️ Αν βρίσκεστε στην περιοχή απομακρυνθείτε προς #Μαραθώνα ‼️")
        resp = client.post("/resolve/alert", json={"text": text})
        assert resp.status_code == 200
        body = resp.json()
        assert body["parsed"]["danger_zones"] == ["Βαρνάβας"]
        assert body["parsed"]["safe_zones"] == ["Μαραθώνα"]
        assert [loc["location_name"] for loc in body["locations"]] == ["Βαρνάβας"]

    def test_supplied_tokens(self, client):
        resp = client.post("/resolve/alert", json={
            "text": "Ενεργοποίηση 112", "tokens": ["Μαραθώνας"], "regional_context": "Ανατολικής_Αττικής",
        })
        locations = resp.json()["locations"]
        assert [loc["location_name"] for loc in locations] == ["Μαραθώνας"]

    def test_empty_text_rejected(self, client):
        assert client.post("/resolve/alert", json={"text": ""}).status_code == 422
