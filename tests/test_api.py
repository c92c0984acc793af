"""Tests for the HTTP routes."""

import pytest
from fastapi.testclient import TestClient

from sixzone.api import create_app, get_bridge
from sixzone.bridge import AmpBridge
from sixzone.storage import JsonStorage


@pytest.fixture
def bridge(tmp_path):
    return AmpBridge(JsonStorage(tmp_path), amp_count=1)


@pytest.fixture
def client(bridge):
    app = create_app()
    app.dependency_overrides[get_bridge] = lambda: bridge
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["connected"] is False


def test_list_and_get_zones(client):
    zones = client.get("/api/zones").json()

    assert [z["id"] for z in zones] == [11, 12, 13, 14, 15, 16]
    assert client.get("/api/zones/12").json()["name"] == "Zone 12"
    assert client.get("/api/zones/12/volume").json() == 20


def test_unknown_zone_is_404(client):
    assert client.get("/api/zones/21").status_code == 404
    assert client.get("/api/zones/abc").status_code == 404
    assert client.post("/api/zones/17/volume", json=3).status_code == 404


def test_unknown_attribute_is_400(client):
    response = client.get("/api/zones/11/loudness")

    assert response.status_code == 400
    assert "loudness" in response.json()["detail"]


def test_post_zone_batch(client, bridge):
    response = client.post("/api/zones", json=[{"id": 11, "volume": 12}, {"id": 12, "mute": True}])

    assert response.status_code == 200
    assert bridge.get_zone(11).volume == 12
    assert bridge.get_zone(12).mute is True


def test_post_zone_batch_rejects_bad_delta(client, bridge):
    response = client.post("/api/zones", json=[{"id": 11, "volume": 12}, {"id": 12, "bogus": 1}])

    assert response.status_code == 400
    assert bridge.get_zone(11).volume == 20


def test_post_single_zone_uses_path_id(client):
    response = client.post("/api/zones/13", json={"id": 99, "power": True, "name": "Study"})

    assert response.status_code == 200
    assert response.json()["id"] == 13
    assert response.json()["power"] is True
    assert response.json()["name"] == "Study"


def test_post_attribute_scalar_body(client):
    assert client.post("/api/zones/11/volume", json=50).json() == 38
    assert client.post("/api/zones/11/mute", json=True).json() is True


def test_up_and_down(client):
    assert client.post("/api/zones/11/volume/up").json() == 21
    assert client.post("/api/zones/11/volume/up", json=4).json() == 25
    assert client.post("/api/zones/11/volume/down", json=10).json() == 15
    assert client.post("/api/zones/11/mute/up").status_code == 400


def test_non_finite_numbers_are_400(client, bridge):
    for path in ("/api/zones/11/volume", "/api/zones/11/volume/up", "/api/zones/11/volume/down"):
        response = client.post(path, content="1e999", headers={"Content-Type": "application/json"})
        assert response.status_code == 400

    assert bridge.get_zone(11).volume == 20


def test_null_zone_name_is_ignored(client):
    response = client.post("/api/zones/11", json={"name": None, "power": True})

    assert response.status_code == 200
    assert response.json()["name"] == "Zone 11"
    assert response.json()["power"] is True


def test_source_next_and_previous(client):
    client.post("/api/sources/2", json={"enabled": False})

    assert client.post("/api/zones/11/source/next").json() == 3
    assert client.post("/api/zones/11/source/previous").json() == 1


def test_ramp_routes(client, bridge):
    assert client.post("/api/zones/11/volume/rampup", json={"step": 2}).json() == 20
    assert 11 in bridge.ramps.ramps

    client.post("/api/zones/11/bass/rampdown")
    client.post("/api/zones/11/volume/rampstop")
    assert list(bridge.ramps.ramps[11].entries) == ["bass"]

    client.post("/api/zones/11/all/rampstop")
    assert bridge.ramps.ramps == {}


def test_ramp_rejects_flag_attribute(client):
    assert client.post("/api/zones/11/power/rampup").status_code == 400


def test_reload_without_device(client):
    assert client.post("/api/zones/reload").status_code == 400


def test_sources(client):
    assert len(client.get("/api/sources").json()) == 6

    response = client.post("/api/sources/4", json={"name": "Vinyl", "description": "Den"})

    assert response.status_code == 200
    assert response.json() == {"id": 4, "enabled": True, "name": "Vinyl", "description": "Den"}
    assert client.get("/api/sources/4").json()["name"] == "Vinyl"
    assert client.get("/api/sources/8").status_code == 404


def test_sources_batch(client):
    response = client.post("/api/sources", json=[{"id": 1, "enabled": False}])

    assert response.status_code == 200
    assert response.json()[0]["enabled"] is False


def test_scenario_lifecycle(client, bridge):
    created = client.post(
        "/api/scenarios",
        json=[{"name": "Evening", "zones": [{"id": 11, "power": True, "volume": 14}]}],
    ).json()
    assert created[0]["id"] == 1

    renamed = client.post("/api/scenarios/1", json={"name": "Late evening"}).json()
    assert renamed["name"] == "Late evening"
    assert renamed["zones"] == [{"id": 11, "power": True, "volume": 14}]

    zones = client.post("/api/scenarios/1/engage").json()
    assert zones[0]["power"] is True
    assert bridge.get_zone(11).volume == 14

    assert client.delete("/api/scenarios/1").json() == []
    assert client.get("/api/scenarios/1").status_code == 404
    assert client.post("/api/scenarios/1/engage").status_code == 404
