import pytest
from conftest import FakeAdapter, off, on
from fastapi.testclient import TestClient

from homeio.core.config import Settings
from homeio.core.exceptions import AdapterUnavailable
from homeio.db.database import get_db
from homeio.main import create_app
from homeio.models import DeviceGroup

BASE = "/homeio/api"


@pytest.fixture
def adapters():
    return [
        FakeAdapter("govee", {"g1": off(40)}, skip_on_quick=True),
        FakeAdapter("hue", {"h1": on(80)}),
    ]


@pytest.fixture
def app_settings():
    return Settings(RECONCILE_INTERVAL_SECONDS=0, API_KEYS=[])


@pytest.fixture
def client(session_factory, adapters, app_settings):
    app = create_app(
        app_settings=app_settings,
        session_factory=session_factory,
        adapters=adapters,
        create_schema=False,
    )

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


def test_devices_without_refresh_reads_the_store(client, make_device):
    make_device("d1", device_name="Lamp", power_state="on", brightness=10)

    body = client.get(f"{BASE}/devices").json()

    assert body["success"] is True
    assert [(d["device"], d["power_state"]) for d in body["devices"]] == [("d1", "on")]
    assert "devices" in body["timing"]
    assert body["quick"] is False


def test_devices_refresh_runs_a_cycle(client, adapters):
    body = client.get(f"{BASE}/devices", params={"refresh": "true", "quick": "true"}).json()

    assert [d["device"] for d in body["devices"]] == ["h1"]
    assert adapters[0].list_calls == 0
    assert set(body["timing"]) == {"hue", "total", "devices"}


def test_devices_rejects_room_with_exclude_room(client):
    response = client.get(f"{BASE}/devices", params={"room": 1, "exclude_room": 2})

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_update_vendor_devices(client):
    response = client.get(f"{BASE}/update-govee-devices")

    assert response.status_code == 200
    assert response.json()["devices_updated"] == 1


def test_update_vendor_devices_unavailable(client, adapters):
    adapters[1].list_error = AdapterUnavailable("hue", "Bridge error: unauthorized user")

    response = client.get(f"{BASE}/update-hue-devices")

    assert response.status_code == 503
    assert response.json() == {"success": False, "error": "hue: Bridge error: unauthorized user"}


def test_unknown_vendor_is_not_found(client):
    response = client.get(f"{BASE}/update-lifx-devices")

    assert response.status_code == 404
    assert response.json()["success"] is False


def test_update_device_state_flow(client, make_device):
    make_device("d1", power_state="off")

    response = client.post(f"{BASE}/update-device-state", json={"device": "d1", "command": "turn", "value": "on"})

    assert response.status_code == 200
    assert response.json()["queued"] is True
    assert client.get(f"{BASE}/queue/metrics").json()["pending_count"] == 1
    # Hidden from the default view while the command is in flight
    assert client.get(f"{BASE}/devices").json()["devices"] == []
    single = client.get(f"{BASE}/devices", params={"device": "d1"}).json()["devices"]
    assert single[0]["power_state"] == "on"


def test_update_device_state_errors(client, make_device):
    make_device("d1")

    missing = client.post(f"{BASE}/update-device-state", json={"device": "d1", "command": "turn"})
    unknown = client.post(f"{BASE}/update-device-state", json={"device": "nope", "command": "turn", "value": "on"})

    assert missing.status_code == 400
    assert missing.json()["error"] == "Missing required parameters: value"
    assert unknown.status_code == 404


def test_send_command_conflict(client, make_device):
    make_device("d1")
    payload = {"device": "d1", "cmd": {"name": "brightness", "value": 30}}

    first = client.post(f"{BASE}/send-command", json=payload)
    second = client.post(f"{BASE}/send-command", json=payload)

    assert first.status_code == 200
    assert first.json()["command_id"] is not None
    assert second.status_code == 409
    assert second.json()["success"] is False


def test_device_config_round_trip(client, make_device, make_room):
    make_device("d1")
    room = make_room("Office")

    response = client.post(f"{BASE}/update-device-config", json={
        "device": "d1",
        "room": room.id,
        "low": 10,
        "preferredColorTem": 2700,
        "preferredName": "Desk lamp",
    })
    config = client.get(f"{BASE}/device-config", params={"device": "d1"}).json()

    assert response.status_code == 200
    assert config["room"] == room.id
    assert config["low"] == 10
    assert config["preferredColorTem"] == 2700
    assert config["preferredName"] == "Desk lamp"


def test_device_config_missing_device(client):
    assert client.get(f"{BASE}/device-config").status_code == 400
    assert client.get(f"{BASE}/device-config", params={"device": "nope"}).status_code == 404


def test_group_endpoints(client, db, make_device):
    make_device("r1", model="H6163", device_name="Strip A")
    make_device("m1", model="H6163", device_name="Strip B")

    created = client.post(f"{BASE}/update-device-group", json={
        "device": "r1", "action": "create", "groupName": "Strip", "model": "H6163",
    })
    groups = client.get(f"{BASE}/available-groups", params={"model": "H6163"}).json()["groups"]
    group_id = groups[0]["id"]
    joined = client.post(f"{BASE}/update-device-group", json={"device": "m1", "action": "join", "groupId": group_id})
    members = client.get(f"{BASE}/group-devices", params={"groupId": group_id}).json()["devices"]
    listed = client.get(f"{BASE}/devices").json()["devices"]

    assert created.status_code == 200
    assert joined.status_code == 200
    assert [m["device"] for m in members] == ["r1", "m1"]
    assert [d["device"] for d in listed] == ["r1"]
    assert [m["device"] for m in listed[0]["group_members"]] == ["m1"]

    deleted = client.post(f"{BASE}/delete-device-group", json={"groupId": group_id})
    assert deleted.status_code == 200
    assert db.query(DeviceGroup).count() == 0


def test_group_devices_show_effective_power_state(client, make_device):
    make_device("r1", model="H6163", device_name="Strip A", power_state="off", preferred_power_state="on")
    client.post(f"{BASE}/update-device-group", json={
        "device": "r1", "action": "create", "groupName": "Strip", "model": "H6163",
    })
    group_id = client.get(f"{BASE}/available-groups", params={"model": "H6163"}).json()["groups"][0]["id"]

    members = client.get(f"{BASE}/group-devices", params={"groupId": group_id}).json()["devices"]

    assert [(m["device"], m["power_state"]) for m in members] == [("r1", "on")]


def test_group_unknown_action(client, make_device):
    make_device("d1")

    response = client.post(f"{BASE}/update-device-group", json={"device": "d1", "action": "merge"})

    assert response.status_code == 400


def test_api_key_required_when_configured(session_factory, adapters):
    app = create_app(
        app_settings=Settings(RECONCILE_INTERVAL_SECONDS=0, API_KEYS=["s3cret"]),
        session_factory=session_factory,
        adapters=adapters,
        create_schema=False,
    )
    app.dependency_overrides[get_db] = lambda: session_factory()
    client = TestClient(app)

    denied = client.get(f"{BASE}/queue/metrics")
    allowed = client.get(f"{BASE}/queue/metrics", headers={"X-API-Key": "s3cret"})

    assert denied.status_code == 401
    assert denied.json() == {"success": False, "error": "Invalid or missing API key"}
    assert allowed.status_code == 200


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "scheduler_running": False}
