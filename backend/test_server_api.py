"""
API tests for server.py using in-memory stores
"""

import pytest
from datetime import timedelta
from fastapi.testclient import TestClient

import server
from common.config import MonitorConfig
from detention.models import utcnow

TOKEN = "ExponentPushToken[xxxxxxxxxxxxxxxxxxxxxx]"


@pytest.fixture
def client():
    server.reset_runtime(MonitorConfig(mode="test"))
    # No context manager: the background monitor loops stay off
    return TestClient(server.app)


def add_driver(client, name="Pat Doyle", dispatcher="Dean"):
    response = client.post("/api/drivers", json={"name": name, "truck_number": "T-114", "dispatcher": dispatcher})
    assert response.status_code == 201
    return response.json()


def arrive(client, driver_id, minutes_ago, stop_type="rail"):
    arrived_at = (utcnow() - timedelta(minutes=minutes_ago)).isoformat()
    response = client.patch(
        f"/api/drivers/{driver_id}/location",
        json={"location": "Gary, IN", "stop_type": stop_type, "arrived_at": arrived_at},
    )
    assert response.status_code == 200
    return response.json()


class TestBasics:

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_thresholds(self, client):
        data = client.get("/api/thresholds").json()
        assert data["regular"] == {"label": "Regular", "detention_after_minutes": 120, "warning_lead_minutes": 30}
        assert data["rail"]["warning_lead_minutes"] is None
        assert set(data) == {"regular", "multi-stop", "rail", "no-billing", "drop-hook"}


class TestDrivers:

    def test_add_and_list(self, client):
        driver = add_driver(client)
        drivers = client.get("/api/drivers").json()
        assert [d["id"] for d in drivers] == [driver["id"]]
        assert drivers[0]["status"] == "active"
        assert drivers[0]["duration"] == "Standby"

    def test_add_requires_name(self, client):
        response = client.post("/api/drivers", json={"name": "", "truck_number": "T-1"})
        assert response.status_code == 422

    def test_dispatcher_filter(self, client):
        add_driver(client, "Pat Doyle", "Dean")
        add_driver(client, "Sam Ortiz", "Matt")
        drivers = client.get("/api/drivers", params={"dispatcher": "Matt"}).json()
        assert [d["name"] for d in drivers] == ["Sam Ortiz"]
        assert client.get("/api/dispatchers").json() == ["Dean", "Matt"]

    def test_unknown_driver(self, client):
        assert client.get("/api/drivers/ghost").status_code == 404
        assert client.delete("/api/drivers/ghost").status_code == 404

    def test_deactivate_hides_driver(self, client):
        driver = add_driver(client)
        assert client.delete(f"/api/drivers/{driver['id']}").json()["is_active"] is False
        assert client.get("/api/drivers").json() == []

    def test_detention_status(self, client):
        driver = add_driver(client)
        arrive(client, driver["id"], minutes_ago=75)
        data = client.get(f"/api/drivers/{driver['id']}").json()
        assert data["status"] == "detention"
        assert data["is_in_detention"] is True
        assert data["detention_minutes"] in (14, 15)
        assert data["current_location"]["stop_type"] == "rail"

    def test_unknown_stop_type(self, client):
        driver = add_driver(client)
        response = client.patch(
            f"/api/drivers/{driver['id']}/location",
            json={"location": "Gary, IN", "stop_type": "overnight"},
        )
        assert response.status_code == 400
        assert "overnight" in response.json()["detail"]

    def test_appointment_and_departure(self, client):
        driver = add_driver(client)
        arrive(client, driver["id"], minutes_ago=100)
        appointment = (utcnow() - timedelta(minutes=90)).isoformat()
        response = client.post(f"/api/drivers/{driver['id']}/appointment", json={"appointment_time": appointment})
        assert response.status_code == 200

        response = client.post(f"/api/drivers/{driver['id']}/departure", json={})
        assert response.status_code == 200
        stop = response.json()
        assert stop["departure_time"] is not None
        assert stop["final_detention_minutes"] in (29, 30)

        data = client.get(f"/api/drivers/{driver['id']}").json()
        assert data["status"] == "completed"

    def test_update_driver(self, client):
        driver = add_driver(client)
        response = client.patch(f"/api/drivers/{driver['id']}", json={"dispatcher": "Matt"})
        assert response.status_code == 200
        assert response.json()["dispatcher"] == "Matt"
        assert response.json()["name"] == "Pat Doyle"
        assert client.get("/api/dispatchers").json() == ["Matt"]

    def test_update_driver_validation(self, client):
        driver = add_driver(client)
        assert client.patch(f"/api/drivers/{driver['id']}", json={"name": ""}).status_code == 422
        assert client.patch(f"/api/drivers/{driver['id']}", json={"name": "   "}).status_code == 400
        assert client.patch("/api/drivers/ghost", json={"name": "Sam"}).status_code == 404

    def test_reset_driver(self, client):
        driver = add_driver(client)
        arrive(client, driver["id"], minutes_ago=30)
        client.post(f"/api/drivers/{driver['id']}/departure", json={})

        response = client.post(f"/api/drivers/{driver['id']}/reset")
        assert response.status_code == 200
        stop = response.json()
        assert stop["stop_type"] == "regular"
        assert stop["departure_time"] is None
        assert stop["appointment_time"] is None
        assert client.get(f"/api/drivers/{driver['id']}").json()["status"] == "at-stop"

    def test_reset_unknown_driver(self, client):
        assert client.post("/api/drivers/ghost/reset").status_code == 404

    def test_departure_without_stop(self, client):
        driver = add_driver(client)
        assert client.post(f"/api/drivers/{driver['id']}/departure", json={}).status_code == 404


class TestAlerts:

    def test_clear_all_does_not_realert_open_stop(self, client):
        driver = add_driver(client)
        arrive(client, driver["id"], minutes_ago=75)
        client.post("/api/alerts/check")

        assert client.post("/api/alerts/clear-all").json()["count"] == 1
        assert client.post("/api/alerts/check").json()["created"] == []

    def test_clear_history_does_not_realert(self, client):
        driver = add_driver(client)
        arrive(client, driver["id"], minutes_ago=75)
        client.post("/api/alerts/check")
        client.post("/api/alerts/mark-all-read")

        assert client.delete("/api/alerts/clear-history").json()["count"] == 1
        assert client.post("/api/alerts/check").json()["created"] == []

    def test_check_creates_once(self, client):
        driver = add_driver(client)
        arrive(client, driver["id"], minutes_ago=75)

        first = client.post("/api/alerts/check").json()
        assert [a["type"] for a in first["created"]] == ["critical"]
        second = client.post("/api/alerts/check").json()
        assert second["created"] == []

        alerts = client.get("/api/alerts").json()
        assert len(alerts) == 1
        assert alerts[0]["driver_id"] == driver["id"]

    def test_mark_read_and_clear_history(self, client):
        driver = add_driver(client)
        arrive(client, driver["id"], minutes_ago=75)
        alert_id = client.post("/api/alerts/check").json()["created"][0]["id"]

        assert client.post(f"/api/alerts/{alert_id}/read").json() == {"success": True}
        assert client.get("/api/alerts", params={"unread_only": True}).json() == []
        assert client.delete("/api/alerts/clear-history").json()["count"] == 1
        assert client.get("/api/alerts").json() == []

    def test_mark_read_unknown(self, client):
        assert client.post("/api/alerts/missing/read").status_code == 404

    def test_mark_all_read_for_dispatcher(self, client):
        pat = add_driver(client, "Pat Doyle", "Dean")
        sam = add_driver(client, "Sam Ortiz", "Matt")
        arrive(client, pat["id"], minutes_ago=75)
        arrive(client, sam["id"], minutes_ago=75)
        client.post("/api/alerts/check")

        assert client.post("/api/alerts/mark-all-read", params={"dispatcher": "Dean"}).json()["count"] == 1
        unread = client.get("/api/alerts", params={"unread_only": True}).json()
        assert [a["driver_id"] for a in unread] == [sam["id"]]

    def test_clear_all(self, client):
        driver = add_driver(client)
        arrive(client, driver["id"], minutes_ago=75)
        client.post("/api/alerts/check")
        assert client.post("/api/alerts/clear-all").json()["count"] == 1


class TestSettingsAndPush:

    def test_settings_patch(self, client):
        assert client.get("/api/settings").json() == {"warning_threshold_hours": 2, "critical_threshold_hours": 3}
        updated = client.patch("/api/settings", json={"critical_threshold_hours": 4}).json()
        assert updated == {"warning_threshold_hours": 2, "critical_threshold_hours": 4}

    def test_register_push_token(self, client):
        response = client.post("/api/notifications/register", json={"push_token": TOKEN, "dispatcher": "Dean"})
        assert response.status_code == 200
        assert server.get_runtime().stores.push_tokens.list_push_tokens() == [TOKEN]

    def test_register_bad_token(self, client):
        response = client.post("/api/notifications/register", json={"push_token": "abc"})
        assert response.status_code == 400


def test_websocket_accepts_clients(client):
    with client.websocket_connect("/api/ws") as websocket:
        websocket.send_text("ping")
