import pytest
from fastapi.testclient import TestClient

import config
import web_api

from conftest import GROUP_ID


@pytest.fixture
def client(services, monkeypatch):
    monkeypatch.setattr(config, "WEB_API_SECRET", "")
    monkeypatch.setattr(config, "WEBHOOK_SECRET", "")
    monkeypatch.setattr(config, "BOT_TOKEN", "")
    monkeypatch.setattr(web_api.app.state, "services", services)
    monkeypatch.setattr(web_api.app.state, "application", None)
    return TestClient(web_api.app)


def test_health_reports_pending_deletions(client, services):
    services.deletion_scheduler.schedule(GROUP_ID, 1, services.command_cleanup)

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["pending_deletions"] == 1


def test_health_before_startup(client, monkeypatch):
    monkeypatch.setattr(web_api.app.state, "services", None)
    assert client.get("/health").json()["status"] == "starting"


def test_metrics_endpoint(client):
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "autodelete_deletions_armed_total" in response.text


def test_chat_status(client, store):
    store.set_general_timer(GROUP_ID, "5m")
    store.merge_schedule_start(GROUP_ID, 22 * 60, "1m")

    body = client.get(f"/chats/{GROUP_ID}/status").json()

    assert body["general_timer"] == "5m"
    assert body["schedule"]["start_time"] == "22:00"
    assert body["schedule"]["timezone"] == "GMT+6"
    assert body["schedule_active_config"] is True
    assert body["whitelist_size"] == 0


def test_admin_endpoints_require_secret(client, monkeypatch):
    monkeypatch.setattr(config, "WEB_API_SECRET", "s3cret")

    assert client.get(f"/chats/{GROUP_ID}/status").status_code == 403
    assert client.get(f"/chats/{GROUP_ID}/status", headers={"X-Secret": "wrong"}).status_code == 403
    assert client.get(f"/chats/{GROUP_ID}/status", headers={"X-Secret": "s3cret"}).status_code == 200


@pytest.mark.parametrize("value, expected", [("10S", "10s"), ("off", "off"), ("default", None)])
def test_set_timer(client, store, value, expected):
    store.set_general_timer(GROUP_ID, "1h")

    response = client.put(f"/chats/{GROUP_ID}/timer", json={"value": value})

    assert response.status_code == 200
    assert response.json()["general_timer"] == expected
    assert store.get_general_timer(GROUP_ID).value == expected


def test_set_timer_rejects_invalid_value(client, store):
    response = client.put(f"/chats/{GROUP_ID}/timer", json={"value": "forever"})
    assert response.status_code == 422
    assert store.get_general_timer(GROUP_ID).is_unset


def test_set_timer_rejects_unschedulable_duration(client, store):
    response = client.put(f"/chats/{GROUP_ID}/timer", json={"value": "99999999999h"})
    assert response.status_code == 422
    assert store.get_general_timer(GROUP_ID).is_unset


def test_webhook_rejects_wrong_path(client, monkeypatch):
    monkeypatch.setattr(config, "WEBHOOK_SECRET", "hook")
    assert client.post("/webhook/other", json={}).status_code == 403


def test_webhook_rejects_wrong_secret_header(client, monkeypatch):
    monkeypatch.setattr(config, "WEBHOOK_SECRET", "hook")
    response = client.post(
        "/webhook/hook", json={}, headers={"X-Telegram-Bot-Api-Secret-Token": "nope"}
    )
    assert response.status_code == 403


def test_webhook_rejects_missing_secret_header(client, monkeypatch):
    monkeypatch.setattr(config, "WEBHOOK_SECRET", "hook")
    assert client.post("/webhook/hook", json={}).status_code == 403


def test_webhook_without_application(client, monkeypatch):
    monkeypatch.setattr(config, "WEBHOOK_SECRET", "hook")
    response = client.post(
        "/webhook/hook", json={"update_id": 1}, headers={"X-Telegram-Bot-Api-Secret-Token": "hook"}
    )
    assert response.status_code == 503


def test_webhook_disabled_without_any_secret(client):
    assert client.post("/webhook/anything", json={}).status_code == 403
