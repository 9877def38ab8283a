"""Tests for the FastAPI webhook endpoint."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from prwarden_core.config import ConfigError
from prwarden_core.signature import sign
from prwarden_server.app import build_router, create_app
from prwarden_server.router import RouteResult
from prwarden_store.sqlite import SQLiteStore

SECRET = "webhook-secret"
PATH = "/api/webhook/github"


@pytest.fixture
def router():
    router = MagicMock()
    router.store.record_delivery.return_value = True
    router.dispatch.return_value = RouteResult("reviewed", "AI review posted successfully")
    return router


@pytest.fixture
def client(router):
    return TestClient(create_app(router, SECRET))


def _post(client, payload, secret=SECRET, event="pull_request", delivery=None, signature=None):
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    headers = {
        "Content-Type": "application/json",
        "X-Hub-Signature-256": signature if signature is not None else sign(body, secret),
    }
    if event:
        headers["X-GitHub-Event"] = event
    if delivery:
        headers["X-GitHub-Delivery"] = delivery
    return client.post(PATH, content=body, headers=headers)


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_valid_delivery_dispatched(client, router):
    response = _post(client, {"action": "opened", "number": 7})

    assert response.status_code == 200
    assert response.json() == {"status": "reviewed", "message": "AI review posted successfully"}
    router.dispatch.assert_called_once_with("pull_request", {"action": "opened", "number": 7})


def test_signature_checked_on_raw_bytes(client, router):
    # Unusual whitespace would not survive a parse/re-serialise round trip.
    body = b'{ "action" :  "opened" }'
    response = _post(client, body)
    assert response.status_code == 200
    router.dispatch.assert_called_once_with("pull_request", {"action": "opened"})


def test_missing_signature_is_400(client, router):
    body = json.dumps({"action": "opened"}).encode()
    response = client.post(PATH, content=body, headers={"X-GitHub-Event": "pull_request"})
    assert response.status_code == 400
    router.dispatch.assert_not_called()


def test_malformed_signature_header_is_400(client, router):
    response = _post(client, {"action": "opened"}, signature="sha1=abcdef")
    assert response.status_code == 400
    router.dispatch.assert_not_called()


def test_wrong_secret_is_401(client, router):
    response = _post(client, {"action": "opened"}, secret="not-the-secret")
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid signature"}
    router.dispatch.assert_not_called()
    router.store.record_delivery.assert_not_called()


def test_invalid_json_is_400(client, router):
    response = _post(client, b"{not json")
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON payload"}
    router.dispatch.assert_not_called()


def test_duplicate_delivery_ignored(client, router):
    router.store.record_delivery.return_value = False

    response = _post(client, {"action": "opened"}, delivery="abc-123")

    assert response.json() == {"status": "ignored", "message": "Duplicate delivery"}
    router.store.record_delivery.assert_called_once_with("abc-123")
    router.dispatch.assert_not_called()


def test_errored_delivery_dispatched_again_on_redelivery(router, tmp_path):
    router.store = SQLiteStore(db_path=str(tmp_path / "deliveries.db"))
    router.dispatch.side_effect = [
        RouteResult("error", "502 Bad Gateway"),
        RouteResult("reviewed", "AI review posted successfully"),
    ]
    client = TestClient(create_app(router, SECRET))

    first = _post(client, {"action": "opened"}, delivery="d-1")
    second = _post(client, {"action": "opened"}, delivery="d-1")

    assert first.json()["status"] == "error"
    assert second.json()["status"] == "reviewed"
    assert router.dispatch.call_count == 2


def test_successful_delivery_stays_recorded(client, router):
    _post(client, {"action": "opened"}, delivery="abc-123")
    router.store.forget_delivery.assert_not_called()


def test_skipped_delivery_stays_recorded(client, router):
    router.dispatch.return_value = RouteResult("skipped", "Repository not enabled")
    _post(client, {"action": "opened"}, delivery="abc-123")
    router.store.forget_delivery.assert_not_called()


def test_missing_event_header_passed_as_none(client, router):
    _post(client, {"action": "created", "installation": {"id": 1}}, event=None)
    assert router.dispatch.call_args.args[0] is None


def test_unexpected_error_is_500(client, router):
    router.store.record_delivery.side_effect = RuntimeError("disk full")

    response = _post(client, {"action": "opened"}, delivery="abc-123")

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error", "message": "disk full"}


def test_custom_webhook_path(router):
    client = TestClient(create_app(router, SECRET, webhook_path="/hooks/gh"))
    body = b"{}"
    response = client.post("/hooks/gh", content=body, headers={"X-Hub-Signature-256": sign(body, SECRET)})
    assert response.status_code == 200


def test_build_router_requires_credentials():
    with pytest.raises(ConfigError, match="GITHUB_APP_ID"):
        build_router({"ai_provider": "openai", "github_app_id": None})


def test_build_router_wires_collaborators(mocker, tmp_path):
    github_app_cls = mocker.patch("prwarden_server.app.GitHubApp")
    config = {
        "ai_provider": "openai",
        "ai_timeout": 60,
        "github_app_id": "123",
        "github_private_key": "key",
        "github_timeout": 30,
        "webhook_secret": SECRET,
        "openai_api_key": "sk-test",
        "token_limit_per_24h": 5000,
        "db_path": str(tmp_path / "app.db"),
        "exclude": [],
    }

    router = build_router(config)

    github_app_cls.assert_called_once_with("123", "key", timeout=30)
    assert router.ledger.limit == 5000
    assert router.reviewer.__class__.__name__ == "OpenAIReviewer"
