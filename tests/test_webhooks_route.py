"""
Tests for:
  POST /api/llm/tune-webhook-fal
  POST /api/llm/tune-webhook            (Astria)
  POST /api/llm/tune-webhook-replicate
  POST /api/webhooks/polar
"""

import hashlib
import hmac as hmac_mod
import json
from unittest.mock import AsyncMock, patch

import pytest

from tests.conftest import make_user

USERS = "userTable"
UID = "hook-user"
SECRET = "App-Secret"
POLAR_SECRET = "polar-secret"


@pytest.fixture(autouse=True)
def webhook_settings(monkeypatch):
    from app.config import settings
    monkeypatch.setattr(settings, "app_webhook_secret", SECRET)
    monkeypatch.setattr(settings, "polar_webhook_secret", POLAR_SECRET)
    monkeypatch.setattr(settings, "admin_email", "")


def _url(path, secret=SECRET, user_id=UID):
    params = []
    if secret is not None:
        params.append(f"webhook_secret={secret}")
    if user_id is not None:
        params.append(f"user_id={user_id}")
    return f"{path}?{'&'.join(params)}"


def _claimed_user(**overrides):
    return make_user(
        tuneStatus="ongoing",
        apiStatus={"id": "req-1", "provider": "fal-ai", "status": "training"},
        **overrides,
    )


# ---------------------------------------------------------------------------
# Training webhooks: authentication and validation
# ---------------------------------------------------------------------------


def test_missing_secret_is_400(client, mock_firebase):
    response = client.post(_url("/api/llm/tune-webhook-fal", secret=None), json={})
    assert response.status_code == 400


def test_wrong_secret_is_401(client, mock_firebase):
    mock_firebase.seed(USERS, UID, _claimed_user())
    response = client.post(_url("/api/llm/tune-webhook-fal", secret="nope"), json={"status": "completed"})
    assert response.status_code == 401
    assert mock_firebase.doc(USERS, UID)["tuneStatus"] == "ongoing"


def test_secret_comparison_ignores_case(client, mock_firebase):
    mock_firebase.seed(USERS, UID, _claimed_user())
    response = client.post(
        _url("/api/llm/tune-webhook-fal", secret=SECRET.upper()),
        json={"status": "in_progress"},
    )
    assert response.status_code == 200


def test_missing_user_id_is_400(client, mock_firebase):
    response = client.post(_url("/api/llm/tune-webhook", user_id=None), json={})
    assert response.status_code == 400


def test_unknown_user_is_404(client, mock_firebase):
    response = client.post(_url("/api/llm/tune-webhook-fal", user_id="ghost"), json={"status": "completed"})
    assert response.status_code == 404


def test_invalid_json_is_400(client, mock_firebase):
    mock_firebase.seed(USERS, UID, _claimed_user())
    response = client.post(
        _url("/api/llm/tune-webhook-fal"),
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400


# ---------------------------------------------------------------------------
# Training webhooks: state changes
# ---------------------------------------------------------------------------


def test_fal_completed_merges_lora_url(client, mock_firebase):
    mock_firebase.seed(USERS, UID, _claimed_user())
    payload = {
        "request_id": "req-1",
        "status": "completed",
        "result": {"diffusers_lora_file": {"url": "https://fal.media/lora.safetensors"}},
    }

    response = client.post(_url("/api/llm/tune-webhook-fal"), json=payload)

    assert response.status_code == 200
    assert response.json()["message"] == "Training completed"
    user = mock_firebase.doc(USERS, UID)
    assert user["tuneStatus"] == "completed"
    assert user["apiStatus"]["lora_url"] == "https://fal.media/lora.safetensors"
    assert user["apiStatus"]["id"] == "req-1"
    assert len(user["tuneHistory"]) == 1


def test_fal_failed_marks_failed(client, mock_firebase):
    mock_firebase.seed(USERS, UID, _claimed_user())
    response = client.post(_url("/api/llm/tune-webhook-fal"), json={"status": "failed", "error": "bad images"})

    assert response.status_code == 200
    user = mock_firebase.doc(USERS, UID)
    assert user["tuneStatus"] == "failed"
    assert user["tuneHistory"][0]["error"] == "bad images"


def test_fal_progress_only_appends_history(client, mock_firebase):
    mock_firebase.seed(USERS, UID, _claimed_user())
    client.post(_url("/api/llm/tune-webhook-fal"), json={"status": "in_progress"})
    client.post(_url("/api/llm/tune-webhook-fal"), json={"status": "in_progress"})

    user = mock_firebase.doc(USERS, UID)
    assert user["tuneStatus"] == "ongoing"
    assert len(user["tuneHistory"]) == 2


def test_astria_callback_completes(client, mock_firebase):
    mock_firebase.seed(USERS, UID, _claimed_user())
    payload = {"tune": {"id": 42, "title": UID, "trained_at": "2026-01-01T00:00:00Z"}}

    response = client.post(_url("/api/llm/tune-webhook"), json=payload)

    assert response.status_code == 200
    assert mock_firebase.doc(USERS, UID)["tuneStatus"] == "completed"


def test_replicate_succeeded_records_weights(client, mock_firebase):
    mock_firebase.seed(USERS, UID, _claimed_user())
    payload = {"id": "tr_1", "status": "succeeded", "output": {"weights": "https://replicate.delivery/w.tar"}}

    response = client.post(_url("/api/llm/tune-webhook-replicate"), json=payload)

    assert response.status_code == 200
    user = mock_firebase.doc(USERS, UID)
    assert user["tuneStatus"] == "completed"
    assert user["apiStatus"]["lora_url"] == "https://replicate.delivery/w.tar"


def test_replicate_canceled_marks_failed(client, mock_firebase):
    mock_firebase.seed(USERS, UID, _claimed_user())
    client.post(_url("/api/llm/tune-webhook-replicate"), json={"id": "tr_1", "status": "canceled"})
    assert mock_firebase.doc(USERS, UID)["tuneStatus"] == "failed"


@pytest.mark.parametrize(
    "path, payload",
    [
        ("/api/llm/tune-webhook-fal", {"status": "completed", "result": ["lora"], "payload": "x"}),
        ("/api/llm/tune-webhook-fal", {"status": "completed", "result": {"diffusers_lora_file": "url"}}),
        ("/api/llm/tune-webhook", {"tune": "not-an-object"}),
        ("/api/llm/tune-webhook-replicate", {"status": "succeeded", "output": ["https://r8/w.tar"]}),
    ],
)
def test_training_webhook_tolerates_unexpected_nested_shapes(client, mock_firebase, path, payload):
    mock_firebase.seed(USERS, UID, _claimed_user())

    response = client.post(_url(path), json=payload)

    assert response.status_code == 200
    user = mock_firebase.doc(USERS, UID)
    assert user["tuneStatus"] == "completed"
    assert "lora_url" not in user["apiStatus"]


# ---------------------------------------------------------------------------
# Polar
# ---------------------------------------------------------------------------


def _polar_post(client, event: dict, secret=POLAR_SECRET, header_format="sha256={sig}"):
    body = json.dumps(event).encode()
    sig = hmac_mod.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return client.post(
        "/api/webhooks/polar",
        content=body,
        headers={"polar-signature": header_format.format(sig=sig), "Content-Type": "application/json"},
    )


def _order_event(user_id=UID, amount=2900, product="2e38da8b-460f-4bb6-b7ab-e6e0056d99f5"):
    return {
        "type": "order.created",
        "data": {
            "id": "ord_123",
            "amount": amount,
            "product_id": product,
            "checkout_id": "chk_1",
            "customer_email": "buyer@example.com",
            "metadata": {"user_id": user_id},
        },
    }


def test_polar_order_marks_user_paid(client, mock_firebase):
    mock_firebase.seed(USERS, UID, make_user())
    with patch("app.services.payments_service.log_transaction") as mock_log:
        response = _polar_post(client, _order_event())

    assert response.status_code == 200
    user = mock_firebase.doc(USERS, UID)
    assert user["paymentStatus"] == "paid"
    assert user["planType"] == "Professional"
    assert user["amount"] == 2900
    assert user["polarOrderId"] == "ord_123"
    assert mock_firebase.doc("orders", "ord_123")["user_id"] == UID
    mock_log.assert_called_once()
    assert mock_log.call_args.args[:2] == ("POLAR", 29.0)


def test_polar_unknown_product_uses_default_plan(client, mock_firebase):
    mock_firebase.seed(USERS, UID, make_user())
    with patch("app.services.payments_service.log_transaction"):
        _polar_post(client, _order_event(product="unknown-product"))
    assert mock_firebase.doc(USERS, UID)["planType"] == "Basic"


def test_polar_notifies_admin(client, mock_firebase, monkeypatch):
    from app.config import settings
    monkeypatch.setattr(settings, "admin_email", "admin@example.com")
    mock_firebase.seed(USERS, UID, make_user())

    with (
        patch("app.services.payments_service.log_transaction"),
        patch("app.integrations.email.send_email", new_callable=AsyncMock) as mock_send,
    ):
        response = _polar_post(client, _order_event())

    assert response.status_code == 200
    mock_send.assert_awaited_once()
    assert mock_send.call_args.args[0] == "admin@example.com"
    assert "$29.00" in mock_send.call_args.args[1]


def test_polar_bad_signature_is_401(client, mock_firebase):
    mock_firebase.seed(USERS, UID, make_user())
    response = _polar_post(client, _order_event(), secret="wrong-secret")
    assert response.status_code == 401
    assert "paymentStatus" not in mock_firebase.doc(USERS, UID)


def test_polar_bare_hex_signature_accepted(client, mock_firebase):
    response = _polar_post(client, {"type": "checkout.created", "data": {"id": "chk"}}, header_format="{sig}")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_polar_unknown_event_ignored(client, mock_firebase):
    response = _polar_post(client, {"type": "benefit.granted", "data": {}})
    assert response.status_code == 200
    assert response.json()["status"] == "ignored"


def test_polar_without_secret_is_ignored(client, mock_firebase, monkeypatch):
    from app.config import settings
    monkeypatch.setattr(settings, "polar_webhook_secret", "")
    response = client.post("/api/webhooks/polar", json=_order_event())
    assert response.status_code == 200
    assert response.json()["status"] == "ignored"


@pytest.mark.parametrize(
    "event",
    [
        {"type": "order.created", "data": ["ord_1"]},
        {"type": "order.created", "data": {"id": "ord_2", "metadata": "user-123"}},
        {"type": ["checkout.created"], "data": "chk"},
    ],
)
def test_polar_malformed_event_data_is_not_a_server_error(client, mock_firebase, event):
    mock_firebase.seed(USERS, UID, make_user())
    with patch("app.services.payments_service.log_transaction") as mock_log:
        response = _polar_post(client, event)

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    assert "paymentStatus" not in mock_firebase.doc(USERS, UID)
    mock_log.assert_not_called()
