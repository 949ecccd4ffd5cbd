import json

import pytest
from fastapi.testclient import TestClient

from verifier.app.config import Settings
from verifier.app.main import create_app

PEM = "-----BEGIN PUBLIC KEY-----\nMFkw\n-----END PUBLIC KEY-----"

ATTESTATION = {
    "presentation": "0xdeadbeef",
    "notaryPublicKeyPem": PEM,
    "amount": "1000000",
    "payerRef": "payer-a",
    "transferId": "tx-1",
}


def verify_ok(presentation_hex, key):
    return {"server_name": "wise.com", "time": 1739102400, "recv": "", "sent": ""}


def verify_evil(presentation_hex, key):
    return {"server_name": "evilwise.com", "time": 1739102400}


class LeakyHandle:
    server_name = "wise.com"
    time = 1739102400

    def free(self):
        raise RuntimeError("double free")


def _settings(**overrides):
    values = {"max_body_bytes": 4096, "log_level": "WARNING"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def client():
    app = create_app(_settings(), verify_fn=verify_ok)
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"ok": True, "service": "tlsn-verifier"}
    assert response.headers["cache-control"] == "no-store"


def test_verify_success(client):
    response = client.post(
        "/verify-wise-attestation",
        json={"attestation": ATTESTATION, "expected": {"amount": "1000000"}},
    )

    assert response.status_code == 200
    assert response.headers["cache-control"] == "no-store"

    body = response.json()
    assert body["verified"] is True
    assert body["wiseReceiptHash"].startswith("0x")
    assert len(body["wiseReceiptHash"]) == 66
    assert body["normalized"]["transferId"] == "tx-1"
    assert body["recentTransfers"] == []
    assert body["verifier"]["status"] == "ok-local"


def test_invalid_json_body(client):
    response = client.post(
        "/verify-wise-attestation",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "invalid json body"}
    assert response.headers["cache-control"] == "no-store"


@pytest.mark.parametrize("body", [b"", b"[1, 2]", b"null"])
def test_missing_attestation(client, body):
    response = client.post("/verify-wise-attestation", content=body)

    assert response.status_code == 400
    assert response.json() == {"error": "attestation is required"}


def test_oversized_body_is_rejected(client):
    padding = "x" * 5000
    response = client.post(
        "/verify-wise-attestation",
        content=json.dumps({"attestation": ATTESTATION, "padding": padding}),
    )

    assert response.status_code == 413
    assert response.json() == {"error": "payload too large"}


def test_policy_rejection_is_rendered():
    app = create_app(_settings(), verify_fn=verify_evil)
    with TestClient(app) as client:
        response = client.post(
            "/verify-wise-attestation",
            json={"attestation": ATTESTATION},
        )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "sourceHost is not an allowed Wise domain"
    assert "sourceHost=evilwise.com" in body["details"]
    assert "notaryPublicKeyPem" in body["availableKeys"]
    assert PEM not in response.text


def test_unconfigured_verifier_is_a_server_error():
    app = create_app(_settings())
    with TestClient(app) as client:
        response = client.post(
            "/verify-wise-attestation",
            json={"attestation": ATTESTATION},
        )

    assert response.status_code == 500
    assert response.json()["error"] == "verifier is not configured"


def test_unexpected_errors_become_internal_error():
    app = create_app(_settings(), verify_fn=lambda presentation_hex, key: LeakyHandle())
    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.post(
            "/verify-wise-attestation",
            json={"attestation": ATTESTATION},
        )

    assert response.status_code == 500
    assert response.json() == {"error": "internal error", "detail": "double free"}


def test_browser_capture_through_http(client):
    attestation = {
        "kind": "wise_browser_capture_v1",
        "transfers": [
            {"transferId": "c1", "amount": "42", "payer": "x", "timestamp": 1739102400}
        ],
    }
    response = client.post(
        "/verify-wise-attestation",
        json={"attestation": attestation},
    )

    assert response.status_code == 200
    verifier = response.json()["verifier"]
    assert verifier["status"] == "ok-browser-capture"
    assert verifier["tlsVerified"] is False


def test_cors_preflight(client):
    response = client.options(
        "/verify-wise-attestation",
        headers={
            "origin": "https://app.example",
            "access-control-request-method": "POST",
            "access-control-request-headers": "content-type",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
    assert "POST" in response.headers["access-control-allow-methods"]


def test_deeply_nested_body_is_invalid_json():
    app = create_app(_settings(max_body_bytes=1_000_000), verify_fn=verify_ok)
    with TestClient(app) as client:
        response = client.post("/verify-wise-attestation", content=b"[" * 100000)

    assert response.status_code == 400
    assert response.json() == {"error": "invalid json body"}


@pytest.mark.parametrize("constant", ["NaN", "Infinity", "-Infinity"])
def test_non_json_constants_are_invalid_json(client, constant):
    body = '{"attestation": {"kind": "wise_browser_capture_v1", "x": %s}}' % constant
    response = client.post(
        "/verify-wise-attestation",
        content=body,
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "invalid json body"}


def test_oversized_expected_timestamp_is_ignored(client):
    body = '{"attestation": %s, "expected": {"timestamp": 1%s}}' % (
        json.dumps(ATTESTATION),
        "0" * 400,
    )
    response = client.post(
        "/verify-wise-attestation",
        content=body,
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json()["normalized"]["timestamp"] == 1739102400
