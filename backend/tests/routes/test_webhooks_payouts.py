import json

import pytest
import ulid

from tutorhub.core.config import settings
from tutorhub.routes.v1.webhooks_payouts import SIGNATURE_HEADER, compute_signature

WEBHOOK_URL = "/api/v1/webhooks/payouts"


def _signed(payload: dict) -> tuple:
    body = json.dumps(payload).encode("utf-8")
    signature = compute_signature(settings.payout_webhook_secret.get_secret_value(), body)
    return body, {SIGNATURE_HEADER: signature, "content-type": "application/json"}


@pytest.fixture
def teacher(make_teacher):
    return make_teacher()


@pytest.fixture
def approved_payout(client, auth_headers, teacher, make_offering, make_available_earning):
    make_available_earning(teacher, make_offering(teacher), 200_000)
    payout = client.post(
        "/api/v1/payouts",
        json={"amount": 200_000, "method": "card", "account_ref": "8600-0000-1111"},
        headers=auth_headers(teacher.user_id, "teacher"),
    ).json()
    client.post(
        f"/api/v1/payouts/{payout['id']}/approve",
        headers=auth_headers(str(ulid.ULID()), "admin"),
    )
    return payout


class TestPayoutWebhook:
    def test_paid_outcome(self, client, auth_headers, teacher, approved_payout):
        body, headers = _signed(
            {"payout_id": approved_payout["id"], "outcome": "paid", "external_ref": "rail-7"}
        )

        r = client.post(WEBHOOK_URL, content=body, headers=headers)

        assert r.status_code == 200
        assert r.json() == {"payout_id": approved_payout["id"], "status": "PAID"}
        balance = client.get(
            "/api/v1/wallet/balance", headers=auth_headers(teacher.user_id, "teacher")
        ).json()
        assert balance["paid_amount"] == 200_000
        assert balance["reserved_amount"] == 0

    def test_replay_is_accepted(self, client, approved_payout):
        body, headers = _signed({"payout_id": approved_payout["id"], "outcome": "paid"})
        assert client.post(WEBHOOK_URL, content=body, headers=headers).status_code == 200
        assert client.post(WEBHOOK_URL, content=body, headers=headers).status_code == 200

    def test_failed_outcome_releases_funds(self, client, auth_headers, teacher, approved_payout):
        body, headers = _signed(
            {"payout_id": approved_payout["id"], "outcome": "failed", "failure_reason": "closed"}
        )

        r = client.post(WEBHOOK_URL, content=body, headers=headers)

        assert r.json()["status"] == "FAILED"
        balance = client.get(
            "/api/v1/wallet/balance", headers=auth_headers(teacher.user_id, "teacher")
        ).json()
        assert balance["available_amount"] == 200_000

    def test_invalid_signature(self, client, approved_payout):
        body, headers = _signed({"payout_id": approved_payout["id"], "outcome": "paid"})
        headers[SIGNATURE_HEADER] = "0" * 64
        r = client.post(WEBHOOK_URL, content=body, headers=headers)
        assert r.status_code == 401

    def test_missing_signature(self, client, approved_payout):
        body, headers = _signed({"payout_id": approved_payout["id"], "outcome": "paid"})
        del headers[SIGNATURE_HEADER]
        r = client.post(WEBHOOK_URL, content=body, headers=headers)
        assert r.status_code == 401

    def test_malformed_payload(self, client):
        body, headers = _signed({"payout_id": "x", "outcome": "maybe"})
        r = client.post(WEBHOOK_URL, content=body, headers=headers)
        assert r.status_code == 422

    def test_unknown_payout(self, client):
        body, headers = _signed({"payout_id": str(ulid.ULID()), "outcome": "paid"})
        r = client.post(WEBHOOK_URL, content=body, headers=headers)
        assert r.status_code == 404
