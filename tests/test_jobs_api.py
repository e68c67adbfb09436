"""End-to-end API tests through the FastAPI app.

Covers:
- Authentication: missing and invalid bearer tokens
- Worked example: credit-funded job settles with a 5% commission
- Paid-lead job settles without a commission record
- Conflicting win claims surface as 409 CONFLICTING_CLAIM
- Non-positive proposals leave the job unchanged
- Access checks on job reads; arbitrator-only settings and sweeps
- Job responses carry allowed actions; oversized amounts are refused
- Disputes over HTTP, including internal responses
"""

from decimal import Decimal

import pytest

API = "/api/v1"
REQUESTER = ("user_requester", ["requester"])
ARBITRATOR = ("user_arbitrator", ["arbitrator"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _register(client, headers, user_id: str, subscription: bool = False) -> dict:
    resp = await client.post(
        f"{API}/providers",
        json={"business_name": f"{user_id} Ltd", "subscription_active": subscription},
        headers=headers(user_id, ["provider"]),
    )
    assert resp.status_code == 201, resp.text
    provider = resp.json()
    provider["headers"] = headers(user_id, ["provider"], provider["provider_id"])
    return provider


async def _post_job(client, headers, budget="1000") -> str:
    resp = await client.post(
        f"{API}/jobs", json={"title": "Fix the roof", "budget": budget}, headers=headers(*REQUESTER)
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["job_id"]


async def _to_awaiting_settlement(client, headers, method="credit", amount="1000"):
    provider = await _register(client, headers, "user_roofer")
    job_id = await _post_job(client, headers)
    resp = await client.post(f"{API}/jobs/{job_id}/access", json={"method": method}, headers=provider["headers"])
    assert resp.status_code == 201, resp.text
    resp = await client.post(
        f"{API}/jobs/{job_id}/select-provider",
        json={"provider_id": provider["provider_id"]},
        headers=headers(*REQUESTER),
    )
    assert resp.status_code == 200, resp.text
    resp = await client.post(f"{API}/jobs/{job_id}/start", headers=headers(*REQUESTER))
    assert resp.status_code == 200, resp.text
    resp = await client.post(
        f"{API}/jobs/{job_id}/final-price", json={"amount": amount}, headers=provider["headers"]
    )
    assert resp.status_code == 200, resp.text
    return job_id, provider


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_missing_token_is_401(client):
    resp = await client.post(f"{API}/jobs", json={"title": "Anything"})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "AUTHENTICATION_ERROR"


@pytest.mark.asyncio
async def test_invalid_token_is_401(client):
    resp = await client.get(f"{API}/jobs/job_x", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_provider_cannot_post_jobs(client, headers):
    resp = await client.post(f"{API}/jobs", json={"title": "Anything"}, headers=headers("user_p", ["provider"]))
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "AUTHORIZATION_ERROR"


# ---------------------------------------------------------------------------
# Settlement examples
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_credit_funded_job_charges_commission(client, headers):
    job_id, provider = await _to_awaiting_settlement(client, headers, method="credit", amount="1000")

    resp = await client.post(
        f"{API}/jobs/{job_id}/final-price/decision", json={"decision": "accept"}, headers=headers(*REQUESTER)
    )
    assert resp.status_code == 200, resp.text
    job = resp.json()
    assert job["status"] == "completed"
    assert Decimal(job["final_amount"]) == Decimal("1000")
    assert job["requester_confirmed"] is True
    assert job["commission_settled"] is True

    resp = await client.get(f"{API}/jobs/{job_id}/commission", headers=provider["headers"])
    assert resp.status_code == 200, resp.text
    commission = resp.json()
    assert commission["rate"] == 5.0
    assert Decimal(commission["commission_amount"]) == Decimal("50")
    assert Decimal(commission["tax_amount"]) == Decimal("10")
    assert Decimal(commission["total_due"]) == Decimal("60")
    assert commission["status"] == "pending"

    account = await client.get(f"{API}/providers/{provider['provider_id']}", headers=provider["headers"])
    assert account.json()["credits_balance"] == 2


@pytest.mark.asyncio
async def test_paid_lead_job_is_commission_exempt(client, headers):
    job_id, provider = await _to_awaiting_settlement(client, headers, method="paid_lead")

    resp = await client.post(
        f"{API}/jobs/{job_id}/final-price/decision", json={"decision": "accept"}, headers=headers(*REQUESTER)
    )
    assert resp.json()["commission_settled"] is True

    resp = await client.get(f"{API}/jobs/{job_id}/commission", headers=headers(*REQUESTER))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_commission_rate_setting_applies_to_next_settlement(client, headers):
    resp = await client.put(f"{API}/settings/commission_rate", json={"rate": 10}, headers=headers(*ARBITRATOR))
    assert resp.status_code == 200, resp.text
    assert resp.json()["value"] == {"rate": 10.0}

    job_id, _ = await _to_awaiting_settlement(client, headers, amount="500")
    await client.post(
        f"{API}/jobs/{job_id}/final-price/decision", json={"decision": "accept"}, headers=headers(*REQUESTER)
    )

    commission = (await client.get(f"{API}/jobs/{job_id}/commission", headers=headers(*ARBITRATOR))).json()
    assert commission["rate"] == 10.0
    assert Decimal(commission["total_due"]) == Decimal("60")


@pytest.mark.asyncio
async def test_arbitrator_records_payment(client, headers):
    job_id, _ = await _to_awaiting_settlement(client, headers)
    await client.post(
        f"{API}/jobs/{job_id}/final-price/decision", json={"decision": "accept"}, headers=headers(*REQUESTER)
    )
    commission = (await client.get(f"{API}/jobs/{job_id}/commission", headers=headers(*ARBITRATOR))).json()

    denied = await client.post(
        f"{API}/commissions/{commission['commission_id']}/pay", json={}, headers=headers(*REQUESTER)
    )
    paid = await client.post(
        f"{API}/commissions/{commission['commission_id']}/pay",
        json={"payment_reference": "pay_42"},
        headers=headers(*ARBITRATOR),
    )

    assert denied.status_code == 403
    assert paid.status_code == 200
    assert paid.json()["status"] == "paid"


# ---------------------------------------------------------------------------
# Guards over HTTP
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_conflicting_claims(client, headers):
    job_id = await _post_job(client, headers)
    first = await _register(client, headers, "user_first")
    second = await _register(client, headers, "user_second")
    for provider in (first, second):
        await client.post(f"{API}/jobs/{job_id}/access", json={"method": "credit"}, headers=provider["headers"])
        resp = await client.post(f"{API}/jobs/{job_id}/claim", headers=provider["headers"])
        assert resp.status_code == 200

    ambiguous = await client.post(f"{API}/jobs/{job_id}/confirm-winner", json={}, headers=headers(*REQUESTER))
    assert ambiguous.status_code == 409
    error = ambiguous.json()["error"]
    assert error["code"] == "CONFLICTING_CLAIM"
    assert set(error["details"]["claimant_ids"]) == {first["provider_id"], second["provider_id"]}

    chosen = await client.post(
        f"{API}/jobs/{job_id}/confirm-winner",
        json={"provider_id": first["provider_id"]},
        headers=headers(*REQUESTER),
    )
    assert chosen.status_code == 200
    assert chosen.json()["status"] == "assigned"
    assert chosen.json()["assigned_provider_id"] == first["provider_id"]

    claims = await client.get(f"{API}/jobs/{job_id}/claims", headers=headers(*REQUESTER))
    assert len(claims.json()) == 2


@pytest.mark.asyncio
async def test_non_positive_price_is_rejected(client, headers):
    job_id, provider = await _to_awaiting_settlement(client, headers)
    await client.post(
        f"{API}/jobs/{job_id}/final-price/decision",
        json={"decision": "reject", "reason": "Too high"},
        headers=headers(*REQUESTER),
    )

    resp = await client.post(f"{API}/jobs/{job_id}/final-price", json={"amount": "0"}, headers=provider["headers"])

    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "INVALID_TRANSITION"
    job = (await client.get(f"{API}/jobs/{job_id}", headers=headers(*REQUESTER))).json()
    assert job["status"] == "in_progress"
    assert job["proposed_final_amount"] is None


@pytest.mark.asyncio
async def test_subscriber_without_grant_cannot_read_job(client, headers):
    job_id = await _post_job(client, headers)
    subscriber = await _register(client, headers, "user_subscriber", subscription=True)

    denied = await client.get(f"{API}/jobs/{job_id}", headers=subscriber["headers"])
    assert denied.status_code == 403

    await client.post(
        f"{API}/jobs/{job_id}/access", json={"method": "subscription_slot"}, headers=subscriber["headers"]
    )
    allowed = await client.get(f"{API}/jobs/{job_id}", headers=subscriber["headers"])
    assert allowed.status_code == 200


@pytest.mark.asyncio
async def test_unknown_job_is_404(client, headers):
    resp = await client.get(f"{API}/jobs/job_missing", headers=headers(*REQUESTER))
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "NOT_FOUND"


# ---------------------------------------------------------------------------
# Disputes
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_dispute_round_trip(client, headers):
    job_id, provider = await _to_awaiting_settlement(client, headers)

    raised = await client.post(
        f"{API}/jobs/{job_id}/disputes",
        json={"dispute_type": "work_quality", "title": "Leak persists", "description": "Still dripping"},
        headers=headers(*REQUESTER),
    )
    assert raised.status_code == 201, raised.text
    dispute_id = raised.json()["dispute_id"]
    assert (await client.get(f"{API}/jobs/{job_id}", headers=headers(*REQUESTER))).json()["status"] == "disputed"

    await client.post(
        f"{API}/disputes/{dispute_id}/responses", json={"message": "Will revisit"}, headers=provider["headers"]
    )
    await client.post(
        f"{API}/disputes/{dispute_id}/responses",
        json={"message": "Provider has a good record", "internal": True},
        headers=headers(*ARBITRATOR),
    )
    visible = await client.get(f"{API}/disputes/{dispute_id}/responses", headers=headers(*REQUESTER))
    assert [r["message"] for r in visible.json()] == ["Will revisit"]

    forbidden = await client.post(
        f"{API}/disputes/{dispute_id}/resolve", json={"resolution": "no_action"}, headers=headers(*REQUESTER)
    )
    assert forbidden.status_code == 403

    resolved = await client.post(
        f"{API}/disputes/{dispute_id}/resolve",
        json={"resolution": "mutual_agreement", "notes": "Revisit agreed"},
        headers=headers(*ARBITRATOR),
    )
    assert resolved.status_code == 200, resolved.text
    assert resolved.json()["status"] == "resolved"
    job = (await client.get(f"{API}/jobs/{job_id}", headers=headers(*REQUESTER))).json()
    assert job["status"] == "awaiting_settlement"


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_settings_validation(client, headers):
    unknown = await client.put(f"{API}/settings/colour", json={"value": "blue"}, headers=headers(*ARBITRATOR))
    bad = await client.put(f"{API}/settings/commission_rate", json={"rate": 150}, headers=headers(*ARBITRATOR))
    denied = await client.put(f"{API}/settings/commission_rate", json={"rate": 5}, headers=headers(*REQUESTER))

    assert unknown.status_code == 404
    assert bad.status_code == 400
    assert denied.status_code == 403


@pytest.mark.asyncio
async def test_manual_sweep_trigger(client, headers):
    resp = await client.post(f"{API}/sweeps/negotiation_timeouts", headers=headers(*ARBITRATOR))
    assert resp.status_code == 200, resp.text
    assert resp.json()["sweep"] == "negotiation_timeouts"
    assert resp.json()["examined"] == 0

    missing = await client.post(f"{API}/sweeps/everything", headers=headers(*ARBITRATOR))
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_job_response_lists_allowed_actions(client, headers):
    job_id = await _post_job(client, headers)

    job = (await client.get(f"{API}/jobs/{job_id}", headers=headers(*REQUESTER))).json()

    assert set(job["allowed_actions"]) == {"select_provider", "confirm_winner", "raise_dispute"}


@pytest.mark.asyncio
async def test_amounts_beyond_money_column_are_rejected(client, headers):
    too_big = await client.post(
        f"{API}/jobs", json={"title": "Build a tower", "budget": "10000000000"}, headers=headers(*REQUESTER)
    )
    assert too_big.status_code == 422

    job_id, provider = await _to_awaiting_settlement(client, headers)
    await client.post(
        f"{API}/jobs/{job_id}/final-price/decision",
        json={"decision": "reject", "reason": "Too high"},
        headers=headers(*REQUESTER),
    )
    resp = await client.post(
        f"{API}/jobs/{job_id}/final-price", json={"amount": "99999999999.99"}, headers=provider["headers"]
    )

    assert resp.status_code == 422
    job = (await client.get(f"{API}/jobs/{job_id}", headers=headers(*REQUESTER))).json()
    assert job["status"] == "in_progress"
    assert "propose_final_price" in job["allowed_actions"]
