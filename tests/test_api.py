import uuid
import pytest
import stripe
from conftest import INTERNAL, auth_headers
from credit_ledger.jobs.dispatch_payout import dispatch_payout_job

async def _open(ac, grant=100) -> uuid.UUID:
    user_id = uuid.uuid4()
    r = await ac.post("/internal/accounts", json={"user_id": str(user_id), "genesis_grant": grant}, headers=INTERNAL)
    assert r.status_code == 200
    assert r.json()["created"] is True
    return user_id

async def _earn(ac, user_id, amount, source_id):
    r = await ac.post("/internal/credits/earn", headers=INTERNAL, json={
        "account_id": str(user_id), "amount": amount, "source": "reward", "source_id": source_id,
    })
    assert r.status_code == 200
    return r.json()

@pytest.mark.asyncio
async def test_balances_require_auth(client):
    assert (await client.get("/accounts/me")).status_code in (401, 403)
    r = await client.get("/accounts/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401

@pytest.mark.asyncio
async def test_internal_routes_require_token(client):
    r = await client.post("/internal/accounts", json={"user_id": str(uuid.uuid4())})
    assert r.status_code == 403
    r = await client.post("/internal/accounts", json={"user_id": str(uuid.uuid4())}, headers={"X-Internal-Token": "nope"})
    assert r.status_code == 403

@pytest.mark.asyncio
async def test_open_account_and_read_balances(client):
    user_id = await _open(client, grant=100)
    r = await client.get("/accounts/me", headers=auth_headers(user_id))
    assert r.status_code == 200
    assert r.json() == {
        "account_id": str(user_id),
        "genesis_balance": 100,
        "earned_balance": 0,
        "genesis_burned": 0,
        "lifetime_earned": 0,
    }
    again = await client.post("/internal/accounts", json={"user_id": str(user_id)}, headers=INTERNAL)
    assert again.json()["created"] is False

@pytest.mark.asyncio
async def test_unknown_account_is_404_with_code(client):
    r = await client.get("/accounts/me", headers=auth_headers(uuid.uuid4()))
    assert r.status_code == 404
    assert r.json()["code"] == "account_not_found"

@pytest.mark.asyncio
async def test_earn_is_idempotent_over_http(client):
    user_id = await _open(client)
    first = await _earn(client, user_id, 10, "proj-1")
    second = await _earn(client, user_id, 10, "proj-1")
    assert first["id"] == second["id"]
    r = await client.get("/accounts/me", headers=auth_headers(user_id))
    assert r.json()["earned_balance"] == 10

@pytest.mark.asyncio
async def test_error_codes(client):
    user_id = await _open(client, grant=5)
    other = await _open(client)
    hdrs = auth_headers(user_id)

    r = await client.post("/credits/burn", json={"amount": 0}, headers=hdrs)
    assert (r.status_code, r.json()["code"]) == (400, "invalid_amount")

    r = await client.post("/credits/burn", json={"amount": 6}, headers=hdrs)
    assert (r.status_code, r.json()["code"]) == (402, "insufficient_genesis_balance")

    r = await client.post("/credits/transfer", json={"recipient_id": str(user_id), "amount": 1}, headers=hdrs)
    assert (r.status_code, r.json()["code"]) == (400, "self_transfer_not_allowed")

    r = await client.post("/credits/transfer", json={"recipient_id": str(other), "amount": 3}, headers=hdrs)
    assert (r.status_code, r.json()["code"]) == (402, "genesis_not_transferable")

    r = await client.post("/payouts", json={"amount": 3}, headers=hdrs)
    assert (r.status_code, r.json()["code"]) == (402, "genesis_not_withdrawable")

    r = await client.post("/internal/credits/earn", headers=INTERNAL, json={
        "account_id": str(user_id), "amount": 5, "source": "transfer_in",
    })
    assert (r.status_code, r.json()["code"]) == (400, "invalid_source")

@pytest.mark.asyncio
async def test_burn_and_transfer(client):
    a = await _open(client)
    b = await _open(client)
    await _earn(client, a, 40, "seed")

    r = await client.post("/credits/burn", json={"amount": 30, "source_id": "order-9"}, headers=auth_headers(a))
    assert r.status_code == 200
    assert r.json()["balance_after"] == 70

    r = await client.post(
        "/credits/transfer",
        json={"recipient_id": str(b), "amount": 15, "transfer_id": "tx-42"},
        headers=auth_headers(a),
    )
    assert r.status_code == 200
    body = r.json()
    assert body["transfer_id"] == "tx-42"
    assert body["sender_entry"]["balance_after"] == 25
    assert body["recipient_entry"]["balance_after"] == 15

@pytest.mark.asyncio
async def test_ledger_pagination(client):
    user_id = await _open(client)
    for i in range(5):
        await _earn(client, user_id, 1, f"r{i}")
    hdrs = auth_headers(user_id)

    r = await client.get("/accounts/me/ledger", params={"limit": 4}, headers=hdrs)
    page = r.json()
    assert [e["seq"] for e in page["entries"]] == [6, 5, 4, 3]
    assert page["next_cursor"] == 3

    r = await client.get("/accounts/me/ledger", params={"limit": 4, "cursor": page["next_cursor"]}, headers=hdrs)
    page2 = r.json()
    assert [e["seq"] for e in page2["entries"]] == [2, 1]
    assert page2["next_cursor"] is None

    r = await client.get("/accounts/me/ledger", params={"credit_type": "genesis", "order": "asc"}, headers=hdrs)
    assert [e["source"] for e in r.json()["entries"]] == ["genesis_grant"]

@pytest.mark.asyncio
async def test_payout_flow_over_http(client, fake_queue):
    user_id = await _open(client)
    hdrs = auth_headers(user_id)
    await _earn(client, user_id, 50, "seed")

    r = await client.post("/payout-methods", json={
        "provider_method_id": "ba_http", "method_type": "bank_account", "last_four": "1234",
    }, headers=hdrs)
    assert r.status_code == 201
    method = r.json()
    assert method["is_default"] is True
    assert "provider_method_id" not in method

    r = await client.post("/payouts", json={"amount": 20}, headers=hdrs)
    assert r.status_code == 201
    payout = r.json()
    assert payout["status"] == "pending"
    assert payout["payout_method_id"] == method["id"]
    fn, args, kwargs = fake_queue.jobs[0]
    assert fn is dispatch_payout_job
    assert args == (payout["id"],)

    r = await client.post(f"/payouts/{payout['id']}/cancel", headers=hdrs)
    assert r.status_code == 200 and r.json()["status"] == "cancelled"
    r = await client.post(f"/payouts/{payout['id']}/cancel", headers=hdrs)
    assert (r.status_code, r.json()["code"]) == (409, "invalid_state_transition")

    r = await client.get("/accounts/me", headers=hdrs)
    assert r.json()["earned_balance"] == 50

    r = await client.get("/payouts", headers=hdrs)
    assert [p["status"] for p in r.json()] == ["cancelled"]

@pytest.mark.asyncio
async def test_internal_fail_and_reconcile(client):
    user_id = await _open(client)
    await _earn(client, user_id, 30, "seed")
    r = await client.post("/payouts", json={"amount": 30}, headers=auth_headers(user_id))
    pid = r.json()["id"]

    r = await client.post(f"/internal/payouts/{pid}/fail", json={"reason": "compliance hold"}, headers=INTERNAL)
    assert r.status_code == 200
    assert r.json()["status"] == "failed"
    assert r.json()["error_message"] == "compliance hold"

    r = await client.post("/internal/payouts/reconcile", headers=INTERNAL)
    assert r.json() == {"failed": 0, "cancelled": 0, "skipped": 0}

    r = await client.get(f"/internal/accounts/{user_id}/audit", headers=INTERNAL)
    assert r.status_code == 200
    assert r.json()["consistent"] is True
    assert r.json()["replayed_earned_balance"] == 30

@pytest.mark.asyncio
async def test_payout_methods_over_http(client):
    user_id = await _open(client)
    hdrs = auth_headers(user_id)
    a = (await client.post("/payout-methods", json={"provider_method_id": "ba_a", "method_type": "bank_account"}, headers=hdrs)).json()
    b = (await client.post("/payout-methods", json={"provider_method_id": "card_b", "method_type": "debit_card"}, headers=hdrs)).json()

    r = await client.post(f"/payout-methods/{b['id']}/default", headers=hdrs)
    assert r.json()["is_default"] is True
    r = await client.get("/payout-methods", headers=hdrs)
    assert [m["id"] for m in r.json()] == [b["id"], a["id"]]

    r = await client.delete(f"/payout-methods/{a['id']}", headers=hdrs)
    assert r.status_code == 204
    r = await client.delete(f"/payout-methods/{a['id']}", headers=hdrs)
    assert (r.status_code, r.json()["code"]) == (404, "payout_method_not_found")

@pytest.mark.asyncio
async def test_contributions_over_http(client):
    user_id = await _open(client)
    hdrs = auth_headers(user_id)
    r = await client.post("/contributions", json={"contribution_type": "event_hosting", "amount_requested": 30}, headers=hdrs)
    assert r.status_code == 201
    cid = r.json()["id"]

    r = await client.post(f"/internal/contributions/{cid}/verify", json={"verifier_id": str(uuid.uuid4())}, headers=INTERNAL)
    assert r.status_code == 200
    assert r.json()["status"] == "verified" and r.json()["amount_earned"] == 30

    r = await client.get("/contributions", headers=hdrs)
    assert [c["status"] for c in r.json()] == ["verified"]
    r = await client.get("/accounts/me", headers=hdrs)
    assert r.json()["lifetime_earned"] == 30

def _payout_event(event_type, provider_reference, payout_id):
    return {
        "type": event_type,
        "data": {"object": {"id": provider_reference, "metadata": {"payout_id": payout_id}, "failure_message": "account_closed"}},
    }

@pytest.mark.asyncio
async def test_stripe_webhook_settles_payout(client, session, monkeypatch):
    from conftest import FakeProvider
    from credit_ledger.services.payouts import dispatch_payout

    user_id = await _open(client)
    hdrs = auth_headers(user_id)
    await _earn(client, user_id, 40, "seed")
    await client.post("/payout-methods", json={"provider_method_id": "ba_w", "method_type": "bank_account"}, headers=hdrs)
    pid = (await client.post("/payouts", json={"amount": 40}, headers=hdrs)).json()["id"]
    await dispatch_payout(session, uuid.UUID(pid), FakeProvider())

    events = iter([
        _payout_event("payout.failed", "po_test_1", pid),
        _payout_event("payout.paid", "po_test_1", pid),
        _payout_event("customer.created", "cus_1", pid),
    ])
    monkeypatch.setattr(stripe.Webhook, "construct_event", lambda **kwargs: next(events))

    r = await client.post("/stripe/webhook", content=b"{}", headers={"Stripe-Signature": "t=1,v1=sig"})
    assert r.status_code == 200
    assert r.json()["status"] == "failed"

    # late success after failure loses the race and is acknowledged
    r = await client.post("/stripe/webhook", content=b"{}", headers={"Stripe-Signature": "t=1,v1=sig"})
    assert r.status_code == 200
    assert r.json()["duplicate"] is True

    r = await client.post("/stripe/webhook", content=b"{}", headers={"Stripe-Signature": "t=1,v1=sig"})
    assert r.json() == {"ignored": "customer.created"}

    r = await client.get("/accounts/me", headers=hdrs)
    assert r.json()["earned_balance"] == 40

@pytest.mark.asyncio
async def test_stripe_webhook_bad_signature(client, monkeypatch):
    def _raise(**kwargs):
        raise stripe.SignatureVerificationError("bad signature", "t=1,v1=sig")
    monkeypatch.setattr(stripe.Webhook, "construct_event", _raise)
    r = await client.post("/stripe/webhook", content=b"{}", headers={"Stripe-Signature": "t=1,v1=sig"})
    assert r.status_code == 400

@pytest.mark.asyncio
async def test_oversized_amount_is_400_not_500(client):
    user_id = await _open(client)
    r = await client.post("/internal/credits/earn", headers=INTERNAL, json={
        "account_id": str(user_id), "amount": 2**63, "source": "reward", "source_id": "huge",
    })
    assert (r.status_code, r.json()["code"]) == (400, "invalid_amount")

    r = await client.post("/credits/burn", json={"amount": 2**63}, headers=auth_headers(user_id))
    assert (r.status_code, r.json()["code"]) == (400, "invalid_amount")

    r = await client.post("/internal/accounts", json={"user_id": str(uuid.uuid4()), "genesis_grant": 2**63}, headers=INTERNAL)
    assert (r.status_code, r.json()["code"]) == (400, "invalid_amount")

@pytest.mark.asyncio
async def test_unknown_enum_values_are_rejected_by_schema(client):
    user_id = await _open(client)
    hdrs = auth_headers(user_id)
    r = await client.post("/payouts", json={"amount": 1, "credit_type": "gold"}, headers=hdrs)
    assert r.status_code == 422
    r = await client.post("/contributions", json={"contribution_type": "gardening", "amount_requested": 5}, headers=hdrs)
    assert r.status_code == 422

@pytest.mark.asyncio
async def test_reputation_multiplier_over_http(client):
    user_id = await _open(client)
    r = await client.put(f"/internal/accounts/{user_id}/reputation-multiplier", json={"multiplier": 2}, headers=INTERNAL)
    assert r.status_code == 200
    assert r.json() == {"account_id": str(user_id), "reputation_multiplier": 2.0}

    r = await client.put(f"/internal/accounts/{user_id}/reputation-multiplier", json={"multiplier": 0}, headers=INTERNAL)
    assert (r.status_code, r.json()["code"]) == (400, "invalid_parameter")

    hdrs = auth_headers(user_id)
    cid = (await client.post("/contributions", json={"contribution_type": "mentorship", "amount_requested": 30}, headers=hdrs)).json()["id"]
    r = await client.post(f"/internal/contributions/{cid}/verify", json={"verifier_id": str(uuid.uuid4())}, headers=INTERNAL)
    assert r.json()["amount_earned"] == 60
