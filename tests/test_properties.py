import random
import pytest
from credit_ledger.errors import LedgerError, InsufficientEarnedBalance
from credit_ledger.models.ledger import PAYOUT_FAILED_REFUND, PAYOUT_REQUEST, PROJECT_CREATE, REWARD
from credit_ledger.services import ledger_store
from credit_ledger.services.accounts import audit_account, get_balances
from credit_ledger.services.burn import burn
from credit_ledger.services.earn import earn
from credit_ledger.services.payout_methods import add_payout_method
from credit_ledger.services.payouts import mark_failed, mark_processing, request_payout
from credit_ledger.services.transfer import transfer

@pytest.mark.asyncio
async def test_end_to_end_scenario(session, make_account):
    acct = await make_account(100)
    other = await make_account(100)
    method = await add_payout_method(session, acct, "ba_scn", "bank_account")

    await earn(session, acct, 25, REWARD, "r1")
    assert (await get_balances(session, acct)).earned_balance == 25

    await transfer(session, acct, other, 10)
    assert (await get_balances(session, acct)).earned_balance == 15
    assert (await get_balances(session, other)).earned_balance == 10

    p = await request_payout(session, acct, 15, payout_method_id=method.id)
    assert (p.amount, p.status) == (15, "pending")
    assert (await get_balances(session, acct)).earned_balance == 0

    failed = await mark_failed(session, p.id)
    assert failed.status == "failed"
    bal = await get_balances(session, acct)
    assert bal.earned_balance == 15
    assert bal.genesis_balance == 100

@pytest.mark.asyncio
async def test_idempotent_earn(session, make_account):
    acct = await make_account()
    await earn(session, acct, 10, PROJECT_CREATE, "proj-1")
    await earn(session, acct, 10, PROJECT_CREATE, "proj-1")
    entries = await ledger_store.query(session, acct, credit_type="earned")
    assert len(entries) == 1
    assert (await get_balances(session, acct)).earned_balance == 10

@pytest.mark.asyncio
async def test_payout_reservation(session, make_account):
    acct = await make_account()
    await earn(session, acct, 70, REWARD, "r1")
    await request_payout(session, acct, 70)
    with pytest.raises(InsufficientEarnedBalance):
        await request_payout(session, acct, 1)

@pytest.mark.asyncio
async def test_refund_on_failure_is_a_new_entry(session, make_account):
    acct = await make_account()
    await earn(session, acct, 80, REWARD, "r1")
    before = (await get_balances(session, acct)).earned_balance

    p = await request_payout(session, acct, 50)
    await mark_processing(session, p.id)
    await mark_failed(session, p.id)

    assert (await get_balances(session, acct)).earned_balance == before
    debit = await ledger_store.find_by_source(session, acct, PAYOUT_REQUEST, str(p.id))
    refund = await ledger_store.find_by_source(session, acct, PAYOUT_FAILED_REFUND, str(p.id))
    assert debit.amount == -50
    assert refund.amount == 50
    assert refund.seq > debit.seq

@pytest.mark.asyncio
async def test_random_operations_keep_invariants(session, make_account):
    rng = random.Random(1337)
    accounts = [await make_account(rng.randint(0, 60)) for _ in range(3)]
    genesis_total = {a: (await get_balances(session, a)).genesis_balance for a in accounts}
    open_payouts = []

    for i in range(60):
        op = rng.choice(["earn", "burn", "transfer", "payout", "fail"])
        a = rng.choice(accounts)
        amount = rng.randint(1, 40)
        try:
            if op == "earn":
                await earn(session, a, amount, REWARD, f"r{i}")
            elif op == "burn":
                await burn(session, a, amount)
            elif op == "transfer":
                b = rng.choice([x for x in accounts if x != a])
                before = sum([(await get_balances(session, x)).earned_balance for x in (a, b)])
                try:
                    await transfer(session, a, b, amount)
                finally:
                    after = sum([(await get_balances(session, x)).earned_balance for x in (a, b)])
                    assert before == after
            elif op == "payout":
                open_payouts.append(await request_payout(session, a, amount))
            elif op == "fail" and open_payouts:
                await mark_failed(session, open_payouts.pop(rng.randrange(len(open_payouts))).id)
        except LedgerError:
            pass

        for acc in accounts:
            bal = await get_balances(session, acc)
            assert bal.genesis_balance >= 0 and bal.earned_balance >= 0
            assert bal.genesis_balance + bal.genesis_burned == genesis_total[acc]

    for acc in accounts:
        assert (await audit_account(session, acc)).consistent
