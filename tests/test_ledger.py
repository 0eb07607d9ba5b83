import asyncio

import pytest
from sqlalchemy import select

from photobatch.models import CreditAccount, CreditTransaction
from photobatch.services import ledger


async def _debit(session_factory, user_id):
    async with session_factory() as session:
        return await ledger.try_debit_one(session, user_id)


async def test_missing_account_reports_signup_grant(db):
    balance = await ledger.get_balance(db, "nobody")

    assert balance.free == 1
    assert balance.paid == 0
    assert balance.total == 1


async def test_ensure_account_is_idempotent(db):
    await ledger.ensure_account(db, "user-1")
    await ledger.ensure_account(db, "user-1")

    accounts = (await db.execute(select(CreditAccount))).scalars().all()
    grants = (await db.execute(
        select(CreditTransaction).where(CreditTransaction.reason == "signup_grant")
    )).scalars().all()
    assert len(accounts) == 1
    assert accounts[0].free_credits == 1
    assert len(grants) == 1


async def test_debit_spends_free_before_paid(db, seed_account):
    await seed_account("user-1", free=1, paid=2)

    first = await ledger.try_debit_one(db, "user-1", preset_id="mapleAutumn", style_id="cartoon")
    second = await ledger.try_debit_one(db, "user-1")

    assert first.ok and first.was_free
    assert (first.remaining_free, first.remaining_paid) == (0, 2)
    assert second.ok and not second.was_free
    assert (second.remaining_free, second.remaining_paid) == (0, 1)

    balance = await ledger.get_balance(db, "user-1")
    assert balance.lifetime == 2


async def test_debit_records_last_generation(db, seed_account):
    await seed_account("user-1", paid=1)

    await ledger.try_debit_one(db, "user-1", preset_id="northernLights", style_id="watercolor")

    account = (await db.execute(
        select(CreditAccount).where(CreditAccount.user_id == "user-1")
    )).scalar_one()
    assert account.last_preset_id == "northernLights"
    assert account.last_style_id == "watercolor"
    assert account.last_generation_at is not None


async def test_debit_with_empty_balance_is_insufficient(db, seed_account):
    await seed_account("user-1")

    result = await ledger.try_debit_one(db, "user-1")

    assert not result.ok
    assert result.reason == ledger.INSUFFICIENT
    balance = await ledger.get_balance(db, "user-1")
    assert (balance.free, balance.paid, balance.lifetime) == (0, 0, 0)


@pytest.mark.parametrize("free,paid,attempts", [(1, 0, 5), (0, 3, 8), (2, 2, 10)])
async def test_concurrent_debits_never_overspend(session_factory, seed_account, free, paid, attempts):
    await seed_account("user-1", free=free, paid=paid)

    results = await asyncio.gather(*(
        _debit(session_factory, "user-1") for _ in range(attempts)
    ))

    succeeded = [r for r in results if r.ok]
    assert len(succeeded) == free + paid
    assert sum(1 for r in succeeded if r.was_free) == free
    assert all(r.reason == ledger.INSUFFICIENT for r in results if not r.ok)

    async with session_factory() as session:
        balance = await ledger.get_balance(session, "user-1")
        debits = (await session.execute(
            select(CreditTransaction).where(CreditTransaction.type == "debit")
        )).scalars().all()
    assert (balance.free, balance.paid) == (0, 0)
    assert len(debits) == free + paid


async def test_refund_restores_debited_bucket(db, seed_account):
    await seed_account("user-1", free=1, paid=1)
    debit = await ledger.try_debit_one(db, "user-1")

    refunded = await ledger.refund_one(db, "user-1", was_free=debit.was_free, reason="test")

    assert refunded
    balance = await ledger.get_balance(db, "user-1")
    assert (balance.free, balance.paid, balance.lifetime) == (1, 1, 0)


async def test_refund_without_account_changes_nothing(db):
    assert not await ledger.refund_one(db, "ghost", was_free=True, reason="test")
    assert (await db.execute(select(CreditAccount))).first() is None


async def test_credit_adds_paid_credits(db, seed_account):
    await seed_account("user-1", free=1)

    result = await ledger.credit(db, "user-1", 10, "revenuecat", reference_id="txn-1")

    assert result.ok
    assert result.new_balance.paid == 10
    assert result.new_balance.free == 1


async def test_credit_creates_missing_account(db):
    result = await ledger.credit(db, "new-user", 5, "revenuecat")

    assert result.new_balance.paid == 5
    assert result.new_balance.free == 0


@pytest.mark.parametrize("amount", [0, -3])
async def test_credit_rejects_non_positive_amounts(db, amount):
    with pytest.raises(ValueError):
        await ledger.credit(db, "user-1", amount, "test")


async def test_transactions_record_debits_and_refunds(db, seed_account):
    await seed_account("user-1", paid=2)
    await ledger.try_debit_one(db, "user-1")
    await ledger.refund_one(db, "user-1", was_free=False, reason="reservation_failed")

    transactions = await ledger.list_transactions(db, "user-1")

    assert len(transactions) == 2
    assert {t.type for t in transactions} == {"debit", "refund"}
    assert all(t.bucket == "paid" for t in transactions)
