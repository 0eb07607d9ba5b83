from datetime import timedelta

import pytest
from sqlalchemy import select

from photobatch.errors import InsufficientCreditsError, InvalidInputError, ReservationFailedError
from photobatch.models import CreditTransaction, GenerationRecord, GenerationSession
from photobatch.services import ledger, reservation, sessions

SOURCE = "https://uploads.test/selfie.jpg"


async def test_free_credit_then_insufficient(db, seed_account):
    await seed_account("user-1", free=1, paid=0)

    first = await reservation.reserve(db, "user-1", "mapleAutumn", "photorealistic", SOURCE)

    assert first.is_free
    assert (first.remaining_free, first.remaining_paid) == (0, 0)
    balance = await ledger.get_balance(db, "user-1")
    assert (balance.free, balance.paid) == (0, 0)

    with pytest.raises(InsufficientCreditsError) as exc_info:
        await reservation.reserve(db, "user-1", "mapleAutumn", "photorealistic", SOURCE)
    assert exc_info.value.to_dict() == {
        "error": "Insufficient credits",
        "code": "INSUFFICIENT_CREDITS",
        "remaining_free": 0,
        "remaining_paid": 0,
    }


async def test_reserve_opens_session_and_empty_record(db, seed_account):
    await seed_account("user-1", paid=3)

    result = await reservation.reserve(db, "user-1", "winterWonderland", "cinematic", SOURCE)

    session = await sessions.get_session(db, result.session_id)
    record = await sessions.get_record(db, result.generation_id)
    assert not result.is_free
    assert result.remaining_paid == 2
    assert session.completed_count == 0
    assert session.expected_image_count == 4
    assert session.generation_id == record.id
    assert session.expires_at - session.created_at == timedelta(seconds=300)
    assert record.image_urls == [None, None, None, None]
    assert record.status == "pending"
    assert not record.is_complete


async def test_reserve_normalizes_style_alias(db, seed_account):
    await seed_account("user-1", paid=1)

    result = await reservation.reserve(db, "user-1", "cottageLife", "oil-painting", SOURCE)

    session = await sessions.get_session(db, result.session_id)
    assert session.style_id == "oilPainting"


@pytest.mark.parametrize(
    "preset_id,style_id,source,count",
    [
        ("noSuchPreset", "photorealistic", SOURCE, 4),
        ("mapleAutumn", "anime", SOURCE, 4),
        ("mapleAutumn", "photorealistic", "", 4),
        ("mapleAutumn", "photorealistic", SOURCE, 0),
        ("mapleAutumn", "photorealistic", SOURCE, 5),
    ],
)
async def test_invalid_input_debits_nothing(db, seed_account, preset_id, style_id, source, count):
    await seed_account("user-1", paid=1)

    with pytest.raises(InvalidInputError):
        await reservation.reserve(db, "user-1", preset_id, style_id, source, count)

    balance = await ledger.get_balance(db, "user-1")
    assert balance.paid == 1
    assert (await db.execute(select(GenerationSession))).first() is None


async def test_failed_session_creation_refunds_the_debit(db, seed_account, monkeypatch):
    await seed_account("user-1", free=1)

    async def broken_create_batch(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(sessions, "create_batch", broken_create_batch)

    with pytest.raises(ReservationFailedError):
        await reservation.reserve(db, "user-1", "urbanCanada", "photorealistic", SOURCE)

    balance = await ledger.get_balance(db, "user-1")
    assert (balance.free, balance.paid, balance.lifetime) == (1, 0, 0)
    refunds = (await db.execute(
        select(CreditTransaction).where(CreditTransaction.type == "refund")
    )).scalars().all()
    assert [r.reason for r in refunds] == ["reservation_failed"]
    assert (await db.execute(select(GenerationRecord))).first() is None
