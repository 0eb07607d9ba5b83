import pytest

from photobatch.errors import InsufficientCreditsError
from photobatch.services import ledger, orchestrator, sessions

from conftest import FakeProvider

SOURCE = "https://uploads.test/selfie.jpg"


async def test_batch_runs_every_variation(db, session_factory, seed_account, provider, storage):
    await seed_account("user-1", paid=1)

    batch = await orchestrator.generate_batch(
        session_factory, "user-1", "wildernessExplorer", "vintage50s", SOURCE,
        provider=provider, storage=storage,
    )

    assert batch.succeeded == 4
    assert batch.failed_indices == []
    record = await sessions.get_record(db, batch.reservation.generation_id)
    assert record.is_complete
    assert (await ledger.get_balance(db, "user-1")).paid == 0


async def test_failed_slots_are_reported_and_retryable(db, session_factory, seed_account, storage):
    await seed_account("user-1", paid=1)
    flaky = FakeProvider(fail_indices={1, 3})

    batch = await orchestrator.generate_batch(
        session_factory, "user-1", "mapleAutumn", "photorealistic", SOURCE,
        provider=flaky, storage=storage,
    )

    assert batch.succeeded == 2
    assert batch.failed_indices == [1, 3]
    failed = [slot for slot in batch.slots if slot.status == orchestrator.FAILED]
    assert all(slot.error_code == "GENERATION_FAILED" and slot.retryable for slot in failed)

    retried = await orchestrator.retry_slot(
        session_factory, batch.reservation.session_id, 1, "user-1",
        provider=FakeProvider(), storage=storage,
    )
    assert retried.status == orchestrator.SUCCESS

    record = await sessions.get_record(db, batch.reservation.generation_id)
    assert len(record.populated_urls) == 3
    assert not record.is_complete
    # Retries never spend another credit
    assert (await ledger.get_balance(db, "user-1")).paid == 0


async def test_batch_without_credits_raises(session_factory, seed_account, provider, storage):
    await seed_account("user-1")

    with pytest.raises(InsufficientCreditsError):
        await orchestrator.generate_batch(
            session_factory, "user-1", "mapleAutumn", "photorealistic", SOURCE,
            provider=provider, storage=storage,
        )
    assert provider.submitted == []


async def test_unexpected_slot_error_does_not_abort_the_batch(db, session_factory, seed_account, provider, storage, monkeypatch):
    await seed_account("user-1", paid=1)
    complete_variation = orchestrator.complete_variation

    async def crash_on_slot_two(db, session_id, index, user_id, **kwargs):
        if index == 2:
            raise RuntimeError("worker died")
        return await complete_variation(db, session_id, index, user_id, **kwargs)

    monkeypatch.setattr(orchestrator, "complete_variation", crash_on_slot_two)

    batch = await orchestrator.generate_batch(
        session_factory, "user-1", "ehEdition", "cartoon", SOURCE,
        provider=provider, storage=storage,
    )

    assert batch.succeeded == 3
    assert batch.failed_indices == [2]
    crashed = batch.slots[2]
    assert crashed.error_code == "GENERATION_FAILED"
    assert crashed.retryable
    record = await sessions.get_record(db, batch.reservation.generation_id)
    assert len(record.populated_urls) == 3
