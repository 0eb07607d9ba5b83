"""Credit ledger: per-user balances and their atomic mutations.

Every balance change is a single conditional UPDATE executed by the
database, so concurrent requests for the same user cannot overspend.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from photobatch.clock import utcnow
from photobatch.config import get_settings
from photobatch.models import CreditAccount, CreditTransaction

logger = logging.getLogger(__name__)
settings = get_settings()

INSUFFICIENT = "INSUFFICIENT"


@dataclass
class Balance:
    free: int
    paid: int
    lifetime: int

    @property
    def total(self) -> int:
        return self.free + self.paid


@dataclass
class DebitResult:
    ok: bool
    was_free: bool = False
    reason: str | None = None
    remaining_free: int = 0
    remaining_paid: int = 0


@dataclass
class CreditResult:
    ok: bool
    new_balance: Balance


def _default_balance() -> Balance:
    return Balance(free=max(settings.starting_free_credits, 0), paid=0, lifetime=0)


async def get_balance(db: AsyncSession, user_id: str) -> Balance:
    """Current balance; a user without an account row sees the signup grant."""
    result = await db.execute(
        select(
            CreditAccount.free_credits,
            CreditAccount.paid_credits,
            CreditAccount.lifetime_generations,
        ).where(CreditAccount.user_id == user_id)
    )
    row = result.first()
    if row is None:
        return _default_balance()
    return Balance(free=row.free_credits, paid=row.paid_credits, lifetime=row.lifetime_generations)


async def ensure_account(db: AsyncSession, user_id: str) -> None:
    """Create the account with the starting grant if it does not exist yet."""
    existing = await db.execute(
        select(CreditAccount.user_id).where(CreditAccount.user_id == user_id)
    )
    if existing.scalar_one_or_none() is not None:
        return

    grant = max(settings.starting_free_credits, 0)
    db.add(CreditAccount(user_id=user_id, free_credits=grant, paid_credits=0))
    if grant:
        db.add(CreditTransaction(
            user_id=user_id,
            type="grant",
            amount=grant,
            bucket="free",
            reason="signup_grant",
        ))
    try:
        await db.commit()
        logger.info("Created credit account for user %s (free=%d)", user_id, grant)
    except IntegrityError:
        # Another request created it first
        await db.rollback()


async def try_debit_one(
    db: AsyncSession,
    user_id: str,
    *,
    preset_id: str | None = None,
    style_id: str | None = None,
    reference_id: str | None = None,
) -> DebitResult:
    """Debit exactly one credit, free before paid.

    Insufficient balance is a normal result (``ok=False``), not an error.
    Database errors propagate after a rollback and leave no partial effect.
    """
    await ensure_account(db, user_id)

    now = utcnow()
    buckets = (
        ("free", CreditAccount.free_credits),
        ("paid", CreditAccount.paid_credits),
    )
    try:
        for bucket, column in buckets:
            stmt = (
                update(CreditAccount)
                .where(CreditAccount.user_id == user_id, column > 0)
                .values({
                    column.key: column - 1,
                    "lifetime_generations": CreditAccount.lifetime_generations + 1,
                    "last_generation_at": now,
                    "last_preset_id": preset_id,
                    "last_style_id": style_id,
                })
                .execution_options(synchronize_session=False)
            )
            result = await db.execute(stmt)
            if result.rowcount == 1:
                db.add(CreditTransaction(
                    user_id=user_id,
                    type="debit",
                    amount=1,
                    bucket=bucket,
                    reason="generation",
                    reference_id=reference_id,
                ))
                await db.commit()
                balance = await get_balance(db, user_id)
                logger.info(
                    "Debited 1 %s credit from user %s (free=%d, paid=%d)",
                    bucket, user_id, balance.free, balance.paid,
                )
                return DebitResult(
                    ok=True,
                    was_free=bucket == "free",
                    remaining_free=balance.free,
                    remaining_paid=balance.paid,
                )
        await db.rollback()
    except Exception:
        await db.rollback()
        raise

    balance = await get_balance(db, user_id)
    return DebitResult(
        ok=False,
        reason=INSUFFICIENT,
        remaining_free=balance.free,
        remaining_paid=balance.paid,
    )


async def stage_refund(
    db: AsyncSession,
    user_id: str,
    *,
    was_free: bool,
    reason: str,
    reference_id: str | None = None,
) -> bool:
    """Apply a one-credit refund inside the caller's transaction.

    Restores the bucket that was debited and takes back the generation
    counter bump. Returns False (changing nothing) when the account is gone.
    """
    bucket = "free" if was_free else "paid"
    column = CreditAccount.free_credits if was_free else CreditAccount.paid_credits
    lifetime = CreditAccount.lifetime_generations
    result = await db.execute(
        update(CreditAccount)
        .where(CreditAccount.user_id == user_id)
        .values({
            column.key: column + 1,
            "lifetime_generations": case((lifetime > 0, lifetime - 1), else_=0),
        })
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning("Refund skipped: no credit account for user %s", user_id)
        return False

    db.add(CreditTransaction(
        user_id=user_id,
        type="refund",
        amount=1,
        bucket=bucket,
        reason=reason,
        reference_id=reference_id,
    ))
    logger.info("Refunding 1 %s credit to user %s (%s)", bucket, user_id, reason)
    return True


async def refund_one(
    db: AsyncSession,
    user_id: str,
    *,
    was_free: bool,
    reason: str,
    reference_id: str | None = None,
) -> bool:
    """Compensating credit for a debit whose batch never produced anything."""
    try:
        refunded = await stage_refund(
            db, user_id, was_free=was_free, reason=reason, reference_id=reference_id
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return refunded


async def credit(
    db: AsyncSession,
    user_id: str,
    amount: int,
    source: str,
    reference_id: str | None = None,
) -> CreditResult:
    """Add purchased credits.

    The ledger does not deduplicate: callers granting credits for an
    external purchase must pass a unique ``reference_id`` per grant and
    guard redelivery themselves. Anything the caller has pending in ``db``
    is committed together with the grant.
    """
    grant = int(amount)
    if grant <= 0:
        raise ValueError("amount must be greater than 0")

    try:
        result = await db.execute(
            update(CreditAccount)
            .where(CreditAccount.user_id == user_id)
            .values(paid_credits=CreditAccount.paid_credits + grant)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.add(CreditAccount(user_id=user_id, free_credits=0, paid_credits=grant))
        db.add(CreditTransaction(
            user_id=user_id,
            type="grant",
            amount=grant,
            bucket="paid",
            reason=source,
            reference_id=reference_id,
        ))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    balance = await get_balance(db, user_id)
    logger.info(
        "Credited %d paid credits to user %s via %s (paid=%d)",
        grant, user_id, source, balance.paid,
    )
    return CreditResult(ok=True, new_balance=balance)


async def list_transactions(
    db: AsyncSession, user_id: str, limit: int = 100
) -> list[CreditTransaction]:
    result = await db.execute(
        select(CreditTransaction)
        .where(CreditTransaction.user_id == user_id)
        .order_by(CreditTransaction.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
