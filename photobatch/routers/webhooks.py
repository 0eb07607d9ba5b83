import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from photobatch.config import get_settings
from photobatch.database import get_db
from photobatch.models import ProcessedPurchase
from photobatch.schemas import RevenueCatWebhook
from photobatch.services import ledger

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

PURCHASE_EVENTS = ("INITIAL_PURCHASE", "NON_RENEWING_PURCHASE", "PRODUCT_CHANGE")
ANONYMOUS_PREFIX = "$RCAnonymousID:"


@router.post("/revenuecat")
async def revenuecat_webhook(
    payload: RevenueCatWebhook,
    authorization: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
):
    """
    Grant purchased credits from a RevenueCat event.

    Each store transaction is credited at most once: the transaction id is
    recorded in the same commit as the grant, so a redelivered event is
    answered with ``already_processed``.
    """
    if not settings.revenuecat_webhook_secret:
        logger.error("RevenueCat webhook secret is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook not configured"
        )
    if authorization != f"Bearer {settings.revenuecat_webhook_secret}":
        logger.warning("RevenueCat webhook called with an invalid authorization header")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    event = payload.event
    logger.info(
        "RevenueCat event %s for %s (product=%s, environment=%s)",
        event.type, event.app_user_id, event.product_id, event.environment,
    )

    if event.type not in PURCHASE_EVENTS:
        return {"success": True, "ignored": True}

    credits = settings.product_credits.get(event.product_id or "")
    if not credits:
        logger.warning("RevenueCat event for unknown product %s", event.product_id)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown product: {event.product_id}"
        )

    if event.app_user_id.startswith(ANONYMOUS_PREFIX):
        logger.warning("RevenueCat event for anonymous user skipped")
        return {"success": True, "skipped": True}

    if not event.transaction_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing transaction_id"
        )

    user_id = event.app_user_id
    await ledger.ensure_account(db, user_id)

    db.add(ProcessedPurchase(
        transaction_id=event.transaction_id,
        user_id=user_id,
        product_id=event.product_id,
        credits=credits,
    ))
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        logger.info("Transaction %s already processed", event.transaction_id)
        return {"success": True, "already_processed": True}

    # The purchase marker commits together with the grant
    try:
        result = await ledger.credit(
            db, user_id, credits, source="revenuecat", reference_id=event.transaction_id
        )
    except IntegrityError:
        logger.info("Transaction %s already processed", event.transaction_id)
        return {"success": True, "already_processed": True}

    return {
        "success": True,
        "credits_added": credits,
        "paid_credits": result.new_balance.paid,
        "total_credits": result.new_balance.total,
    }
