import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import delete

from photobatch.database import get_db
from photobatch.models import (
    CreditAccount,
    CreditTransaction,
    GenerationRecord,
    GenerationSession,
    Image,
)
from photobatch.services.storage import get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/account", tags=["account"])


@router.delete("/{user_id}")
async def delete_account(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    storage=Depends(get_storage),
):
    """
    Delete a user's images, generations, sessions and credits.

    Stored files go first and best-effort: a storage failure is logged and
    the database rows are removed regardless.
    """
    try:
        files_deleted = await storage.delete_prefix(f"generations/{user_id}")
    except (OSError, ValueError) as e:
        logger.warning("Failed to delete stored files for user %s: %s", user_id, e)
        files_deleted = 0

    counts = {}
    for name, model in (
        ("images", Image),
        ("sessions", GenerationSession),
        ("generations", GenerationRecord),
        ("credit_transactions", CreditTransaction),
        ("credit_accounts", CreditAccount),
    ):
        result = await db.execute(
            delete(model)
            .where(model.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        counts[name] = result.rowcount
    await db.commit()

    logger.info("Deleted account %s: %s, %d stored file(s)", user_id, counts, files_deleted)
    return {"success": True, "deleted": counts, "files_deleted": files_deleted}
