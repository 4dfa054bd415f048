# app/routes/internal.py

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.utils.dependencies import get_mail_sender, get_store, get_vault
from app.utils.errors import PersistenceError
from scheduler.dispatcher import process_due_emails

logger = logging.getLogger(__name__)

router = APIRouter()

# ------------------ /pending ------------------

@router.get("/pending")
async def process_pending(store=Depends(get_store), vault=Depends(get_vault), sender=Depends(get_mail_sender)):
    logger.info("📨 /pending CALLED")
    try:
        results = await process_due_emails(store, vault, sender)
    except PersistenceError as e:
        logger.error(f"Failed to fetch pending emails: {e}")
        return JSONResponse(content={"error": "Failed to fetch pending emails"}, status_code=500)

    return {
        "processed": len(results),
        "results": [result.model_dump(exclude_none=True) for result in results],
    }
