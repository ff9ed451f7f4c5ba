"""
Scheduled jobs, invoked by an external cron with the CRON_SECRET bearer token.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from heimdr.api.deps import verify_cron_secret
from heimdr.database import get_db
from heimdr.services.email_sync import run_scheduled_fetch, run_scheduled_analysis

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["Scheduled"], dependencies=[Depends(verify_cron_secret)])


@router.post("/fetch-emails")
def cron_fetch_emails(db: Session = Depends(get_db)):
    """Fetch Gmail and Outlook for every connected user."""
    logger.info("🔄 Scheduled email fetch triggered")
    try:
        return run_scheduled_fetch(db)
    except Exception:
        logger.exception("Fatal error during email fetching")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error during email fetching"}
        )


@router.post("/analyze-emails")
def cron_analyze_emails(db: Session = Depends(get_db)):
    """Analyze pending emails for every connected user."""
    logger.info("🔄 Scheduled analysis triggered")
    try:
        return run_scheduled_analysis(db)
    except Exception as e:
        logger.exception("Fatal error during analysis")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})
