"""
AI analysis endpoint.

Classifies every stored email of the current user that has not been
analyzed yet.
"""

import logging
import os

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from heimdr.api.deps import get_current_user_id
from heimdr.database import get_db
from heimdr.services import db_service
from heimdr.services.email_sync import analyze_pending_emails
from heimdr.services.risk_analyzer import check_openai_connection

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Analysis"])


@router.post("/analyze-emails")
def analyze_emails(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Analyze all unanalyzed emails, newest first.

    Emails without sender, subject or body are skipped and reported
    in `errors` together with failed classifications.
    """
    if not os.getenv("OPENAI_API_KEY"):
        logger.error("❌ OpenAI API key is missing")
        return JSONResponse(status_code=500, content={"error": "OpenAI API key is not configured"})

    if not check_openai_connection():
        logger.error("❌ Could not connect to OpenAI")
        return JSONResponse(status_code=500, content={"error": "Could not connect to OpenAI API"})

    if db_service.get_pending_count(db, user_id) == 0:
        return {
            "new_analyzed_emails": 0,
            "message": "Ingen nye e-poster å analysere"
        }

    try:
        result = analyze_pending_emails(db, user_id)
    except Exception as e:
        logger.exception("❌ Fatal error in analyze-emails")
        return JSONResponse(status_code=500, content={"error": str(e) or "Failed to analyze emails"})

    return result.to_dict()
