"""
Gmail fetch endpoint.

Pulls the latest messages for the current user, stores new or
not-yet-analyzed ones and analyzes them right away.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from heimdr.api.deps import get_current_user_id
from heimdr.database import get_db
from heimdr.services.email_sync import fetch_gmail_emails, ProviderNotConnected
from heimdr.services.gmail_service import GmailAuthError, is_token_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gmail", tags=["Gmail"])


@router.get("/fetch-emails")
def gmail_fetch_emails(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Fetch and analyze the 10 most recent Gmail messages.

    **Returns:**
    - 200: `{new_emails, skipped, emails, analysis_errors?}`
    - 401: Token invalid and could not be refreshed
    - 404: Gmail not connected
    """
    try:
        result = fetch_gmail_emails(db, user_id)
    except ProviderNotConnected as e:
        logger.info("📬 Gmail: No token found for user %s", user_id)
        return JSONResponse(status_code=404, content={"error": str(e)})
    except GmailAuthError:
        return JSONResponse(
            status_code=401,
            content={"error": "Gmail authentication failed - please reconnect your account"}
        )
    except Exception as e:
        if is_token_error(e):
            return JSONResponse(
                status_code=401,
                content={"error": "Gmail authentication failed - please reconnect your account"}
            )
        logger.exception("📬 Gmail: Unexpected error")
        return JSONResponse(status_code=500, content={"error": "Failed to fetch emails"})

    return result.to_dict()
