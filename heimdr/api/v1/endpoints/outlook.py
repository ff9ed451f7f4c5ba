"""
Outlook fetch endpoint.

Pulls the latest messages from Microsoft Graph and stores the new ones.
Analysis happens through POST /analyze-emails.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from heimdr.api.deps import get_current_user_id
from heimdr.database import get_db
from heimdr.services.email_sync import fetch_outlook_emails, ProviderNotConnected
from heimdr.services.outlook_service import OutlookAuthError, GraphAPIError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/outlook", tags=["Outlook"])


@router.get("/fetch-emails")
def outlook_fetch_emails(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Fetch the 25 most recent Outlook messages and store new ones.

    **Returns:**
    - 200: `{new_emails, skipped, emails}`
    - 401: Token invalid and could not be refreshed
    - 404: Outlook not connected
    - Graph status code if Microsoft Graph returns an error
    """
    try:
        result = fetch_outlook_emails(db, user_id)
    except ProviderNotConnected as e:
        logger.info("📧 Outlook: No token found for user %s", user_id)
        return JSONResponse(status_code=404, content={"error": str(e)})
    except OutlookAuthError:
        return JSONResponse(
            status_code=401,
            content={"error": "Outlook authentication failed - please reconnect your account"}
        )
    except GraphAPIError as e:
        return JSONResponse(
            status_code=e.status_code,
            content={"error": "Failed to fetch emails from Outlook"}
        )
    except Exception:
        logger.exception("📧 Outlook: Unexpected error")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return result.to_dict()
