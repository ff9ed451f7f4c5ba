"""
Phishing alert endpoint.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from heimdr.services.alert_service import ALERT_RISKS, is_valid_email, send_alert

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Alerts"])


@router.post("/send-alert")
async def send_alert_endpoint(request: Request):
    """
    Send a phishing warning email.

    Body: `{"email": "...", "risk": "high" | "medium"}`
    """
    try:
        body = await request.json()
    except ValueError:
        body = None

    if not isinstance(body, dict):
        return JSONResponse(status_code=400, content={"error": "Ugyldig input"})

    email = body.get("email")
    risk = body.get("risk")

    if not isinstance(email, str) or not is_valid_email(email) or risk not in ALERT_RISKS:
        logger.info("Invalid alert input: %s", body)
        return JSONResponse(status_code=400, content={"error": "Ugyldig input"})

    try:
        send_alert(email, risk)
    except Exception as e:
        logger.error("Failed to send alert: %s", e)
        return JSONResponse(status_code=500, content={"error": "Kunne ikke sende varsel"})

    return {"success": True}
