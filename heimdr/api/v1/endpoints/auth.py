"""
OAuth endpoints for connecting Gmail and Outlook accounts.

Flow (per provider):
1. GET /auth/{provider}/login -> Redirects to the provider consent screen
2. Provider redirects back to /auth/{provider}/callback with code
3. Callback exchanges code for tokens, stores them and redirects to the dashboard
"""

import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse, JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from heimdr.api.deps import get_current_user_id, resolve_user_id
from heimdr.database import get_db
from heimdr.models.tokens import GmailToken, OutlookToken
from heimdr.services import db_service, gmail_service, outlook_service

logger = logging.getLogger(__name__)


# Response Models
class ProviderStatus(BaseModel):
    """Connection state of one provider."""
    connected: bool
    email: Optional[str] = None


class AuthStatusResponse(BaseModel):
    """Connection state of all providers for the current user."""
    gmail: ProviderStatus
    outlook: ProviderStatus


router = APIRouter(prefix="/auth", tags=["Authentication"])

CODE_VERIFIER_COOKIE = "code_verifier"

PROVIDER_MODELS = {
    "gmail": GmailToken,
    "outlook": OutlookToken,
}


def _callback_url(request: Request, provider: str) -> str:
    """Build callback URL dynamically based on request."""
    base_url = str(request.base_url).rstrip("/")
    return f"{base_url}/api/v1/auth/{provider}/callback"


def _dashboard_url(query: str) -> str:
    app_url = os.getenv("APP_URL", "http://localhost:3000").rstrip("/")
    return f"{app_url}/dashboard?{query}"


# ============ GMAIL ============

@router.get("/gmail/login")
def gmail_login(request: Request):
    """
    Start Gmail OAuth flow - redirects to Google consent screen.

    The PKCE code verifier is kept in a short-lived cookie for the callback.
    """
    try:
        auth_url, code_verifier = gmail_service.get_authorization_url(_callback_url(request, "gmail"))
    except gmail_service.GmailConfigError as e:
        raise HTTPException(status_code=500, detail=str(e))

    response = RedirectResponse(url=auth_url)
    response.set_cookie(
        CODE_VERIFIER_COOKIE,
        code_verifier,
        max_age=600,
        httponly=True,
        secure=request.url.scheme == "https",
        samesite="lax"
    )
    return response


@router.get("/gmail/callback")
def gmail_callback(
    request: Request,
    code: str = None,
    error: str = None,
    db: Session = Depends(get_db)
):
    """
    Gmail OAuth callback - exchanges authorization code for tokens.

    Always redirects back to the dashboard with ?success=true or ?error=<code>.
    """
    if error or not code:
        return RedirectResponse(_dashboard_url("error=no_code"))

    code_verifier = request.cookies.get(CODE_VERIFIER_COOKIE)
    if not code_verifier:
        logger.error("Missing code_verifier in callback cookies!")
        return RedirectResponse(_dashboard_url("error=missing_code_verifier"))

    user_id = resolve_user_id(request)
    if not user_id:
        logger.error("No user id on Gmail callback")
        return RedirectResponse(_dashboard_url("error=no_user"))

    try:
        credentials = gmail_service.exchange_code(code, _callback_url(request, "gmail"), code_verifier)
    except Exception as e:
        logger.error("No access_token from Google: %s", e)
        return RedirectResponse(_dashboard_url("error=no_access_token"))

    if not credentials.token:
        return RedirectResponse(_dashboard_url("error=no_access_token"))

    # Mailbox address is nice to have; the connection works without it
    gmail_email = None
    try:
        service = gmail_service.build_gmail_service(credentials)
        gmail_email = gmail_service.get_profile_email(service)
        logger.info("Fetched Gmail user email: %s", gmail_email)
    except Exception as e:
        logger.error("Failed to fetch Gmail user email: %s", e)

    try:
        db_service.upsert_token(
            db,
            GmailToken,
            user_id,
            access_token=credentials.token,
            refresh_token=credentials.refresh_token,
            expires_at=gmail_service.expiry_to_utc(credentials.expiry),
            email=gmail_email
        )
    except Exception as e:
        logger.error("Token storage error: %s", e)
        db.rollback()
        return RedirectResponse(_dashboard_url("error=token_store_error"))

    logger.info("Gmail tokens upserted successfully!")
    response = RedirectResponse(_dashboard_url("success=true"))
    response.delete_cookie(CODE_VERIFIER_COOKIE)
    return response


# ============ OUTLOOK ============

def _outlook_redirect_uri(request: Request) -> str:
    return os.getenv("OUTLOOK_REDIRECT_URI") or _callback_url(request, "outlook")


@router.get("/outlook/login")
def outlook_login(request: Request):
    """Start Outlook OAuth flow - redirects to Microsoft consent screen."""
    try:
        auth_url = outlook_service.get_authorization_url(_outlook_redirect_uri(request))
    except outlook_service.OutlookConfigError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return RedirectResponse(url=auth_url)


@router.get("/outlook/callback")
def outlook_callback(
    request: Request,
    code: str = None,
    db: Session = Depends(get_db)
):
    """Outlook OAuth callback - exchanges code, looks up mailbox, stores tokens."""
    if not code:
        return JSONResponse(status_code=400, content={"error": "Missing code param"})

    user_id = resolve_user_id(request)
    if not user_id:
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    try:
        token_data = outlook_service.exchange_code(code, _outlook_redirect_uri(request))
    except outlook_service.OutlookConfigError as e:
        return JSONResponse(status_code=500, content={"error": str(e)})
    except outlook_service.OutlookAuthError as e:
        return JSONResponse(status_code=500, content={"error": "Failed to get token", "details": str(e)})

    try:
        user_email = outlook_service.get_user_email(token_data["access_token"])
    except outlook_service.GraphAPIError as e:
        logger.error("Failed to get user email: %s", e.details)
        user_email = None

    if not user_email:
        return JSONResponse(status_code=500, content={"error": "Failed to get user email"})

    try:
        db_service.upsert_token(
            db,
            OutlookToken,
            user_id,
            access_token=token_data["access_token"],
            refresh_token=token_data.get("refresh_token"),
            expires_at=token_data.get("expires_at"),
            email=user_email
        )
    except Exception as e:
        logger.error("Failed to store token: %s", e)
        db.rollback()
        return JSONResponse(status_code=500, content={"error": "Failed to store token"})

    return RedirectResponse(_dashboard_url("success=true"))


# ============ STATUS / DISCONNECT ============

@router.get("/status", response_model=AuthStatusResponse)
def auth_status(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> AuthStatusResponse:
    """Which providers the current user has connected."""
    statuses = {}
    for provider, model in PROVIDER_MODELS.items():
        token = db_service.get_token(db, model, user_id)
        statuses[provider] = ProviderStatus(
            connected=token is not None,
            email=token.email if token else None
        )
    return AuthStatusResponse(**statuses)


@router.delete("/{provider}")
def disconnect(
    provider: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Disconnect a provider by deleting its stored tokens.

    Already fetched emails are kept.
    """
    model = PROVIDER_MODELS.get(provider)
    if model is None:
        raise HTTPException(status_code=404, detail=f"Unknown provider: {provider}")

    if db_service.delete_token(db, model, user_id):
        return {"success": True, "message": f"{provider} disconnected."}

    return {"success": True, "message": f"{provider} was not connected."}
