"""
Outlook access via Microsoft identity platform (MSAL) and Microsoft Graph.

Mirrors gmail_service: tokens live in outlook_tokens, and a Graph 401
triggers one refresh-token exchange followed by a single retry.
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import msal
import requests
from sqlalchemy.orm import Session

from heimdr.models.tokens import OutlookToken
from heimdr.services import db_service
from heimdr.services.text_cleaner import html_to_text

logger = logging.getLogger(__name__)

AUTHORITY = "https://login.microsoftonline.com/common"
GRAPH_URL = "https://graph.microsoft.com/v1.0"

# MSAL adds offline_access/openid/profile itself and rejects them here
SCOPES = ["Mail.Read", "User.Read"]

FETCH_LIMIT = 25
MESSAGE_FIELDS = "id,subject,from,receivedDateTime,bodyPreview,body"
REQUEST_TIMEOUT = 30


class OutlookAuthError(Exception):
    """Raised when Graph rejects the token and it cannot be refreshed."""


class OutlookConfigError(Exception):
    """Raised when the Microsoft OAuth client is not configured."""


class GraphAPIError(Exception):
    """Non-auth error response from Microsoft Graph."""

    def __init__(self, status_code: int, details):
        super().__init__(f"Graph API error {status_code}")
        self.status_code = status_code
        self.details = details


def get_msal_app() -> msal.ConfidentialClientApplication:
    client_id = os.getenv("OUTLOOK_CLIENT_ID")
    client_secret = os.getenv("OUTLOOK_CLIENT_SECRET")

    if not client_id or not client_secret:
        raise OutlookConfigError("Missing OUTLOOK_CLIENT_ID / OUTLOOK_CLIENT_SECRET configuration")

    return msal.ConfidentialClientApplication(
        client_id,
        client_credential=client_secret,
        authority=AUTHORITY
    )


# ============ OAUTH FLOW ============

def get_authorization_url(redirect_uri: str) -> str:
    """Build the Microsoft consent URL."""
    return get_msal_app().get_authorization_request_url(
        SCOPES,
        redirect_uri=redirect_uri,
        response_mode="query",
        prompt="consent"
    )


def _expires_at(result: dict) -> Optional[datetime]:
    expires_in = result.get("expires_in")
    if not expires_in:
        return None
    return datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))


def exchange_code(code: str, redirect_uri: str) -> dict:
    """
    Exchange an authorization code for tokens.

    Returns:
        MSAL result dict with access_token, refresh_token and expires_at

    Raises:
        OutlookAuthError: Microsoft returned no access token
    """
    result = get_msal_app().acquire_token_by_authorization_code(
        code,
        scopes=SCOPES,
        redirect_uri=redirect_uri
    )

    if not result.get("access_token"):
        logger.error("📧 Outlook: Token exchange failed: %s", result.get("error_description") or result.get("error"))
        raise OutlookAuthError(result.get("error_description") or "Failed to get token")

    result["expires_at"] = _expires_at(result)
    return result


def refresh_access_token(db: Session, user_id: str) -> str:
    """
    Refresh the user's Outlook token and persist it.

    Raises:
        OutlookAuthError: No refresh token stored, or Microsoft refused it
    """
    token = db_service.get_token(db, OutlookToken, user_id)
    if token is None or not token.refresh_token:
        logger.info("📧 Outlook: No refresh token available for refresh attempt")
        raise OutlookAuthError("Failed to refresh access token")

    result = get_msal_app().acquire_token_by_refresh_token(token.refresh_token, scopes=SCOPES)
    if not result.get("access_token"):
        logger.error("📧 Outlook: Token refresh failed: %s", result.get("error_description") or result.get("error"))
        raise OutlookAuthError("Failed to refresh access token")

    db_service.update_access_token(
        db,
        OutlookToken,
        user_id,
        access_token=result["access_token"],
        refresh_token=result.get("refresh_token"),
        expires_at=_expires_at(result)
    )
    logger.info("📧 Outlook: Successfully refreshed and updated access token")
    return result["access_token"]


# ============ GRAPH ============

def graph_get(access_token: str, path: str, params: Optional[dict] = None) -> requests.Response:
    return requests.get(
        f"{GRAPH_URL}{path}",
        headers={
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json"
        },
        params=params,
        timeout=REQUEST_TIMEOUT
    )


def _json_or_text(response: requests.Response):
    try:
        return response.json()
    except ValueError:
        return response.text


def get_user_email(access_token: str) -> Optional[str]:
    """Mailbox address of the signed-in Microsoft user."""
    response = graph_get(access_token, "/me")
    if not response.ok:
        raise GraphAPIError(response.status_code, _json_or_text(response))
    data = response.json()
    return data.get("mail") or data.get("userPrincipalName")


def parse_received_date(value: Optional[str]) -> Optional[datetime]:
    """Parse Graph's receivedDateTime ("2024-05-01T10:00:00Z")."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("📧 Outlook: Unparseable receivedDateTime %r", value)
        return None


def message_body(message: dict) -> str:
    """Full body as text, falling back to Graph's bodyPreview."""
    body = message.get("body") or {}
    content = body.get("content") or ""

    if content and body.get("contentType", "").lower() == "html":
        content = html_to_text(content)

    return content.strip() or message.get("bodyPreview") or ""


def message_sender(message: dict) -> str:
    return ((message.get("from") or {}).get("emailAddress") or {}).get("address", "")


class OutlookClient:
    """Graph client bound to one user's stored tokens."""

    def __init__(self, db: Session, user_id: str, token: OutlookToken):
        self.db = db
        self.user_id = user_id
        self.access_token = token.access_token

    def get(self, path: str, params: Optional[dict] = None):
        response = graph_get(self.access_token, path, params)

        if response.status_code == 401:
            logger.info("📧 Outlook: Token error detected, attempting refresh...")
            self.access_token = refresh_access_token(self.db, self.user_id)
            response = graph_get(self.access_token, path, params)
            if response.status_code == 401:
                raise OutlookAuthError("Outlook token rejected after refresh")

        if not response.ok:
            details = _json_or_text(response)
            logger.error("📧 Outlook: API error %s: %s", response.status_code, details)
            raise GraphAPIError(response.status_code, details)

        return response.json()

    def list_recent_messages(self, top: int = FETCH_LIMIT) -> list[dict]:
        data = self.get("/me/messages", params={"$top": top, "$select": MESSAGE_FIELDS})
        messages = data.get("value")
        if not isinstance(messages, list):
            return []
        return messages
