"""
Gmail API access for connected user accounts.

Tokens live in the gmail_tokens table (one row per user). Calls that
fail with an invalid/expired token refresh it once, persist the new
token and retry; a second failure is not retried.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Callable, Optional, TypeVar

import httplib2
from google_auth_oauthlib.flow import Flow
from google.oauth2.credentials import Credentials
from google.auth.transport.requests import Request
from google.auth.exceptions import RefreshError
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from sqlalchemy.orm import Session

from heimdr.models.tokens import GmailToken
from heimdr.services import db_service

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]

TOKEN_URI = "https://oauth2.googleapis.com/token"
AUTH_URI = "https://accounts.google.com/o/oauth2/v2/auth"

FETCH_LIMIT = 10

T = TypeVar("T")


class GmailAuthError(Exception):
    """Raised when Gmail rejects the token and it cannot be refreshed."""


class GmailConfigError(Exception):
    """Raised when the Google OAuth client is not configured."""


def _client_config() -> dict:
    client_id = os.getenv("GOOGLE_CLIENT_ID")
    client_secret = os.getenv("GOOGLE_CLIENT_SECRET")

    if not client_id or not client_secret:
        raise GmailConfigError("Missing GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET configuration")

    return {
        "web": {
            "client_id": client_id,
            "client_secret": client_secret,
            "auth_uri": AUTH_URI,
            "token_uri": TOKEN_URI,
        }
    }


# ============ OAUTH FLOW ============

def get_oauth_flow(redirect_uri: str, code_verifier: Optional[str] = None) -> Flow:
    """
    Create OAuth flow with dynamic redirect URI.

    Without a code_verifier a fresh PKCE verifier is generated; the
    callback must rebuild the flow with the same verifier.
    """
    return Flow.from_client_config(
        _client_config(),
        scopes=SCOPES,
        redirect_uri=redirect_uri,
        code_verifier=code_verifier,
        autogenerate_code_verifier=code_verifier is None
    )


def get_authorization_url(redirect_uri: str) -> tuple[str, str]:
    """
    Build the Google consent URL.

    Returns:
        (auth_url, code_verifier)
    """
    flow = get_oauth_flow(redirect_uri)
    auth_url, _state = flow.authorization_url(
        access_type="offline",  # Get refresh token
        prompt="consent"  # Force consent to get refresh token
    )
    return auth_url, flow.code_verifier


def exchange_code(code: str, redirect_uri: str, code_verifier: str) -> Credentials:
    """Exchange an authorization code for credentials."""
    flow = get_oauth_flow(redirect_uri, code_verifier=code_verifier)
    flow.fetch_token(code=code)
    return flow.credentials


def expiry_to_utc(expiry: Optional[datetime]) -> Optional[datetime]:
    """google-auth reports expiry as naive UTC."""
    if expiry is None:
        return None
    if expiry.tzinfo is None:
        return expiry.replace(tzinfo=timezone.utc)
    return expiry


# ============ SERVICE ============

def build_credentials(access_token: str, refresh_token: Optional[str] = None) -> Credentials:
    """Credentials for stored tokens; refresh needs the client config."""
    config = _client_config()["web"]
    return Credentials(
        token=access_token,
        refresh_token=refresh_token or None,
        token_uri=TOKEN_URI,
        client_id=config["client_id"],
        client_secret=config["client_secret"],
        scopes=SCOPES
    )


def build_gmail_service(credentials: Credentials):
    """
    Build a Gmail API client for the given credentials.

    The transport never refreshes on its own: a 401 must reach
    GmailClient.execute so the refreshed token gets persisted.
    """
    http = AuthorizedHttp(credentials, http=httplib2.Http(), refresh_status_codes=())
    return build("gmail", "v1", http=http, cache_discovery=False)


def get_profile_email(service) -> Optional[str]:
    """Mailbox address of the authenticated user."""
    profile = service.users().getProfile(userId="me").execute()
    return profile.get("emailAddress")


def list_recent_message_ids(service, max_results: int = FETCH_LIMIT) -> list[str]:
    """Ids of the most recent messages."""
    results = service.users().messages().list(
        userId="me",
        maxResults=max_results
    ).execute()
    return [m["id"] for m in results.get("messages", [])]


def get_full_message(service, message_id: str) -> dict:
    """Fetch full email message including payload."""
    return service.users().messages().get(
        userId="me",
        id=message_id,
        format="full"
    ).execute()


# ============ TOKEN REFRESH ============

def is_token_error(error: Exception) -> bool:
    """True for errors caused by an invalid or expired access token."""
    if isinstance(error, RefreshError):
        return True
    if isinstance(error, HttpError) and error.resp.status == 401:
        return True
    message = str(error)
    return "invalid_token" in message or "Invalid Credentials" in message


def refresh_access_token(db: Session, user_id: str) -> Credentials:
    """
    Refresh the user's Gmail token and persist it.

    Raises:
        GmailAuthError: No refresh token stored, or Google refused it
    """
    token = db_service.get_token(db, GmailToken, user_id)
    if token is None or not token.refresh_token:
        logger.info("📬 Gmail: No refresh token available for refresh attempt")
        raise GmailAuthError("Failed to refresh access token")

    creds = build_credentials(token.access_token, token.refresh_token)
    try:
        creds.refresh(Request())
    except RefreshError as e:
        logger.error("📬 Gmail: Token refresh failed: %s", e)
        raise GmailAuthError("Failed to refresh access token") from e

    if not creds.token:
        raise GmailAuthError("Failed to refresh access token")

    db_service.update_access_token(
        db,
        GmailToken,
        user_id,
        access_token=creds.token,
        refresh_token=creds.refresh_token,
        expires_at=expiry_to_utc(creds.expiry)
    )
    logger.info("📬 Gmail: Successfully refreshed and updated access token")
    return creds


class GmailClient:
    """
    Gmail API client bound to one user's stored tokens.

    Every call goes through `execute`, which refreshes the token
    once on an auth error and retries.
    """

    def __init__(self, db: Session, user_id: str, token: GmailToken):
        self.db = db
        self.user_id = user_id
        self.service = build_gmail_service(
            build_credentials(token.access_token, token.refresh_token)
        )

    def execute(self, api_call: Callable[[object], T]) -> T:
        try:
            return api_call(self.service)
        except (HttpError, RefreshError) as e:
            if not is_token_error(e):
                raise
            logger.info("📬 Gmail: Token error detected, attempting refresh...")

        creds = refresh_access_token(self.db, self.user_id)
        self.service = build_gmail_service(creds)
        try:
            return api_call(self.service)
        except (HttpError, RefreshError) as e:
            if is_token_error(e):
                raise GmailAuthError("Gmail token rejected after refresh") from e
            raise

    def list_recent_message_ids(self, max_results: int = FETCH_LIMIT) -> list[str]:
        return self.execute(lambda service: list_recent_message_ids(service, max_results))

    def get_full_message(self, message_id: str) -> dict:
        return self.execute(lambda service: get_full_message(service, message_id))
