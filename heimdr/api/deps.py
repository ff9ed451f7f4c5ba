"""
Shared FastAPI dependencies.

Session handling lives in Supabase; requests reach this service with
the authenticated user's id in the X-User-Id header, or in the
heimdr_user_id cookie for browser redirects (OAuth login/callback).
"""

import os
from typing import Optional

from fastapi import Header, HTTPException, Request

USER_ID_HEADER = "X-User-Id"
USER_ID_COOKIE = "heimdr_user_id"


def resolve_user_id(request: Request) -> Optional[str]:
    """User id from header or cookie, None if absent."""
    return request.headers.get(USER_ID_HEADER) or request.cookies.get(USER_ID_COOKIE) or None


def get_current_user_id(request: Request) -> str:
    """FastAPI dependency: 401 unless the request identifies a user."""
    user_id = resolve_user_id(request)
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Only scheduled invocations carrying the shared secret may run cron jobs."""
    secret = os.getenv("CRON_SECRET")
    if not secret:
        raise HTTPException(status_code=500, detail="CRON_SECRET not configured")
    if authorization != f"Bearer {secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")
