"""
Database service layer for Heimdr.

This module provides CRUD operations with upsert logic:
- Email storage keyed on provider message id
- Analysis results
- Dashboard queries
- Per-user OAuth token storage for Gmail and Outlook
"""

from sqlalchemy.orm import Session
from sqlalchemy import func
from datetime import datetime, timezone
from typing import Optional, Type, Union

from heimdr.models.email import Email, RiskLevel
from heimdr.models.tokens import GmailToken, OutlookToken

TokenModel = Union[Type[GmailToken], Type[OutlookToken]]


class EmailOwnershipError(Exception):
    """An email id is already stored for a different user."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============ EMAIL OPERATIONS ============

def get_existing_emails(db: Session, user_id: str, source: str) -> dict[str, bool]:
    """
    Map of already stored message ids for a user/provider.

    Returns:
        {message_id: is_analyzed}
    """
    rows = db.query(Email.message_id, Email.analyzed_at).filter(
        Email.user_id == user_id,
        Email.source == source
    ).all()
    return {message_id: analyzed_at is not None for message_id, analyzed_at in rows}


def upsert_email(
    db: Session,
    email_id: str,
    user_id: str,
    from_address: str,
    subject: str,
    date: Optional[datetime],
    body: str,
    source: str,
) -> Email:
    """
    Insert or update an email by id.

    An existing row gets its content refreshed and its analysis reset,
    so it will be classified again.

    Raises:
        EmailOwnershipError: The id belongs to another user
    """
    email = db.get(Email, email_id)

    if email is not None and email.user_id != user_id:
        raise EmailOwnershipError(f"Email {email_id} belongs to another user")

    if email is None:
        email = Email(id=email_id, user_id=user_id, created_at=utcnow())
        db.add(email)

    email.from_address = from_address
    email.subject = subject
    email.date = date
    email.body = body
    email.source = source
    email.message_id = email_id
    email.ai_risk_level = None
    email.ai_reason = None
    email.analyzed_at = None

    db.commit()
    db.refresh(email)
    return email


def insert_email(
    db: Session,
    email_id: str,
    user_id: str,
    from_address: str,
    subject: str,
    date: Optional[datetime],
    body: str,
    source: str,
) -> Email:
    """Insert a new email; raises IntegrityError if the id already exists."""
    email = Email(
        id=email_id,
        user_id=user_id,
        from_address=from_address,
        subject=subject,
        date=date,
        body=body,
        source=source,
        message_id=email_id,
        created_at=utcnow()
    )
    db.add(email)
    db.commit()
    db.refresh(email)
    return email


def get_email(db: Session, email_id: str) -> Optional[Email]:
    return db.get(Email, email_id)


def get_unanalyzed_emails(db: Session, user_id: str) -> list[Email]:
    """Emails not yet analyzed for a user, newest first."""
    return db.query(Email).filter(
        Email.user_id == user_id,
        Email.analyzed_at.is_(None)
    ).order_by(Email.date.desc()).all()


def save_analysis(db: Session, email_id: str, risk_level: str, reason: str) -> Optional[Email]:
    """Store an analysis result. Returns None if the email is gone."""
    email = db.get(Email, email_id)
    if email is None:
        return None

    email.ai_risk_level = risk_level
    email.ai_reason = reason
    email.analyzed_at = utcnow()

    db.commit()
    db.refresh(email)
    return email


# ============ DASHBOARD QUERIES ============

def get_analyzed_emails(db: Session, user_id: str) -> list[Email]:
    """Analyzed emails that have a risk level, newest first."""
    return db.query(Email).filter(
        Email.user_id == user_id,
        Email.analyzed_at.isnot(None),
        Email.ai_risk_level.isnot(None)
    ).order_by(Email.date.desc()).all()


def get_risk_level_counts(db: Session, user_id: str) -> dict[str, int]:
    """Count analyzed emails per risk level."""
    rows = db.query(Email.ai_risk_level, func.count(Email.id)).filter(
        Email.user_id == user_id,
        Email.analyzed_at.isnot(None)
    ).group_by(Email.ai_risk_level).all()

    counts = {level.value: 0 for level in RiskLevel}
    for level, count in rows:
        if level in counts:
            counts[level] = count
    return counts


def get_pending_count(db: Session, user_id: str) -> int:
    """Number of stored emails still waiting for analysis."""
    return db.query(func.count(Email.id)).filter(
        Email.user_id == user_id,
        Email.analyzed_at.is_(None)
    ).scalar()


# ============ TOKEN OPERATIONS ============

def get_token(db: Session, model: TokenModel, user_id: str):
    return db.query(model).filter(model.user_id == user_id).first()


def upsert_token(
    db: Session,
    model: TokenModel,
    user_id: str,
    access_token: str,
    refresh_token: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    email: Optional[str] = None
):
    """Insert or replace the token row for a user (one row per user)."""
    token = get_token(db, model, user_id)

    if token is None:
        token = model(user_id=user_id)
        db.add(token)

    token.access_token = access_token
    token.refresh_token = refresh_token or token.refresh_token
    token.expires_at = expires_at
    token.email = email or token.email
    token.updated_at = utcnow()

    db.commit()
    db.refresh(token)
    return token


def update_access_token(
    db: Session,
    model: TokenModel,
    user_id: str,
    access_token: str,
    refresh_token: Optional[str] = None,
    expires_at: Optional[datetime] = None
):
    """
    Store a refreshed access token.

    Keeps the old refresh token when the provider didn't issue a new one.
    Returns None if the user has no token row.
    """
    token = get_token(db, model, user_id)
    if token is None:
        return None

    token.access_token = access_token
    token.refresh_token = refresh_token or token.refresh_token
    token.expires_at = expires_at or token.expires_at
    token.updated_at = utcnow()

    db.commit()
    db.refresh(token)
    return token


def delete_token(db: Session, model: TokenModel, user_id: str) -> bool:
    """Disconnect a provider. Returns True if a token was removed."""
    deleted = db.query(model).filter(model.user_id == user_id).delete()
    db.commit()
    return deleted > 0


def get_connected_user_ids(db: Session) -> list[str]:
    """All users with at least one connected provider."""
    gmail_users = {r[0] for r in db.query(GmailToken.user_id).all()}
    outlook_users = {r[0] for r in db.query(OutlookToken.user_id).all()}
    return sorted(gmail_users | outlook_users)
