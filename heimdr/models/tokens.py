"""
OAuth token storage, one row per user and provider.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from heimdr.database import Base


class GmailToken(Base):
    """Google OAuth tokens for a user's connected Gmail account."""
    __tablename__ = "gmail_tokens"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), unique=True, nullable=False, index=True)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text)
    expires_at = Column(DateTime(timezone=True))
    email = Column(String(255))  # Connected mailbox address
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<GmailToken(user_id={self.user_id}, email={self.email})>"


class OutlookToken(Base):
    """Microsoft OAuth tokens for a user's connected Outlook account."""
    __tablename__ = "outlook_tokens"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), unique=True, nullable=False, index=True)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text)
    expires_at = Column(DateTime(timezone=True))
    email = Column(String(255))
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<OutlookToken(user_id={self.user_id}, email={self.email})>"
