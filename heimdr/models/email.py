"""
Email model for messages pulled from connected Gmail/Outlook accounts.

Rows are inserted when a provider is fetched and mutated once the
AI analysis has run. The provider message id doubles as primary key,
so re-fetching the same message upserts instead of duplicating.
"""

from sqlalchemy import Column, String, Text, DateTime, Index
from sqlalchemy.sql import func
from heimdr.database import Base
import enum


class EmailSource(str, enum.Enum):
    """Provider the email was fetched from."""
    GMAIL = "gmail"
    OUTLOOK = "outlook"


class RiskLevel(str, enum.Enum):
    """Phishing risk assigned by the AI analysis."""
    LOW = "Lav"
    MEDIUM = "Medium"
    HIGH = "Høy"


class Email(Base):
    """A single fetched email and its risk assessment."""
    __tablename__ = "emails"

    # Provider message id (unique across providers in practice)
    id = Column(String(255), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)

    # ============ MESSAGE ============
    from_address = Column(String(512))
    subject = Column(String(1024))
    date = Column(DateTime(timezone=True))
    body = Column(Text)
    source = Column(String(20), nullable=False)  # "gmail" or "outlook"
    message_id = Column(String(255), nullable=False)

    # ============ AI ANALYSIS ============
    ai_risk_level = Column(String(20))  # "Lav", "Medium", "Høy" or NULL
    ai_reason = Column(Text)
    analyzed_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_emails_user_source", "user_id", "source"),
        Index("ix_emails_user_analyzed", "user_id", "analyzed_at"),
    )

    def __repr__(self):
        return f"<Email(id={self.id}, source={self.source}, risk={self.ai_risk_level})>"

    def to_dict(self) -> dict:
        """Serialize for API responses."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "from_address": self.from_address,
            "subject": self.subject,
            "date": self.date.isoformat() if self.date else None,
            "body": self.body,
            "source": self.source,
            "message_id": self.message_id,
            "ai_risk_level": self.ai_risk_level,
            "ai_reason": self.ai_reason,
            "analyzed_at": self.analyzed_at.isoformat() if self.analyzed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
