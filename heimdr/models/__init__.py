"""
SQLAlchemy models for Heimdr.

This package contains:
- Email: Fetched emails with their AI risk classification
- GmailToken / OutlookToken: Per-user OAuth tokens for each provider
"""

from heimdr.models.email import Email, EmailSource, RiskLevel
from heimdr.models.tokens import GmailToken, OutlookToken

__all__ = ["Email", "EmailSource", "RiskLevel", "GmailToken", "OutlookToken"]
