"""
Dashboard API endpoints for analyzed emails and risk statistics.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from heimdr.api.deps import get_current_user_id
from heimdr.database import get_db
from heimdr.services import db_service
from heimdr.services.risk_stats import compute_risk_stats


router = APIRouter(prefix="/emails", tags=["Dashboard"])


# ============ Response Schemas ============

class EmailResponse(BaseModel):
    """One analyzed email as shown in the dashboard list."""
    id: str
    from_address: Optional[str]
    subject: Optional[str]
    date: Optional[datetime]
    body: Optional[str]
    source: str
    message_id: str
    ai_risk_level: Optional[str]
    ai_reason: Optional[str]
    analyzed_at: Optional[datetime]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class EmailsListResponse(BaseModel):
    emails: list[EmailResponse]


class RiskStatsResponse(BaseModel):
    """Risk level counts for the dashboard cards."""
    high: int
    medium: int
    low: int
    total_analyzed: int
    percent_high: int
    percent_medium: int
    percent_low: int
    pending: int


@router.get("", response_model=EmailsListResponse)
def list_emails(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Analyzed emails of the current user, newest first."""
    return EmailsListResponse(emails=db_service.get_analyzed_emails(db, user_id))


@router.get("/stats", response_model=RiskStatsResponse)
def risk_stats(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Risk statistics for the dashboard.

    Percentages are whole numbers of the analyzed total; `pending`
    counts stored emails still waiting for analysis.
    """
    return compute_risk_stats(
        db_service.get_risk_level_counts(db, user_id),
        pending=db_service.get_pending_count(db, user_id)
    )
