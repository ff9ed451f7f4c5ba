"""
Fetch → dedupe → analyze orchestration.

Pipeline per provider:
1. List recent messages from the provider
2. Skip messages already stored (Gmail: only if already analyzed)
3. Save to database
4. Classify phishing risk (Gmail immediately, Outlook via analyze)

Errors are handled per email: logged, collected and skipped.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from heimdr.models.email import EmailSource
from heimdr.models.tokens import GmailToken, OutlookToken
from heimdr.services import db_service
from heimdr.services.analysis_pipeline import run_analysis_pipeline
from heimdr.services.body_extractor import extract_email_body, get_header
from heimdr.services.gmail_service import GmailClient, GmailAuthError
from heimdr.services.outlook_service import (
    OutlookClient,
    OutlookAuthError,
    GraphAPIError,
    message_body,
    message_sender,
    parse_received_date,
)

logger = logging.getLogger(__name__)


class ProviderNotConnected(Exception):
    """The user has no stored token for this provider."""


@dataclass
class FetchResult:
    """Outcome of fetching one provider for one user."""
    source: str
    total: int = 0
    skipped: int = 0
    emails: list = field(default_factory=list)
    analysis_errors: list = field(default_factory=list)

    @property
    def new_emails(self) -> int:
        return len(self.emails)

    def to_dict(self) -> dict:
        result = {
            "new_emails": self.new_emails,
            "skipped": self.skipped,
            "emails": self.emails,
        }
        if self.analysis_errors:
            result["analysis_errors"] = self.analysis_errors
        return result


@dataclass
class AnalysisResult:
    """Outcome of analyzing a user's pending emails."""
    total: int = 0
    emails: list = field(default_factory=list)
    errors: list = field(default_factory=list)

    def to_dict(self) -> dict:
        result = {
            "new_analyzed_emails": len(self.emails),
            "emails": self.emails,
        }
        if self.errors:
            result["errors"] = self.errors
        return result


def parse_gmail_date(value: str) -> datetime:
    """Parse an RFC 2822 Date header; falls back to now."""
    if value:
        try:
            parsed = parsedate_to_datetime(value)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
        except (TypeError, ValueError):
            logger.warning("📬 Gmail: Unparseable Date header %r", value)
    return datetime.now(timezone.utc)


def analyze_email(db: Session, email, validate: bool = True) -> dict:
    """
    Run one stored email through the analysis pipeline and save the result.

    validate=False classifies it even without sender or subject.

    Returns:
        Final pipeline state
    """
    state = run_analysis_pipeline(
        email_id=email.id,
        from_address=email.from_address,
        subject=email.subject,
        body=email.body,
        validate=validate
    )

    if state["status"] == "analyzed":
        db_service.save_analysis(db, email.id, state["risk_level"], state["reason"])

    return state


# ============ GMAIL ============

def fetch_gmail_emails(db: Session, user_id: str) -> FetchResult:
    """
    Fetch the latest Gmail messages for a user, store and analyze them.

    Raises:
        ProviderNotConnected: No Gmail token for the user
        GmailAuthError: Token invalid and refresh failed
    """
    token = db_service.get_token(db, GmailToken, user_id)
    if token is None:
        raise ProviderNotConnected("Gmail token not found")

    logger.info("📬 Gmail: User ID = %s, access_token = %s... (truncated)", user_id, token.access_token[:10])

    client = GmailClient(db, user_id, token)
    message_ids = client.list_recent_message_ids()

    result = FetchResult(source=EmailSource.GMAIL.value, total=len(message_ids))
    if not message_ids:
        logger.info("📬 Gmail: No emails found")
        return result

    existing = db_service.get_existing_emails(db, user_id, EmailSource.GMAIL.value)

    for msg_id in message_ids:
        # Skip only if stored AND already analyzed
        if existing.get(msg_id):
            result.skipped += 1
            continue

        try:
            message = client.get_full_message(msg_id)
            payload = message.get("payload", {})
            headers = payload.get("headers", [])

            email = db_service.upsert_email(
                db,
                email_id=msg_id,
                user_id=user_id,
                from_address=get_header(headers, "From"),
                subject=get_header(headers, "Subject"),
                date=parse_gmail_date(get_header(headers, "Date")),
                body=extract_email_body(payload),
                source=EmailSource.GMAIL.value
            )
        except GmailAuthError:
            logger.error("📬 Gmail: Stopping email processing due to token refresh failure")
            raise
        except Exception as e:
            logger.error("📬 Gmail: Error processing email %s: %s", msg_id, e)
            db.rollback()
            continue

        logger.info("📬 Gmail: Saved/updated email %s (analysis reset)", msg_id)

        try:
            state = analyze_email(db, email, validate=False)
        except Exception as e:
            logger.exception("❌ Error analyzing email %s", msg_id)
            db.rollback()
            state = {"status": "failed", "error_message": str(e)}

        if state["status"] != "analyzed":
            result.analysis_errors.append({
                "id": msg_id,
                "error": state.get("error_message") or "Unknown analysis error"
            })

        db.refresh(email)
        result.emails.append(email.to_dict())

    logger.info(
        "📬 Gmail: Found %d emails. %d new saved. %d already existed.",
        result.total, result.new_emails, result.skipped
    )
    if result.analysis_errors:
        logger.info("📬 Gmail: %d emails could not be analyzed", len(result.analysis_errors))

    return result


# ============ OUTLOOK ============

def fetch_outlook_emails(db: Session, user_id: str) -> FetchResult:
    """
    Fetch the latest Outlook messages for a user and store new ones.

    Raises:
        ProviderNotConnected: No Outlook token for the user
        OutlookAuthError: Token invalid and refresh failed
        GraphAPIError: Graph returned an error response
    """
    token = db_service.get_token(db, OutlookToken, user_id)
    if token is None:
        raise ProviderNotConnected("Outlook token not found")

    logger.info("📧 Outlook: User ID = %s, access_token = %s... (truncated)", user_id, token.access_token[:10])

    client = OutlookClient(db, user_id, token)
    messages = client.list_recent_messages()

    result = FetchResult(source=EmailSource.OUTLOOK.value, total=len(messages))
    if not messages:
        logger.info("📧 Outlook: No emails found")
        return result

    existing = db_service.get_existing_emails(db, user_id, EmailSource.OUTLOOK.value)

    for message in messages:
        msg_id = message.get("id")
        if not msg_id or msg_id in existing:
            result.skipped += 1
            continue

        try:
            email = db_service.insert_email(
                db,
                email_id=msg_id,
                user_id=user_id,
                from_address=message_sender(message),
                subject=message.get("subject") or "",
                date=parse_received_date(message.get("receivedDateTime")),
                body=message_body(message),
                source=EmailSource.OUTLOOK.value
            )
        except SQLAlchemyError as e:
            logger.error("📧 Outlook: Error saving email %s: %s", msg_id, e)
            db.rollback()
            continue

        logger.info("📧 Outlook: Saved new email %s", msg_id)
        result.emails.append(email.to_dict())

    logger.info(
        "📧 Outlook: Found %d emails. %d new saved. %d already existed.",
        result.total, result.new_emails, result.skipped
    )
    return result


# ============ ANALYSIS ============

def analyze_pending_emails(db: Session, user_id: str) -> AnalysisResult:
    """Classify every stored email of a user that has not been analyzed yet."""
    pending = db_service.get_unanalyzed_emails(db, user_id)
    result = AnalysisResult(total=len(pending))

    logger.info("📧 Found %d unanalyzed emails for user %s", len(pending), user_id)

    for email in pending:
        try:
            state = analyze_email(db, email)
        except Exception as e:
            logger.exception("❌ Error processing email %s", email.id)
            db.rollback()
            result.errors.append({"id": email.id, "error": str(e) or "Kunne ikke analysere e-post"})
            continue

        if state["status"] != "analyzed":
            result.errors.append({"id": email.id, "error": state.get("error_message")})
            continue

        db.refresh(email)
        result.emails.append(email.to_dict())

    logger.info(
        "✅ Analysis done: %d emails, %d analyzed, %d errors",
        result.total, len(result.emails), len(result.errors)
    )
    return result


# ============ SCHEDULED RUNS ============

def run_scheduled_fetch(db: Session) -> dict:
    """
    Fetch both providers for every connected user.

    Errors are collected per user and service; one user's failure
    never stops the run.
    """
    errors = []
    processed_users = 0
    new_emails = 0

    for user_id in db_service.get_connected_user_ids(db):
        for source, fetch in (("gmail", fetch_gmail_emails), ("outlook", fetch_outlook_emails)):
            try:
                new_emails += fetch(db, user_id).new_emails
            except ProviderNotConnected:
                continue
            except (GmailAuthError, OutlookAuthError, GraphAPIError) as e:
                logger.error("❌ %s fetch failed for user %s: %s", source, user_id, e)
                errors.append({"user_id": user_id, "service": source, "error": str(e)})
            except Exception as e:
                logger.exception("❌ Error processing user %s (%s)", user_id, source)
                db.rollback()
                errors.append({"user_id": user_id, "service": source, "error": str(e) or "Unknown error"})
        processed_users += 1

    return _scheduled_response(processed_users, errors, new_emails=new_emails)


def run_scheduled_analysis(db: Session) -> dict:
    """Analyze pending emails for every connected user."""
    errors = []
    processed_users = 0
    total_pending = 0
    total_analyzed = 0

    for user_id in db_service.get_connected_user_ids(db):
        try:
            result = analyze_pending_emails(db, user_id)
        except Exception as e:
            logger.exception("❌ Error processing user %s", user_id)
            db.rollback()
            errors.append({"user_id": user_id, "service": "analysis", "error": str(e) or "Unknown error"})
            continue

        processed_users += 1
        total_pending += result.total
        total_analyzed += len(result.emails)
        for err in result.errors:
            errors.append({"user_id": user_id, "service": "analysis", "error": err["error"], "id": err["id"]})

    return _scheduled_response(
        processed_users,
        errors,
        total_new_emails=total_pending,
        total_analyzed=total_analyzed
    )


def _scheduled_response(processed_users: int, errors: list, **totals) -> dict:
    response = {"success": True, "processed_users": processed_users, **totals}
    if errors:
        response["errors"] = errors
    return response

