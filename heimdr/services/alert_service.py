"""
Phishing alert emails sent through Resend.
"""

import logging
import os
import re

import resend

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

ALERT_RISKS = ("high", "medium")
DEFAULT_FROM = "alerts@heimdr.no"


class AlertConfigError(Exception):
    """Raised when Resend is not configured."""


def is_valid_email(email: str) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email) is not None


def phishing_alert_email(email: str, risk: str) -> dict:
    """
    Build the alert subject and HTML body.

    Args:
        email: Address the warning concerns
        risk: "high" or "medium"
    """
    risk_text = "HØY" if risk == "high" else "MODERAT"
    subject = "🚨 Phishing-risiko oppdaget i e-post"
    html = f"""
    <div style="font-family: Arial, sans-serif;">
      <h2>🚨 Advarsel: Phishing-risiko oppdaget</h2>
      <p>Det er oppdaget <strong>{risk_text}</strong> risiko for phishing i e-posten:</p>
      <p><strong>{email}</strong></p>
      <p>Vennligst vær ekstra oppmerksom og ikke klikk på mistenkelige lenker eller vedlegg.</p>
      <hr />
      <small>Denne meldingen er sendt automatisk fra Heimdr.</small>
    </div>
    """
    return {"subject": subject, "html": html}


def send_alert(email: str, risk: str) -> dict:
    """
    Send a phishing alert to `email`.

    Returns:
        Resend response (contains the message id)
    """
    api_key = os.getenv("RESEND_API_KEY")
    if not api_key:
        raise AlertConfigError("RESEND_API_KEY not configured")

    resend.api_key = api_key
    template = phishing_alert_email(email, risk)

    response = resend.Emails.send({
        "from": os.getenv("ALERT_FROM_ADDRESS", DEFAULT_FROM),
        "to": [email],
        "subject": template["subject"],
        "html": template["html"],
    })

    logger.info("🚨 Alert sent to %s with risk %s", email, risk)
    return response
