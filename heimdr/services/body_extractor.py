"""
Gmail MIME payload → email body text.

Gmail returns messages as a tree of parts, each with a mimeType and
base64url-encoded body data. The body is taken from the first
text/plain part found, then text/html (converted to text), then the
root body as a last resort.
"""

import base64
import binascii
import logging
from typing import Optional

from heimdr.services.text_cleaner import html_to_text

logger = logging.getLogger(__name__)

MAX_DEPTH = 10

NO_CONTENT = "Ingen e-postinnhold funnet"
EMPTY_CONTENT = "Tomt e-postinnhold"


def decode_body_data(data: str) -> Optional[str]:
    """
    Decode base64url body data to text.

    Returns:
        Decoded text, or None if the data is empty or not decodable
    """
    if not data:
        return None

    # Gmail strips padding from base64url data
    padded = data + "=" * (-len(data) % 4)
    try:
        decoded = base64.urlsafe_b64decode(padded).decode("utf-8")
    except (binascii.Error, ValueError):
        logger.warning("❌ Could not decode body part (%d chars)", len(data))
        return None

    return decoded or None


def _find_text_content(part: dict, depth: int = 0) -> Optional[str]:
    """First decodable body data in this part or its descendants."""
    if depth > MAX_DEPTH:
        logger.warning("⚠️ Maximum MIME depth reached")
        return None

    data = part.get("body", {}).get("data")
    if data:
        content = decode_body_data(data)
        if content:
            return content

    for sub_part in part.get("parts", []) or []:
        content = _find_text_content(sub_part, depth + 1)
        if content:
            return content

    return None


def _search_parts(parts: list, mime_type: str, depth: int = 0) -> Optional[str]:
    if depth > MAX_DEPTH:
        return None

    for part in parts:
        if part.get("mimeType") == mime_type:
            content = _find_text_content(part, depth)
            if content:
                return content

        if part.get("parts"):
            content = _search_parts(part["parts"], mime_type, depth + 1)
            if content:
                return content

    return None


def find_content_by_mime_type(payload: dict, mime_type: str) -> Optional[str]:
    """
    Find the first content of a given MIME type in a Gmail payload.

    Args:
        payload: Gmail message payload (message["payload"])
        mime_type: e.g. "text/plain" or "text/html"

    Returns:
        Decoded content, or None if no part of that type has data
    """
    if payload.get("mimeType") == mime_type:
        content = decode_body_data(payload.get("body", {}).get("data"))
        if content:
            return content

    if payload.get("parts"):
        return _search_parts(payload["parts"], mime_type)

    return None


def extract_email_body(payload: dict) -> str:
    """
    Extract the readable body from a Gmail message payload.

    Args:
        payload: Gmail message payload

    Returns:
        Body text, or a placeholder when nothing usable was found
    """
    content = find_content_by_mime_type(payload, "text/plain")

    if not content:
        html = find_content_by_mime_type(payload, "text/html")
        if html:
            logger.debug("📧 No text/plain part, converting HTML to text")
            content = html_to_text(html)

    # Last resort: payload body directly
    if not content:
        content = decode_body_data(payload.get("body", {}).get("data"))

    if not content:
        logger.warning("⚠️ No content found in email")
        return NO_CONTENT

    if not content.strip():
        logger.warning("⚠️ Email content is empty")
        return EMPTY_CONTENT

    return content


def get_header(headers: list, name: str) -> str:
    """Case-insensitive header lookup, "" if missing."""
    wanted = name.lower()
    for h in headers or []:
        if h.get("name", "").lower() == wanted:
            return h.get("value", "")
    return ""
