"""
Text Cleaning Module for Email Analysis.

Handles:
1. HTML → Plain Text conversion
2. Token safety (trimming to max chars before the LLM call)
3. Building the prompt content for a single email
"""

import re
from bs4 import BeautifulSoup

# Maximum chars sent to the LLM (1 token ≈ 4 chars)
MAX_CHARS = 12000  # ~3000 tokens


def html_to_text(raw_html: str) -> str:
    """
    Convert HTML email content to clean plain text.

    Link targets are kept next to the link text, since mismatched
    link text vs. href is one of the strongest phishing signals.

    Args:
        raw_html: Raw HTML string from email body

    Returns:
        Plain text with normalized whitespace
    """
    if not raw_html:
        return ""

    soup = BeautifulSoup(raw_html, "html.parser")

    # Remove script, style, and head tags
    for tag in soup(['script', 'style', 'head', 'meta', 'link']):
        tag.decompose()

    # Convert links to text with URL
    for a in soup.find_all('a', href=True):
        href = a.get('href', '')
        text = a.get_text(strip=True)
        if href and text:
            a.replace_with(f"{text} ({href})")
        elif href:
            a.replace_with(href)

    # Convert <br> and </p> to newlines
    for br in soup.find_all('br'):
        br.replace_with('\n')
    for p in soup.find_all('p'):
        p.insert_after('\n')

    text = soup.get_text(separator=' ')

    # Normalize whitespace
    text = text.replace('\xa0', ' ')
    text = re.sub(r'[ \t]+', ' ', text)  # Multiple spaces to single
    text = re.sub(r' *\n *', '\n', text)
    text = re.sub(r'\n{3,}', '\n\n', text)  # Max 2 newlines

    return text.strip()


def trim_to_limit(text: str, max_chars: int = MAX_CHARS) -> str:
    """
    Trim text to stay within the LLM input budget.

    Args:
        text: Text to trim
        max_chars: Maximum characters (default ~3000 tokens)

    Returns:
        Text of at most max_chars characters
    """
    if not text or len(text) <= max_chars:
        return text or ""

    trimmed = text[:max_chars]
    # Prefer cutting at a line boundary if one is reasonably close
    cut = trimmed.rfind('\n')
    if cut > max_chars * 0.8:
        trimmed = trimmed[:cut]

    return trimmed.rstrip()


def build_analysis_content(from_address: str, subject: str, body: str, max_chars: int = MAX_CHARS) -> str:
    """Format one email the way it is handed to the risk analyzer."""
    return f"From: {from_address}\nSubject: {subject}\n\n{trim_to_limit(body, max_chars)}"
