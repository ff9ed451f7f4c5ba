"""
Risk Analyzer Module for phishing classification.

Uses LangChain + OpenAI chat models to classify a single email as
Lav / Medium / Høy phishing risk with a short Norwegian justification.
"""

import logging
import os
from typing import Optional, Dict, Any

from pydantic import BaseModel, Field
from langchain_openai import ChatOpenAI
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.output_parsers import JsonOutputParser
from langchain_core.exceptions import OutputParserException

from heimdr.models.email import RiskLevel

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_REASON = "Ingen begrunnelse tilgjengelig"


class RiskAnalysisError(Exception):
    """Raised when an email could not be classified."""


class RiskResponse(BaseModel):
    """Shape the model is asked to answer with."""
    riskLevel: str = Field(description='One of "Lav", "Medium" or "Høy"')
    reason: str = Field(description="Kort begrunnelse på norsk (1-2 setninger)")


class RiskAssessment(BaseModel):
    """Normalized analysis result stored on the email row."""
    risk_level: RiskLevel
    reason: str


SYSTEM_PROMPT = (
    "Du er en ekspert på å analysere e-poster for svindel og skadelig innhold. "
    "Vurder risikoen og gi en kort begrunnelse på norsk. Du må være konsistent med "
    "risikonivåene og kun bruke: Lav, Medium, eller Høy. Svar kun med JSON."
)

USER_PROMPT = """Du er en norsk cybersikkerhetsekspert som analyserer e-poster for mulig svindel, phishing eller skadevare.

Vurder e-posten basert på:
- Avsender (mistenkelige domener, falske navn)
- Innhold (trusler, press, uvanlige forespørsler)
- Lenker (mistenkelige URL-er, misvisende tekst)
- Generell teknisk struktur (mangler, rar oppbygning)

Svar strengt: Hvis noe er uklart eller mistenkelig, vurder det som minst "Medium".

E-post:
{email_content}

Du må svare i følgende JSON-format, og riskLevel MÅ være en av følgende verdier: "Lav", "Medium", eller "Høy":
{{
  "riskLevel": "Lav|Medium|Høy",
  "reason": "Kort begrunnelse for vurderingen"
}}

Svar KUN med JSON, ingen annen tekst."""

ANALYSIS_PROMPT = ChatPromptTemplate.from_messages([
    ("system", SYSTEM_PROMPT),
    ("human", USER_PROMPT),
])


def _get_llm(api_key: str, max_tokens: int = 300) -> ChatOpenAI:
    """Get configured OpenAI chat model."""
    return ChatOpenAI(
        model=os.getenv("OPENAI_MODEL", DEFAULT_MODEL),
        api_key=api_key,
        temperature=0.1,
        max_tokens=max_tokens,
        timeout=60,
    )


def normalize_risk_level(level: Optional[str]) -> RiskLevel:
    """
    Map whatever the model answered onto the three fixed levels.

    Unknown or missing values fall back to Medium, so an unclear
    answer is never reported as low risk.
    """
    normalized = (level or "").lower().strip()

    if normalized in ("lav", "low"):
        return RiskLevel.LOW
    if normalized in ("høy", "high", "hoy"):
        return RiskLevel.HIGH
    return RiskLevel.MEDIUM


def to_assessment(raw: Dict[str, Any]) -> RiskAssessment:
    """Normalize a parsed model reply into a RiskAssessment."""
    if not isinstance(raw, dict):
        raise RiskAnalysisError("Could not parse OpenAI response as JSON")

    level = raw.get("riskLevel") or raw.get("risk_level")
    reason = raw.get("reason")
    if isinstance(reason, str):
        reason = reason.strip()

    return RiskAssessment(
        risk_level=normalize_risk_level(level if isinstance(level, str) else None),
        reason=reason or DEFAULT_REASON,
    )


def analyze_email_risk(email_content: str, api_key: Optional[str] = None) -> RiskAssessment:
    """
    Classify one email's phishing risk.

    Args:
        email_content: "From: ...\\nSubject: ...\\n\\n<body>" text
        api_key: Optional OpenAI API key (defaults to OPENAI_API_KEY)

    Returns:
        RiskAssessment with normalized level and reason

    Raises:
        RiskAnalysisError: Missing key, API failure or unparseable reply
    """
    key = api_key or os.getenv("OPENAI_API_KEY")
    if not key:
        raise RiskAnalysisError("OpenAI API key is not configured")

    # Build chain: Prompt -> LLM -> JSON Parser (also strips ```json fences)
    parser = JsonOutputParser(pydantic_object=RiskResponse)
    chain = ANALYSIS_PROMPT | _get_llm(key) | parser

    logger.debug("🤖 Sending %d chars to OpenAI", len(email_content))
    try:
        raw = chain.invoke({"email_content": email_content})
    except OutputParserException as e:
        logger.error("❌ Failed to parse OpenAI response: %s", e)
        raise RiskAnalysisError("Could not parse OpenAI response as JSON") from e
    except Exception as e:
        logger.error("❌ OpenAI request failed: %s", e)
        raise RiskAnalysisError(f"OpenAI error: {e}") from e

    return to_assessment(raw)


def check_openai_connection(api_key: Optional[str] = None) -> bool:
    """Send a tiny probe completion to verify the key and endpoint work."""
    key = api_key or os.getenv("OPENAI_API_KEY")
    if not key:
        return False

    try:
        _get_llm(key, max_tokens=5).invoke("Test connection")
    except Exception as e:
        logger.error("❌ OpenAI connection test failed: %s", e)
        return False

    logger.info("✅ OpenAI connection test successful")
    return True
