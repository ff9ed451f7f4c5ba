import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from heimdr.models.email import RiskLevel
from heimdr.services import risk_analyzer
from heimdr.services.risk_analyzer import (
    DEFAULT_REASON,
    RiskAnalysisError,
    analyze_email_risk,
    check_openai_connection,
    normalize_risk_level,
    to_assessment,
)


@pytest.mark.parametrize("raw, expected", [
    ("Lav", RiskLevel.LOW),
    ("low", RiskLevel.LOW),
    (" LAV ", RiskLevel.LOW),
    ("Høy", RiskLevel.HIGH),
    ("HIGH", RiskLevel.HIGH),
    ("hoy", RiskLevel.HIGH),
    ("Medium", RiskLevel.MEDIUM),
    ("kritisk", RiskLevel.MEDIUM),
    ("", RiskLevel.MEDIUM),
    (None, RiskLevel.MEDIUM),
])
def test_normalize_risk_level(raw, expected):
    assert normalize_risk_level(raw) == expected


def test_to_assessment_defaults_reason():
    assessment = to_assessment({"riskLevel": "Høy"})
    assert assessment.risk_level == RiskLevel.HIGH
    assert assessment.reason == DEFAULT_REASON


def test_to_assessment_accepts_snake_case_key():
    assessment = to_assessment({"risk_level": "low", "reason": " Kjent avsender "})
    assert assessment.risk_level == RiskLevel.LOW
    assert assessment.reason == "Kjent avsender"


def test_to_assessment_rejects_non_dict():
    with pytest.raises(RiskAnalysisError):
        to_assessment(["Høy"])


def test_analyze_email_risk_parses_fenced_json(monkeypatch):
    reply = '```json\n{"riskLevel": "high", "reason": "Falsk bankdomene"}\n```'
    monkeypatch.setattr(
        risk_analyzer, "_get_llm",
        lambda api_key, max_tokens=300: FakeListChatModel(responses=[reply])
    )

    assessment = analyze_email_risk("From: x\nSubject: y\n\nz", api_key="sk-test")

    assert assessment.risk_level == RiskLevel.HIGH
    assert assessment.reason == "Falsk bankdomene"


def test_analyze_email_risk_unparseable_reply(monkeypatch):
    monkeypatch.setattr(
        risk_analyzer, "_get_llm",
        lambda api_key, max_tokens=300: FakeListChatModel(responses=["Dette er ikke JSON"])
    )

    with pytest.raises(RiskAnalysisError, match="Could not parse"):
        analyze_email_risk("content", api_key="sk-test")


def test_analyze_email_risk_requires_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(RiskAnalysisError, match="not configured"):
        analyze_email_risk("content")


def test_check_openai_connection(monkeypatch):
    monkeypatch.setattr(
        risk_analyzer, "_get_llm",
        lambda api_key, max_tokens=300: FakeListChatModel(responses=["ok"])
    )
    assert check_openai_connection(api_key="sk-test") is True


def test_check_openai_connection_without_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    assert check_openai_connection() is False
