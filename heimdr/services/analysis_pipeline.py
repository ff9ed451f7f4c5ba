"""
LangGraph Email Analysis Pipeline.

Runs one stored email through:
1. Validate → Email must have sender, subject and body
2. Prepare → Build trimmed "From/Subject/body" content
3. Classify → OpenAI phishing risk assessment

Freshly fetched emails enter at Prepare; only the bulk analysis
of stored emails validates first.
"""

import logging
from typing import TypedDict, Optional
from langgraph.graph import StateGraph, START, END

from heimdr.services.text_cleaner import build_analysis_content
from heimdr.services.risk_analyzer import analyze_email_risk, RiskAnalysisError

logger = logging.getLogger(__name__)

MISSING_CONTENT_ERROR = "Mangler nødvendig innhold for analyse"


class AnalysisState(TypedDict):
    """State that flows through the analysis graph."""
    # Input
    email_id: str
    from_address: str
    subject: str
    body: str

    # Processing outputs
    content: str
    risk_level: Optional[str]
    reason: Optional[str]

    # Status: pending, skipped, prepared, analyzed, failed
    status: str
    error_message: Optional[str]


# ============ NODE FUNCTIONS ============

def validate_node(state: AnalysisState) -> dict:
    """Node 1: Skip emails without the content the model needs."""
    if not state.get("body") or not state.get("subject") or not state.get("from_address"):
        logger.warning("⚠️ Skipping email %s - missing required content", state["email_id"])
        return {
            "status": "skipped",
            "error_message": MISSING_CONTENT_ERROR
        }
    return {}


def prepare_node(state: AnalysisState) -> dict:
    """Node 2: Build the prompt content."""
    content = build_analysis_content(
        state["from_address"],
        state["subject"],
        state["body"]
    )
    return {"content": content, "status": "prepared"}


def classify_node(state: AnalysisState) -> dict:
    """Node 3: Ask the model for a risk level."""
    try:
        assessment = analyze_email_risk(state["content"])
    except RiskAnalysisError as e:
        return {
            "status": "failed",
            "error_message": str(e)
        }

    logger.info("🤖 Email %s classified as %s", state["email_id"], assessment.risk_level.value)
    return {
        "risk_level": assessment.risk_level.value,
        "reason": assessment.reason,
        "status": "analyzed"
    }


def _after_validate(state: AnalysisState) -> str:
    return END if state.get("status") == "skipped" else "prepare"


# ============ BUILD PIPELINE ============

def build_pipeline(validate: bool = True):
    """Build and compile the LangGraph pipeline."""
    workflow = StateGraph(AnalysisState)

    workflow.add_node("prepare", prepare_node)
    workflow.add_node("classify", classify_node)

    if validate:
        workflow.add_node("validate", validate_node)
        workflow.add_edge(START, "validate")
        workflow.add_conditional_edges("validate", _after_validate, ["prepare", END])
    else:
        workflow.add_edge(START, "prepare")

    workflow.add_edge("prepare", "classify")
    workflow.add_edge("classify", END)

    return workflow.compile()


# Compiled pipeline instances
pipeline = build_pipeline()
direct_pipeline = build_pipeline(validate=False)


def run_analysis_pipeline(
    email_id: str,
    from_address: Optional[str],
    subject: Optional[str],
    body: Optional[str],
    validate: bool = True
) -> AnalysisState:
    """
    Run one email through the analysis graph.

    With validate=False the email is classified even when sender or
    subject is missing.

    Returns the final state; status is "analyzed", "skipped" or "failed".
    """
    initial_state: AnalysisState = {
        "email_id": email_id,
        "from_address": from_address or "",
        "subject": subject or "",
        "body": body or "",
        "content": "",
        "risk_level": None,
        "reason": None,
        "status": "pending",
        "error_message": None,
    }

    graph = pipeline if validate else direct_pipeline
    return graph.invoke(initial_state)
