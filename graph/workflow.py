import time
from typing import Any, Dict, List, Optional

from langgraph.graph import StateGraph, START, END
from loguru import logger

from graph.nodes.analyze import analyze
from graph.nodes.capture import capture
from graph.nodes.notify import alert, confirm
from graph.nodes.price import quote
from graph.nodes.score import score
from graph.nodes.sync import create_task, list_sync, push_crm
from graph.nodes.tag import tag
from graph.state import Attachment, IntakeState

# Fan-out order is fixed: the internal alert always precedes the client email
FANOUT_ORDER = ("alert", "list_sync", "task", "crm", "confirm")


def build_workflow():
    """Build the intake enrichment and fan-out workflow."""
    workflow = StateGraph(IntakeState)

    # Enrichment
    workflow.add_node("capture", capture)
    workflow.add_node("score", score)
    workflow.add_node("analyze", analyze)
    workflow.add_node("quote", quote)
    workflow.add_node("tag", tag)

    # Fan-out
    workflow.add_node("alert", alert)
    workflow.add_node("list_sync", list_sync)
    workflow.add_node("task", create_task)
    workflow.add_node("crm", push_crm)
    workflow.add_node("confirm", confirm)

    workflow.add_edge(START, "capture")
    workflow.add_edge("capture", "score")

    # Guide downloads are not worth a model call
    def branch_decision(state: IntakeState) -> str:
        if state.get("kind") == "legal-guide-download":
            logger.info(f"Skipping AI analysis for guide download {state.get('submission_id')}")
            return "quote"
        return "analyze"

    workflow.add_conditional_edges("score", branch_decision, {"analyze": "analyze", "quote": "quote"})
    workflow.add_edge("analyze", "quote")
    workflow.add_edge("quote", "tag")
    workflow.add_edge("tag", FANOUT_ORDER[0])
    for current, following in zip(FANOUT_ORDER, FANOUT_ORDER[1:]):
        workflow.add_edge(current, following)
    workflow.add_edge(FANOUT_ORDER[-1], END)

    return workflow.compile()


intake_graph = build_workflow()


async def run_intake(
    kind: str,
    payload: Dict[str, Any],
    attachments: Optional[List[Attachment]] = None,
    query: Optional[Dict[str, str]] = None,
    referer: str = "",
) -> IntakeState:
    """Run one submission through the workflow and log each step's outcome."""
    start_time = time.time()
    initial_state: IntakeState = {
        "kind": kind,
        "raw": dict(payload),
        "attachments": list(attachments or []),
        "query": dict(query or {}),
        "referer": referer or "",
        "outcomes": {},
        "errors": [],
    }

    logger.info(f"Starting {kind} workflow for {payload.get('email', 'unknown')}")
    result = await intake_graph.ainvoke(initial_state)

    outcomes = result.get("outcomes", {})
    summary = ", ".join(f"{name}={outcome.status}" for name, outcome in outcomes.items())
    processing_time = time.time() - start_time
    logger.info(
        f"Workflow completed in {processing_time:.2f}s for {result.get('submission_id')}: {summary}"
    )
    return result


def response_envelope(state: IntakeState) -> Dict[str, Any]:
    """The caller-facing success body; downstream outcomes are not exposed."""
    analysis = state.get("analysis")
    body: Dict[str, Any] = {
        "ok": True,
        "submissionId": state.get("submission_id"),
        "leadScore": state["lead_score"].score if state.get("lead_score") else 0,
    }
    if state.get("price") is not None:
        body["price"] = state["price"]
    if state.get("price_estimate") is not None:
        body["priceEstimate"] = state["price_estimate"]
    body["aiAnalysisAvailable"] = bool(analysis and analysis.available)
    return body
