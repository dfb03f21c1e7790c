from graph.state import AiAnalysis, IntakeState, LeadScore
from tools import llm
from loguru import logger


async def analyze(state: IntakeState) -> IntakeState:
    """Best-effort AI analysis; the pipeline continues with an empty analysis on failure."""
    logger.info(f"Starting AI analysis for {state.get('submission_id', 'unknown')}")

    try:
        analysis = await llm.analyze_intake(
            state.get("raw", {}),
            state.get("kind", ""),
            state.get("lead_score") or LeadScore(score=0),
        )
    except Exception as e:
        error_msg = f"AI analysis failed: {e}"
        logger.error(error_msg)
        state.setdefault("errors", []).append(error_msg)
        analysis = AiAnalysis()

    state["analysis"] = analysis
    return state
