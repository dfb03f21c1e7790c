from typing import Any, Awaitable, Callable

from graph.state import IntakeState, Outcome
from loguru import logger
from tools.errors import StepSkipped


async def run_step(state: IntakeState, name: str, step: Callable[[], Awaitable[Any]]) -> IntakeState:
    """
    Run one fan-out step and record its outcome on the state.

    Skips (unconfigured collaborator, below threshold) are logged at info.
    Any other exception is logged and recorded; it never reaches the caller.
    """
    outcomes = state.setdefault("outcomes", {})
    submission_id = state.get("submission_id", "unknown")

    try:
        await step()
        outcomes[name] = Outcome("ok")
        logger.info(f"{name} completed for {submission_id}")
    except StepSkipped as e:
        outcomes[name] = Outcome("skipped", str(e))
        logger.info(f"{name} skipped for {submission_id}: {e}")
    except Exception as e:
        error_msg = f"{name} failed: {e}"
        outcomes[name] = Outcome("error", str(e))
        logger.error(f"{error_msg} ({submission_id})")
        state.setdefault("errors", []).append(error_msg)

    return state
