import time
from datetime import datetime, timezone

from graph.payload import CONVERSION_SOURCE, is_conversion
from graph.state import IntakeState
from loguru import logger

MAX_ATTACHMENT_BYTES = 5 * 1024 * 1024
MAX_ATTACHMENTS = 10


def detect_conversion(state: IntakeState) -> bool:
    """Any positive signal from the payload, the query string or the Referer counts."""
    raw = state.get("raw", {})
    query = state.get("query") or {}
    referer = (state.get("referer") or "").lower()

    return (
        is_conversion(raw)
        or is_conversion(query)
        or CONVERSION_SOURCE in referer
    )


def capture(state: IntakeState) -> IntakeState:
    """Assign ids, flag assessment conversions and filter attachments."""
    kind = state.get("kind", "intake")
    raw = dict(state.get("raw") or {})

    submission_id = str(raw.get("submissionId") or "").strip()
    if not submission_id:
        submission_id = f"{kind}-{int(time.time() * 1000)}"

    converted = detect_conversion({**state, "raw": raw})
    if converted:
        raw["conversionSource"] = CONVERSION_SOURCE
        raw["conversionType"] = f"assessment-to-{kind}"
        logger.info(f"Assessment conversion detected for {submission_id}")

    kept = []
    for attachment in state.get("attachments") or []:
        if attachment.size > MAX_ATTACHMENT_BYTES:
            logger.warning(f"Dropping oversized attachment {attachment.filename} ({attachment.size} bytes)")
            continue
        kept.append(attachment)
    if len(kept) > MAX_ATTACHMENTS:
        logger.warning(f"Keeping first {MAX_ATTACHMENTS} of {len(kept)} attachments")
        kept = kept[:MAX_ATTACHMENTS]

    state["raw"] = raw
    state["submission_id"] = submission_id
    state["converted"] = converted
    state["attachments"] = kept
    state.setdefault("received_at", datetime.now(timezone.utc))
    state.setdefault("outcomes", {})
    state.setdefault("errors", [])

    logger.info(f"Captured {kind} submission {submission_id} for {raw.get('email', 'unknown')}")
    return state
