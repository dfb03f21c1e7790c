import os
import time
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from dotenv import load_dotenv

from config import get_settings
from graph.nodes.price import lifetime_value
from graph.nodes.score import calculate_lead_score, priority_for
from graph.payload import as_list, text
from graph.workflow import response_envelope, run_intake
from tools.clio import CrmPush
from tools.errors import ConfigMissing, FileLimitError, UpstreamError, ValidationError
from tools.llm import get_llm_client
from tools.mailchimp import ListSync
from tools.mailer import GraphMailer
from tools.motion import TaskCreator
from tools.uploads import read_submission

VERSION = "1.0.0"
SERVICE_NAME = "Legal Intake Gateway"

# Load environment variables
load_dotenv()
settings = get_settings()

# Configure logging
logger.add("logs/app.log", rotation="1 day", retention="7 days", level=settings.log_level)

app = FastAPI(
    title=SERVICE_NAME,
    description="Intake, scoring and follow-up automation for a boutique law firm",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


async def _intake(request: Request, kind: str, file_fields=()) -> Dict[str, Any]:
    payload, attachments = await read_submission(request, file_fields)
    logger.info(f"Received {kind} submission from {payload.get('email', 'unknown')}")
    state = await run_intake(
        kind,
        payload,
        attachments,
        query=dict(request.query_params),
        referer=request.headers.get("referer", ""),
    )
    return response_envelope(state)


async def _guide(request: Request, guide_type: str) -> Dict[str, Any]:
    payload, _ = await read_submission(request)
    payload["guideType"] = guide_type
    state = await run_intake(
        "legal-guide-download",
        payload,
        query=dict(request.query_params),
        referer=request.headers.get("referer", ""),
    )
    return {"ok": True, "submissionId": state.get("submission_id")}


@app.get("/")
def root():
    return {
        "ok": True,
        "service": SERVICE_NAME,
        "version": VERSION,
        "endpoints": [
            "/estate-intake",
            "/business-formation-intake",
            "/brand-protection-intake",
            "/outside-counsel",
            "/legal-strategy-builder",
            "/add-subscriber",
            "/legal-guide",
            "/download-primary-guide",
            "/download-specialized-guide",
            "/api/chat-intake",
            "/api/generate-document",
            "/api/predict-clv",
            "/api/analytics/form-event",
            "/api/analytics/conversion",
        ],
        "features": [
            "lead-scoring",
            "ai-analysis",
            "segmentation-tags",
            "email-notifications",
            "mailchimp-sync",
            "motion-projects",
            "clio-grow-crm",
            "file-uploads",
        ],
    }


@app.get("/health")
def health():
    """Health check endpoint."""
    current = get_settings()
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": VERSION,
        "integrations": {
            "openai": get_llm_client().configured,
            "microsoftGraph": GraphMailer(current).is_configured(),
            "mailchimp": ListSync(current).is_configured(),
            "motion": TaskCreator(current).is_configured(),
            "clioGrow": CrmPush(current).is_configured(),
        },
    }


@app.post("/estate-intake")
async def estate_intake(request: Request):
    return await _intake(request, "estate-intake", ("document", "documents"))


@app.post("/business-formation-intake")
async def business_formation_intake(request: Request):
    return await _intake(request, "business-formation", ("documents",))


@app.post("/brand-protection-intake")
async def brand_protection_intake(request: Request):
    return await _intake(request, "brand-protection", ("brandDocument",))


@app.post("/outside-counsel")
async def outside_counsel(request: Request):
    return await _intake(request, "outside-counsel")


@app.post("/legal-strategy-builder")
async def legal_strategy_builder(request: Request):
    return await _intake(request, "legal-strategy-builder")


@app.post("/add-subscriber")
async def add_subscriber(request: Request):
    """
    Add or update a newsletter subscriber.

    Expected payload:
    {
        "email": "jane@studio.com",
        "source": "newsletter",
        "tags": ["newsletter"],
        "merge_fields": {"FNAME": "Jane"}
    }
    """
    payload, _ = await read_submission(request)
    email = text(payload, "email")
    if not email:
        raise ValidationError("Email is required")

    tags = as_list(payload, "tags")
    source = text(payload, "source")
    if source:
        tags.append(f"source-{source}")
    merge_fields = payload.get("merge_fields")
    if not isinstance(merge_fields, dict):
        merge_fields = {}

    try:
        result = await ListSync(get_settings()).upsert_member(email, merge_fields, tags)
    except ConfigMissing as e:
        logger.info(f"Subscriber not synced: {e}")
        return {"ok": True, "skipped": True}
    except UpstreamError as e:
        logger.error(f"Subscriber sync failed for {email}: {e}")
        return JSONResponse(status_code=502, content={"ok": False, "error": "Subscriber sync failed"})

    return {"ok": True, "action": result["action"]}


@app.post("/legal-guide")
async def legal_guide(request: Request):
    return await _guide(request, "general")


@app.post("/download-primary-guide")
async def download_primary_guide(request: Request):
    return await _guide(request, "primary")


@app.post("/download-specialized-guide")
async def download_specialized_guide(request: Request):
    return await _guide(request, "specialized")


@app.post("/api/chat-intake")
async def chat_intake(request: Request):
    """Conversational intake; completed conversations run through the intake workflow."""
    payload, _ = await read_submission(request)
    message = text(payload, "message")
    if not message:
        raise ValidationError("Message is required")

    session_id = text(payload, "sessionId") or f"chat-{int(time.time() * 1000)}"
    context = payload.get("context") if isinstance(payload.get("context"), list) else []

    reply, extracted, complete = await get_llm_client().chat_reply(session_id, message, context)

    if complete and extracted.get("email"):
        logger.info(f"Chat session {session_id} completed intake for {extracted['email']}")
        await run_intake(
            "chat-intake",
            {**extracted, "sessionId": session_id, "message": message, "source": "chat-intake"},
        )

    return {"success": True, "response": reply, "extractedData": extracted, "sessionId": session_id}


@app.post("/api/generate-document")
async def generate_document(request: Request):
    payload, _ = await read_submission(request)
    document_type = text(payload, "documentType")
    if not document_type:
        raise ValidationError("documentType is required")
    client_data = payload.get("clientData") if isinstance(payload.get("clientData"), dict) else {}

    document = await get_llm_client().draft_document(document_type, client_data)
    logger.info(f"Generated {document_type} draft ({len(document)} chars)")
    return {
        "success": True,
        "documentId": f"{document_type}-{int(time.time() * 1000)}",
        "document": document,
    }


@app.post("/api/predict-clv")
async def predict_clv(request: Request):
    payload, _ = await read_submission(request)
    form_data = payload.get("formData") if isinstance(payload.get("formData"), dict) else {}
    kind = text(form_data, "submissionType") or "outside-counsel"

    lead_score = calculate_lead_score(form_data, kind)
    prediction = lifetime_value(kind, form_data, lead_score.score, priority_for(lead_score.score))
    prediction["rationale"] = await get_llm_client().lifetime_value_narrative(form_data, kind, lead_score)

    return {"success": True, "leadScore": lead_score.score, "prediction": prediction}


@app.post("/api/analytics/form-event")
async def form_event(request: Request):
    payload, _ = await read_submission(request)
    logger.info(
        f"Form event {text(payload, 'event') or 'unknown'} on {text(payload, 'formType') or 'unknown'} "
        f"step {text(payload, 'step') or '-'}"
    )
    return {"received": True}


@app.post("/api/analytics/conversion")
async def conversion(request: Request):
    """Tag a contact that moved from one service to another."""
    payload, _ = await read_submission(request)
    email = text(payload, "email")
    if not email:
        raise ValidationError("Email is required")

    tag = f"converted-{text(payload, 'fromService') or 'unknown'}-to-{text(payload, 'toService') or 'unknown'}"
    try:
        await ListSync(get_settings()).upsert_member(email, {}, [tag])
        logger.info(f"Conversion recorded for {email}: {tag}")
    except ConfigMissing as e:
        logger.info(f"Conversion not synced: {e}")
    except UpstreamError as e:
        logger.error(f"Conversion sync failed for {email}: {e}")

    return {"success": True}


# Error handlers
@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError):
    logger.warning(f"Rejected {request.url.path}: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": str(exc)})


@app.exception_handler(FileLimitError)
async def file_limit_exception_handler(request: Request, exc: FileLimitError):
    logger.warning(f"Upload limits exceeded on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": str(exc), "limits": exc.limits},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": "Internal server error"},
    )


if __name__ == "__main__":
    import uvicorn

    os.makedirs("logs", exist_ok=True)

    logger.info(f"Starting {SERVICE_NAME} on port {settings.port}")

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
