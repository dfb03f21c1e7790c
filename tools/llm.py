import json
import re
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger
from openai import AsyncOpenAI

from config import Settings, get_settings
from graph.state import AiAnalysis, LeadScore

SECTION_MARKERS = (
    ("analysis", "STRATEGIC_ANALYSIS:"),
    ("recommendations", "RECOMMENDATIONS:"),
    ("risk_flags", "RISK_FLAGS:"),
    ("engagement_strategy", "ENGAGEMENT_STRATEGY:"),
    ("lifetime_value", "CLIENT_LIFETIME_VALUE:"),
)
JSON_KEYS = {
    "analysis": ("analysis", "strategicAnalysis", "strategic_analysis"),
    "recommendations": ("recommendations",),
    "risk_flags": ("riskFlags", "risk_flags"),
    "engagement_strategy": ("engagementStrategy", "engagement_strategy"),
    "lifetime_value": ("lifetimeValue", "clientLifetimeValue", "client_lifetime_value"),
}
NEXT_MARKER = re.compile(r"[A-Z_]+:")

EMAIL_PATTERN = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)+")
PHONE_PATTERN = re.compile(r"\+?\d[\d\s().-]{7,}\d")


def parse_sections(content: Optional[str]) -> AiAnalysis:
    """
    Split model output into the five labelled sections.

    A section runs from just past its marker to the next `[A-Z_]+:` token or
    the end of the text. A missing marker leaves the field as None. A JSON
    object carrying the same keys is accepted as well.
    """
    if not content:
        return AiAnalysis()

    structured = _parse_json_sections(content)
    if structured is not None:
        return structured

    values: Dict[str, Optional[str]] = {}
    for field_name, marker in SECTION_MARKERS:
        start = content.find(marker)
        if start < 0:
            values[field_name] = None
            continue
        body_start = start + len(marker)
        following = NEXT_MARKER.search(content, body_start)
        body_end = following.start() if following else len(content)
        values[field_name] = content[body_start:body_end].strip() or None

    return AiAnalysis(**values)


def _parse_json_sections(content: str) -> Optional[AiAnalysis]:
    stripped = content.strip()
    if stripped.startswith("```"):
        stripped = re.sub(r"^```(?:json)?\s*", "", stripped)
        stripped = re.sub(r"\s*```$", "", stripped)
    if not stripped.startswith("{"):
        return None
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    values = {}
    for field_name, keys in JSON_KEYS.items():
        value = next((data[key] for key in keys if data.get(key)), None)
        if isinstance(value, list):
            value = "\n".join(f"- {item}" for item in value)
        values[field_name] = str(value).strip() if value else None
    return AiAnalysis(**values)


class LLMClient:
    """LLM client for intake analysis, chat intake and document drafting."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[Any] = None):
        self.settings = settings or get_settings()
        self._client = client

        if not self.settings.openai_api_key and client is None:
            logger.debug("No OpenAI API key provided, AI features disabled")

    @property
    def configured(self) -> bool:
        return bool(self.settings.openai_api_key) or self._client is not None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            kwargs: Dict[str, Any] = {
                "api_key": self.settings.openai_api_key,
                "timeout": self.settings.llm_timeout,
                "max_retries": 0,
            }
            if self.settings.openai_base_url:
                kwargs["base_url"] = self.settings.openai_base_url
            self._client = AsyncOpenAI(**kwargs)
        return self._client

    async def _complete(self, system: str, user: str, temperature: float = 0.3, max_tokens: int = 1000) -> str:
        response = await self._get_client().chat.completions.create(
            model=self.settings.openai_model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return response.choices[0].message.content or ""

    async def analyze_intake(self, payload: Dict[str, Any], kind: str, lead_score: LeadScore) -> AiAnalysis:
        """
        Ask the model for a strategic read of the submission.

        Never raises: any failure (network, timeout, non-2xx, malformed body)
        is logged and yields an all-None analysis.
        """
        if not self.configured:
            logger.info("AI analysis skipped: OpenAI not configured")
            return AiAnalysis()

        try:
            content = await self._complete(ANALYSIS_SYSTEM_PROMPT, self._build_analysis_prompt(payload, kind, lead_score))
            analysis = parse_sections(content)
            logger.info(f"AI analysis completed for {kind} (available={analysis.available})")
            return analysis
        except Exception as e:
            logger.error(f"AI analysis failed: {e}")
            return AiAnalysis()

    async def chat_reply(
        self, session_id: str, message: str, context: List[Dict[str, Any]]
    ) -> Tuple[str, Dict[str, Any], bool]:
        """Return (reply, extracted fields, intake complete)."""
        fallback_extracted = _extract_contact(message, context)
        if not self.configured:
            return CHAT_FALLBACK_REPLY, fallback_extracted, False

        transcript = "\n".join(
            f"{turn.get('role', 'user')}: {turn.get('content', '')}"
            for turn in context[-20:]
            if isinstance(turn, dict)
        )
        prompt = f"Conversation so far:\n{transcript}\n\nuser: {message}"
        try:
            content = await self._complete(CHAT_SYSTEM_PROMPT, prompt, temperature=0.4, max_tokens=600)
            data = json.loads(_strip_fences(content))
            extracted = {**fallback_extracted, **(data.get("extracted") or {})}
            reply = str(data.get("reply") or CHAT_FALLBACK_REPLY)
            logger.info(f"Chat reply generated for session {session_id}")
            return reply, extracted, bool(data.get("intakeComplete"))
        except Exception as e:
            logger.error(f"Chat intake reply failed for session {session_id}: {e}")
            return CHAT_FALLBACK_REPLY, fallback_extracted, False

    async def draft_document(self, document_type: str, client_data: Dict[str, Any]) -> str:
        """Draft a first-pass document for attorney review."""
        if not self.configured:
            return _document_outline(document_type, client_data)
        try:
            prompt = (
                f"Document type: {document_type}\n"
                f"Client data:\n{json.dumps(client_data, indent=2, default=str)}\n\n"
                "Draft the document."
            )
            content = await self._complete(DOCUMENT_SYSTEM_PROMPT, prompt, temperature=0.2, max_tokens=2000)
            return content.strip() or _document_outline(document_type, client_data)
        except Exception as e:
            logger.error(f"Document drafting failed for {document_type}: {e}")
            return _document_outline(document_type, client_data)

    async def lifetime_value_narrative(self, payload: Dict[str, Any], kind: str, lead_score: LeadScore) -> Optional[str]:
        if not self.configured:
            return None
        try:
            prompt = (
                f"Intake type: {kind}\nLead score: {lead_score.score}/100\n"
                f"Submission:\n{json.dumps(payload, default=str)}\n\n"
                "In two sentences, estimate this client's lifetime value to the firm and why."
            )
            return (await self._complete(ANALYSIS_SYSTEM_PROMPT, prompt, max_tokens=200)).strip() or None
        except Exception as e:
            logger.error(f"Lifetime value narrative failed: {e}")
            return None

    def _build_analysis_prompt(self, payload: Dict[str, Any], kind: str, lead_score: LeadScore) -> str:
        factors = "\n".join(f"- {factor}" for factor in lead_score.factors) or "- none"
        return f"""Analyze this {kind} submission.

LEAD SCORE: {lead_score.score}/100
SCORE FACTORS:
{factors}

SUBMISSION:
{json.dumps(payload, indent=2, default=str)}

Respond using the five labelled sections."""


ANALYSIS_SYSTEM_PROMPT = """You are a senior legal strategist at a boutique law firm advising founders, business owners, creators and families on estate planning, business formation, brand protection and outside general counsel work.

Review each intake and write for the supervising attorney. Be specific, practical and brief.

Respond with exactly these five sections, in this order, each label on its own line:
STRATEGIC_ANALYSIS: 2-3 sentences on the client's situation and what they really need.
RECOMMENDATIONS: the services and next steps you would propose.
RISK_FLAGS: legal or commercial concerns, conflicts, or missing information.
ENGAGEMENT_STRATEGY: how to open the consultation and position the engagement.
CLIENT_LIFETIME_VALUE: an estimate of long-term value to the firm with a one-line rationale.

Do not use any other labels ending in a colon."""

CHAT_SYSTEM_PROMPT = """You are the intake assistant for a boutique law firm (estate planning, business formation, brand protection, outside counsel).
Ask one question at a time to learn the visitor's name, email, phone, the legal matter, and how urgent it is. Never give legal advice.

Reply ONLY with JSON:
{"reply": "your next message", "extracted": {"firstName": "...", "lastName": "...", "email": "...", "phone": "...", "serviceInterest": "...", "urgency": "..."}, "intakeComplete": false}
Set intakeComplete to true once you have a name, an email and the matter."""

DOCUMENT_SYSTEM_PROMPT = """You draft first-pass legal documents for attorney review at a boutique law firm.
Use plain headings, mark every assumption as [ATTORNEY REVIEW], and never present the draft as final legal advice."""

CHAT_FALLBACK_REPLY = (
    "Thanks for reaching out. Could you share your name, the best email to reach you, "
    "and a short description of what you need help with?"
)


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?\s*", "", text)
        text = re.sub(r"\s*```$", "", text)
    return text


def _extract_contact(message: str, context: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Pull email and phone out of the visitor's own turns."""
    visitor_text = " ".join(
        [str(turn.get("content", "")) for turn in context if isinstance(turn, dict) and turn.get("role") == "user"]
        + [message]
    )
    extracted: Dict[str, Any] = {}
    email = EMAIL_PATTERN.search(visitor_text)
    if email:
        extracted["email"] = email.group(0)
    phone = PHONE_PATTERN.search(visitor_text)
    if phone:
        extracted["phone"] = phone.group(0).strip()
    return extracted


def _document_outline(document_type: str, client_data: Dict[str, Any]) -> str:
    title = document_type.replace("-", " ").replace("_", " ").title()
    details = "\n".join(f"- {key}: {value}" for key, value in client_data.items()) or "- (none provided)"
    return f"""{title.upper()}

DRAFT - FOR ATTORNEY REVIEW

1. Parties
[ATTORNEY REVIEW] Identify all parties and their capacities.

2. Background
{details}

3. Terms
[ATTORNEY REVIEW] Insert operative terms for this {title.lower()}.

4. Signatures
[ATTORNEY REVIEW] Execution, witnessing and notarization requirements."""


def get_llm_client() -> LLMClient:
    return LLMClient(get_settings())


async def analyze_intake(payload: Dict[str, Any], kind: str, lead_score: LeadScore) -> AiAnalysis:
    """Analyze an intake using a client built from the process settings."""
    return await get_llm_client().analyze_intake(payload, kind, lead_score)
