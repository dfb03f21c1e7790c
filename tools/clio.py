from typing import Any, Dict, List, Optional, Tuple

import httpx
from loguru import logger

from config import Settings, get_settings
from graph.payload import split_name, text
from graph.state import LeadScore
from tools.errors import ConfigMissing, UpstreamError

NOT_PROVIDED = "Not Provided"
REFERRING_SITE = "https://jacobscounsellaw.com"

# Which full-name field each intake form collects
NAME_FIELDS = {
    "business-formation": "founderName",
    "brand-protection": "fullName",
    "outside-counsel": "contactName",
}


def lead_name(kind: str, payload: Dict[str, Any]) -> Tuple[str, str]:
    """Name for the CRM lead: the form's own field first, then a fallback chain."""
    full_field = NAME_FIELDS.get(kind)
    if full_field and text(payload, full_field):
        first, last = split_name(text(payload, full_field))
        return first, last or "Client"

    first, last = text(payload, "firstName"), text(payload, "lastName")
    if first and last:
        return first, last

    for key in ("fullName", "contactName", "founderName"):
        if text(payload, key):
            first_part, rest = split_name(text(payload, key))
            return first_part, rest or "Client"

    if first:
        return first, "Client"
    local_part = text(payload, "email").split("@")[0]
    if local_part:
        return local_part, "Client"
    return NOT_PROVIDED, NOT_PROVIDED


def _summary_lines(kind: str, p: Dict[str, Any]) -> List[str]:
    def line(label: str, key: str) -> str:
        return f"{label}: {text(p, key) or 'N/A'}"

    if kind == "estate-intake":
        return [
            line("State", "state"),
            line("Marital status", "maritalStatus"),
            line("Gross estate", "grossEstate"),
            line("Package", "packagePreference"),
            line("Owns business", "ownBusiness"),
        ]
    if kind == "business-formation":
        return [
            line("Business", "businessName"),
            line("Entity type", "businessType"),
            line("Investment plan", "investmentPlan"),
            line("Projected revenue", "projectedRevenue"),
            line("Package", "selectedPackage"),
        ]
    if kind == "brand-protection":
        return [
            line("Business", "businessName"),
            line("Protection goal", "protectionGoal"),
            line("Service", "servicePreference"),
            line("Scope", "geographicScope"),
            line("Stage", "businessStage"),
        ]
    if kind == "outside-counsel":
        return [
            line("Company", "companyName"),
            line("Budget", "budget"),
            line("Timeline", "timeline"),
            line("Stage", "stage"),
            line("Services", "services"),
        ]
    if kind == "legal-strategy-builder":
        return [line("Assessment score", "assessmentScore"), line("Business", "businessName")]
    return [line("Source", "source"), line("Message", "message")]


def build_message(kind: str, payload: Dict[str, Any], lead_score: LeadScore, booking_url: str = "") -> str:
    lines = [
        f"{kind.replace('-', ' ').upper()} Lead",
        f"Lead score: {lead_score.score}/100",
        *_summary_lines(kind, payload),
    ]
    if text(payload, "urgency"):
        lines.append(f"Urgency: {text(payload, 'urgency')}")
    if text(payload, "conversionSource"):
        lines.append(f"Converted from: {text(payload, 'conversionSource')}")
    if booking_url:
        lines.append(f"Booking link: {booking_url}")
    return "\n".join(lines)


class CrmPush:
    """Clio Grow inbox lead intake."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self.transport = transport

    def is_configured(self) -> bool:
        return bool(self.settings.clio_grow_inbox_token)

    def build_payload(self, kind: str, payload: Dict[str, Any], lead_score: LeadScore) -> Dict[str, Any]:
        first, last = lead_name(kind, payload)
        return {
            "inbox_lead": {
                "from_first": first,
                "from_last": last,
                "from_email": text(payload, "email"),
                "from_phone": text(payload, "phone"),
                "from_message": build_message(
                    kind, payload, lead_score, self.settings.booking_link(kind, lead_score.score)
                ),
                "referring_url": f"{REFERRING_SITE}/{kind}",
                "from_source": f"Website {kind}",
            },
            "inbox_lead_token": self.settings.clio_grow_inbox_token,
        }

    async def push_lead(self, kind: str, payload: Dict[str, Any], lead_score: LeadScore) -> Dict[str, Any]:
        if not self.is_configured():
            raise ConfigMissing("Clio Grow not configured")

        body = self.build_payload(kind, payload, lead_score)
        try:
            async with httpx.AsyncClient(timeout=self.settings.http_timeout, transport=self.transport) as client:
                response = await client.post(f"{self.settings.clio_grow_base}/inbox_leads", json=body)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Clio Grow request failed: {e}") from e

        if not response.is_success:
            raise UpstreamError(f"Clio error {response.status_code}", status=response.status_code)

        logger.info(f"Pushed {kind} lead to Clio Grow")
        return response.json() if response.content else {}


async def push_lead(kind: str, payload: Dict[str, Any], lead_score: LeadScore) -> Dict[str, Any]:
    return await CrmPush(get_settings()).push_lead(kind, payload, lead_score)
