from dataclasses import dataclass, field
from datetime import datetime
from typing import TypedDict, Optional, List, Dict, Any

INTAKE_KINDS = (
    "estate-intake",
    "business-formation",
    "brand-protection",
    "outside-counsel",
    "legal-strategy-builder",
    "legal-guide-download",
    "chat-intake",
)


@dataclass
class Attachment:
    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class LeadScore:
    score: int
    factors: List[str] = field(default_factory=list)


@dataclass
class AiAnalysis:
    analysis: Optional[str] = None
    recommendations: Optional[str] = None
    risk_flags: Optional[str] = None
    engagement_strategy: Optional[str] = None
    lifetime_value: Optional[str] = None

    @property
    def available(self) -> bool:
        return any((
            self.analysis,
            self.recommendations,
            self.risk_flags,
            self.engagement_strategy,
            self.lifetime_value,
        ))


@dataclass
class Outcome:
    status: str                      # "skipped" | "ok" | "error"
    message: str = ""


class IntakeState(TypedDict, total=False):
    """State shape for the intake enrichment and fan-out workflow."""
    kind: str
    raw: Dict[str, Any]              # submission payload (strings, occasionally lists)
    attachments: List[Attachment]
    query: Dict[str, str]            # request query parameters
    referer: str
    submission_id: str
    received_at: datetime
    converted: bool
    lead_score: LeadScore
    analysis: AiAnalysis
    price: Optional[int]
    price_estimate: Optional[str]
    tags: List[str]
    merge_fields: Dict[str, Any]
    outcomes: Dict[str, Outcome]     # one entry per fan-out step, logged only
    errors: List[str]
