from typing import Any, Dict, List

from graph.payload import as_list, contains, email_domain, equals, is_conversion, parse_amount, parse_int, text
from graph.state import IntakeState, LeadScore
from loguru import logger

MAX_SCORE = 100

BASE_SCORES = {
    "estate-intake": 40,
    "business-formation": 50,
    "brand-protection": 35,
    "outside-counsel": 45,
    "legal-guide-download": 30,
    "legal-strategy-builder": 55,
}
DEFAULT_BASE_SCORE = 30

PRIORITY_STATES = ("New York", "New Jersey", "Ohio", "NY", "NJ", "OH")
FREE_EMAIL_DOMAINS = {"gmail.com", "yahoo.com", "hotmail.com"}


class _Tally:
    """Running total that never exceeds MAX_SCORE; each factor logs what it really added."""

    def __init__(self):
        self.total = 0
        self.factors: List[str] = []

    def add(self, label: str, points: int) -> None:
        applied = min(points, MAX_SCORE - self.total)
        if applied <= 0:
            return
        self.total += applied
        self.factors.append(f"{label}: +{applied}")


def _estate_rules(p: Dict[str, Any], tally: _Tally) -> None:
    gross_estate = parse_amount(p.get("grossEstate"))
    if gross_estate > 5_000_000:
        tally.add("High net worth (>$5M)", 50)
    elif gross_estate > 2_000_000:
        tally.add("Significant assets (>$2M)", 35)
    elif gross_estate > 1_000_000:
        tally.add("Substantial assets (>$1M)", 25)

    if contains(p, "packagePreference", "trust"):
        tally.add("Trust preference", 30)
    if equals(p, "ownBusiness", "Yes"):
        tally.add("Business owner", 20)
    if equals(p, "otherRealEstate", "Yes"):
        tally.add("Multiple properties", 15)
    if equals(p, "planningGoal", "complex"):
        tally.add("Complex situation", 25)


def _business_rules(p: Dict[str, Any], tally: _Tally) -> None:
    if equals(p, "investmentPlan", "vc"):
        tally.add("VC-backed startup", 60)
    elif equals(p, "investmentPlan", "angel"):
        tally.add("Angel funding", 40)

    if contains(p, "projectedRevenue", "over25m"):
        tally.add("High revenue projection", 50)
    elif contains(p, "projectedRevenue", "5m-25m"):
        tally.add("Significant revenue projection", 35)

    if equals(p, "businessGoal", "startup"):
        tally.add("High-growth startup", 20)
    if equals(p, "selectedPackage", "gold"):
        tally.add("Premium package", 25)


def _brand_rules(p: Dict[str, Any], tally: _Tally) -> None:
    if contains(p, "servicePreference", "Portfolio", "7500"):
        tally.add("Comprehensive portfolio", 40)
    if contains(p, "businessStage", "Mature"):
        tally.add("Established business", 20)
    if equals(p, "geographicScope", "National", "International"):
        tally.add("Broad geographic scope", 25)
    if equals(p, "protectionGoal", "enforcement"):
        tally.add("Enforcement need", 35)


def _counsel_rules(p: Dict[str, Any], tally: _Tally) -> None:
    if contains(p, "budget", "10K+"):
        tally.add("High budget (>$10K)", 40)
    elif contains(p, "budget", "5K-10K"):
        tally.add("Substantial budget", 25)

    if equals(p, "timeline", "Immediately"):
        tally.add("Immediate need", 30)
    if equals(p, "stage", "growth", "scale"):
        tally.add("Growth-stage company", 20)
    if len(as_list(p, "services")) > 3:
        tally.add("Multiple services needed", 15)


KIND_RULES = {
    "estate-intake": _estate_rules,
    "business-formation": _business_rules,
    "brand-protection": _brand_rules,
    "outside-counsel": _counsel_rules,
}


def calculate_lead_score(payload: Dict[str, Any], kind: str) -> LeadScore:
    """Additive rubric: base by kind, conversion bonus, kind rules, universal rules."""
    tally = _Tally()

    tally.add(f"Base {kind}", BASE_SCORES.get(kind, DEFAULT_BASE_SCORE))

    if is_conversion(payload):
        tally.add("Strategy assessment conversion", 20)
        assessment_score = parse_int(payload.get("assessmentScore"))
        if assessment_score is not None and assessment_score >= 70:
            tally.add("Strong assessment score (70+)", 15)
        elif assessment_score is not None and assessment_score >= 50:
            tally.add("Solid assessment score (50+)", 10)

    rules = KIND_RULES.get(kind)
    if rules:
        rules(payload, tally)

    # Universal signals
    if contains(payload, "urgency", "Immediate", "urgent"):
        tally.add("Urgent timeline", 40)

    location = f"{text(payload, 'state')} {text(payload, 'businessState')}"
    if any(state in location for state in PRIORITY_STATES):
        tally.add("Priority jurisdiction (NY/NJ/OH)", 15)

    # any address outside the free providers counts, even one with no domain part
    email = text(payload, "email")
    if email and email_domain(email) not in FREE_EMAIL_DOMAINS:
        tally.add("Business email", 10)

    return LeadScore(score=tally.total, factors=tally.factors)


def priority_for(score: int) -> str:
    if score >= 70:
        return "high"
    if score >= 50:
        return "medium"
    return "standard"


def score(state: IntakeState) -> IntakeState:
    """Score the submission with the deterministic rubric."""
    kind = state.get("kind", "")
    lead_score = calculate_lead_score(state.get("raw", {}), kind)
    state["lead_score"] = lead_score

    logger.info(
        f"Lead scored {lead_score.score}/100 ({priority_for(lead_score.score)}) "
        f"for {state.get('submission_id')} with {len(lead_score.factors)} factors"
    )
    return state
