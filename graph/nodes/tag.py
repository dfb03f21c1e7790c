import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from config import Settings, get_settings
from graph.nodes.score import priority_for
from graph.payload import as_list, contains, equals, extract_name, is_conversion, parse_amount, parse_int, text
from graph.state import IntakeState, LeadScore
from loguru import logger

BAND_TAGS = {
    "high": ["high-priority", "score-high", "trigger-vip-sequence", "notify-drew-immediately"],
    "medium": ["medium-priority", "score-medium", "trigger-premium-nurture"],
    "standard": ["standard-priority", "score-low", "trigger-standard-nurture"],
}

PRIORITY_LABELS = {
    "high": "High Priority",
    "medium": "Medium Priority",
    "standard": "Standard",
}

# protectionGoal keyword -> tags, first match wins
BRAND_GOAL_TAGS = (
    (("enforcement",), ["needs-enforcement", "sequence-ip-enforcement"]),
    (("registration", "trademark"), ["wants-trademark", "sequence-trademark-registration"]),
    (("clearance", "search"), ["needs-clearance", "sequence-trademark-clearance"]),
    (("portfolio",), ["portfolio-management", "sequence-ip-portfolio"]),
    (("monitoring",), ["wants-monitoring", "sequence-brand-monitoring"]),
)


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def _estate_tags(p: Dict[str, Any]) -> List[str]:
    tags = ["industry-estate-planning"]

    gross_estate = parse_amount(p.get("grossEstate"))
    if gross_estate > 5_000_000:
        tags += ["very-wealthy", "sequence-estate-tax"]
    elif gross_estate > 2_000_000:
        tags += ["wealthy", "sequence-wealth-protection"]
    elif gross_estate > 1_000_000:
        tags += ["comfortable", "sequence-asset-protection"]
    else:
        tags += ["modest-assets", "sequence-basic-planning"]

    if contains(p, "packagePreference", "trust"):
        tags += ["wants-trust", "sequence-trust-planning"]
    elif contains(p, "packagePreference", "will"):
        tags.append("wants-will")
    if equals(p, "ownBusiness", "Yes"):
        tags += ["business-owner", "sequence-business-succession"]
    if equals(p, "otherRealEstate", "Yes"):
        tags.append("multiple-properties")
    if equals(p, "planningGoal", "complex"):
        tags.append("complex-estate")
    if contains(p, "maritalStatus", "married"):
        tags.append("married")
    if equals(p, "hasMinorChildren", "Yes"):
        tags.append("has-minor-children")
    return tags


def _business_tags(p: Dict[str, Any]) -> List[str]:
    tags = ["industry-business-formation"]

    if equals(p, "investmentPlan", "vc"):
        tags += ["vc-backed", "sequence-vc-startup"]
    elif equals(p, "investmentPlan", "angel"):
        tags += ["angel-funded", "sequence-angel-funding"]
    elif text(p, "investmentPlan"):
        tags += ["self-funded", "sequence-small-business"]

    if contains(p, "projectedRevenue", "over25m"):
        tags += ["revenue-over-25m", "high-growth"]
    elif contains(p, "projectedRevenue", "5m-25m"):
        tags += ["revenue-5m-25m", "high-growth"]

    if equals(p, "businessGoal", "startup"):
        tags.append("startup-founder")
    package = _slug(text(p, "selectedPackage"))
    if package:
        tags.append(f"package-{package}")
    return tags


def _brand_tags(p: Dict[str, Any]) -> List[str]:
    tags = ["industry-brand-protection"]

    for needles, goal_tags in BRAND_GOAL_TAGS:
        if contains(p, "protectionGoal", *needles):
            tags += goal_tags
            break

    if contains(p, "servicePreference", "Portfolio", "7500"):
        tags.append("portfolio-client")
    if equals(p, "geographicScope", "International"):
        tags.append("international-scope")
    elif equals(p, "geographicScope", "National"):
        tags.append("national-scope")
    if contains(p, "businessStage", "Mature"):
        tags.append("established-brand")
    return tags


def _counsel_tags(p: Dict[str, Any]) -> List[str]:
    tags = ["industry-outside-counsel", "sequence-outside-counsel"]

    if contains(p, "budget", "10K+"):
        tags.append("budget-10k-plus")
    elif contains(p, "budget", "5K-10K"):
        tags.append("budget-5k-10k")
    if equals(p, "timeline", "Immediately"):
        tags.append("immediate-need")
    if equals(p, "stage", "growth", "scale"):
        tags.append("growth-stage-company")
    return tags


def _strategy_tags(p: Dict[str, Any]) -> List[str]:
    tags = ["industry-strategy-assessment", "sequence-strategy-assessment"]
    assessment_score = parse_int(p.get("assessmentScore")) or 0
    if assessment_score >= 70:
        tags.append("assessment-high")
    elif assessment_score >= 50:
        tags.append("assessment-medium")
    else:
        tags.append("assessment-low")
    return tags


def _guide_tags(p: Dict[str, Any]) -> List[str]:
    tags = ["resource-guide-download", "trigger-guide-sequence"]
    guide = _slug(text(p, "guideType"))
    if guide:
        tags.append(f"guide-{guide}")
    return tags


def _chat_tags(p: Dict[str, Any]) -> List[str]:
    return ["chat-lead", "sequence-chat-followup"]


KIND_TAGS = {
    "estate-intake": _estate_tags,
    "business-formation": _business_tags,
    "brand-protection": _brand_tags,
    "outside-counsel": _counsel_tags,
    "legal-strategy-builder": _strategy_tags,
    "legal-guide-download": _guide_tags,
    "chat-intake": _chat_tags,
}


def _today(now: Optional[datetime]) -> str:
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.date().isoformat()


def generate_tags(
    payload: Dict[str, Any], lead_score: LeadScore, kind: str, now: Optional[datetime] = None
) -> List[str]:
    """Ordered, de-duplicated segmentation tags; intake and date tags always lead."""
    tags = [f"intake-{kind}", f"date-{_today(now)}"]
    tags += BAND_TAGS[priority_for(lead_score.score)]

    kind_tags = KIND_TAGS.get(kind)
    if kind_tags:
        tags += kind_tags(payload)

    if is_conversion(payload):
        tags.append("assessment-conversion")
    if contains(payload, "urgency", "Immediate", "urgent"):
        tags.append("urgent-need")
    tags += [_slug(tag) for tag in as_list(payload, "tags") if _slug(tag)]

    return list(dict.fromkeys(tags))


def build_merge_fields(
    payload: Dict[str, Any],
    lead_score: LeadScore,
    kind: str,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    """Merge fields for the marketing list; kind extras only when the payload has the key."""
    first, last = extract_name(payload)
    fields: Dict[str, Any] = {
        "FNAME": first,
        "LNAME": last,
        "EMAIL": text(payload, "email"),
        "PHONE": text(payload, "phone"),
        "BUSINESS": text(payload, "businessName") or text(payload, "companyName"),
        "LEAD_SCORE": lead_score.score,
        "PRIORITY": PRIORITY_LABELS[priority_for(lead_score.score)],
        "SERVICE_TYPE": kind.replace("-", " "),
        "SIGNUP_DATE": _today(now),
        "LEAD_SOURCE": text(payload, "source") or "Website Intake Form",
    }

    def copy(field: str, key: str) -> None:
        if key in payload:
            fields[field] = text(payload, key)

    if kind == "estate-intake":
        if "grossEstate" in payload:
            amount = parse_amount(payload.get("grossEstate"))
            fields["ESTATE_AMOUNT"] = f"${amount:,.0f}" if amount > 0 else "Not specified"
        copy("HAS_BUSINESS", "ownBusiness")
        copy("MARITAL", "maritalStatus")
        copy("PACKAGE", "packagePreference")
    elif kind == "business-formation":
        copy("STARTUP_TYPE", "investmentPlan")
        copy("BIZ_TYPE", "businessType")
        copy("REVENUE", "projectedRevenue")
        copy("PACKAGE", "selectedPackage")
    elif kind == "brand-protection":
        copy("BP_GOAL", "protectionGoal")
        copy("BP_STAGE", "businessStage")
        copy("BP_SCOPE", "geographicScope")
    elif kind == "outside-counsel":
        copy("BUDGET", "budget")
        copy("TIMELINE", "timeline")
    elif kind == "legal-strategy-builder":
        copy("ASSESS_SCORE", "assessmentScore")
    elif kind == "legal-guide-download":
        copy("GUIDE", "guideType")

    fields["CALENDLY"] = (settings or get_settings()).booking_link(kind, lead_score.score)

    # caller extras fill gaps only; computed fields win
    extra = payload.get("merge_fields")
    if isinstance(extra, dict):
        for key, value in extra.items():
            fields.setdefault(str(key).upper(), value)

    return fields


def tag(state: IntakeState) -> IntakeState:
    """Derive list tags and merge fields that drive downstream automations."""
    raw = state.get("raw", {})
    lead_score = state.get("lead_score") or LeadScore(score=0)
    kind = state.get("kind", "")
    now = state.get("received_at")

    state["tags"] = generate_tags(raw, lead_score, kind, now)
    state["merge_fields"] = build_merge_fields(raw, lead_score, kind, now)

    logger.info(f"Generated {len(state['tags'])} tags for {state.get('submission_id')}")
    return state
