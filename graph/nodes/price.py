from typing import Any, Dict, Optional, Tuple

from graph.payload import contains, parse_amount, text
from graph.state import IntakeState
from loguru import logger

ESTATE_PRICES = {
    ("trust", True): 3650,
    ("trust", False): 2900,
    ("will", True): 1900,
    ("will", False): 1500,
}

BUSINESS_PRICES = {
    "bronze": 2995,
    "silver": 4995,
    "gold": 7995,
}

BRAND_ESTIMATES = (
    (("enforcement",), "Custom Quote"),
    (("portfolio", "7500"), "$7,500+"),
    (("multiple",), "$4,995+"),
    (("single",), "$2,495"),
    (("clearance", "search"), "$1,495"),
)


def estate_price(payload: Dict[str, Any]) -> int:
    plan = "trust" if contains(payload, "packagePreference", "trust") else "will"
    married = text(payload, "maritalStatus").lower() == "married"
    return ESTATE_PRICES[(plan, married)]


def business_price(payload: Dict[str, Any]) -> Optional[int]:
    return BUSINESS_PRICES.get(text(payload, "selectedPackage").lower())


def brand_estimate(payload: Dict[str, Any]) -> Optional[str]:
    """First match wins across protectionGoal then servicePreference."""
    for needles, estimate in BRAND_ESTIMATES:
        if contains(payload, "protectionGoal", *needles) or contains(payload, "servicePreference", *needles):
            return estimate
    return None


def price_for(kind: str, payload: Dict[str, Any]) -> Tuple[Optional[int], Optional[str]]:
    """Return (price, price_estimate) for the intake kind."""
    if kind == "estate-intake":
        return estate_price(payload), None
    if kind == "business-formation":
        return business_price(payload), None
    if kind == "brand-protection":
        return None, brand_estimate(payload)
    return None, None


DEFAULT_ENGAGEMENT_VALUES = {
    "estate-intake": 1900,
    "business-formation": 4995,
    "brand-protection": 2495,
    "outside-counsel": 5000,
    "legal-strategy-builder": 2500,
    "chat-intake": 1500,
    "legal-guide-download": 500,
}
CUSTOM_QUOTE_VALUE = 10000

# band -> (tier, lifetime multiple of the first engagement, confidence)
LIFETIME_BANDS = {
    "high": ("premium", 3.0, "high"),
    "medium": ("growth", 2.0, "medium"),
    "standard": ("foundation", 1.2, "low"),
}


def first_engagement_value(kind: str, payload: Dict[str, Any]) -> int:
    amount, estimate = price_for(kind, payload)
    if amount:
        return amount
    if estimate:
        if estimate == "Custom Quote":
            return CUSTOM_QUOTE_VALUE
        return int(parse_amount(estimate))
    return DEFAULT_ENGAGEMENT_VALUES.get(kind, 1500)


def lifetime_value(kind: str, payload: Dict[str, Any], score: int, band: str) -> Dict[str, Any]:
    """Heuristic client lifetime value from the first fee and the lead's band."""
    tier, multiple, confidence = LIFETIME_BANDS[band]
    first_fee = first_engagement_value(kind, payload)
    return {
        "tier": tier,
        "firstEngagementValue": first_fee,
        "estimatedValue": int(round(first_fee * multiple)),
        "confidence": confidence,
        "leadScore": score,
    }


def quote(state: IntakeState) -> IntakeState:
    """Attach the fixed-fee quote for kinds that have one."""
    amount, estimate = price_for(state.get("kind", ""), state.get("raw", {}))
    state["price"] = amount
    state["price_estimate"] = estimate
    if amount or estimate:
        logger.info(f"Price for {state.get('submission_id')}: {amount or estimate}")
    return state
