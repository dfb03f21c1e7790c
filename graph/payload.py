"""Lenient accessors over a raw submission payload."""

import re
from typing import Any, Dict, List, Optional, Tuple

_NUMBER_PREFIX = re.compile(r"^\s*[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?")
_INT_PREFIX = re.compile(r"^\s*[-+]?\d+")

CONVERSION_SOURCE = "legal-strategy-builder"


def text(payload: Dict[str, Any], key: str) -> str:
    """Return the field as a stripped string; lists are comma-joined."""
    value = payload.get(key)
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value)
    return str(value).strip()


def as_list(payload: Dict[str, Any], key: str) -> List[str]:
    value = payload.get(key)
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]


def contains(payload: Dict[str, Any], key: str, *needles: str) -> bool:
    haystack = text(payload, key).lower()
    return bool(haystack) and any(needle.lower() in haystack for needle in needles)


def equals(payload: Dict[str, Any], key: str, *options: str) -> bool:
    value = text(payload, key).lower()
    return bool(value) and value in {option.lower() for option in options}


def parse_amount(value: Any) -> float:
    """parseFloat after stripping `$` and `,`; anything unparseable is 0."""
    if value is None:
        return 0.0
    cleaned = str(value).replace("$", "").replace(",", "")
    match = _NUMBER_PREFIX.match(cleaned)
    return float(match.group(0)) if match else 0.0


def parse_int(value: Any) -> Optional[int]:
    """parseInt semantics: leading integer digits, else None."""
    if value is None:
        return None
    match = _INT_PREFIX.match(str(value))
    return int(match.group(0)) if match else None


def email_domain(email: str) -> str:
    if "@" not in email:
        return ""
    return email.rsplit("@", 1)[1].strip().lower()


def split_name(full: str) -> Tuple[str, str]:
    parts = full.split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def extract_name(payload: Dict[str, Any], sources=("fullName", "contactName", "founderName")) -> Tuple[str, str]:
    """Prefer firstName/lastName, else split the first populated full-name field."""
    first = text(payload, "firstName")
    if first:
        return first, text(payload, "lastName")
    for key in sources:
        full = text(payload, key)
        if full:
            return split_name(full)
    return "", text(payload, "lastName")


def display_name(payload: Dict[str, Any]) -> str:
    first, last = extract_name(payload)
    name = f"{first} {last}".strip()
    return name or text(payload, "email") or "Unknown"


def is_conversion(payload: Dict[str, Any]) -> bool:
    return (
        text(payload, "fromAssessment").lower() == "true"
        or text(payload, "source") == "legal-strategy-builder-conversion"
        or text(payload, "conversionSource") == CONVERSION_SOURCE
    )
