"""Process-wide settings, read once from the environment at startup."""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional

from dotenv import load_dotenv


PRIORITY_BOOKING_SCORE = 70

BOOKING_BASE = "https://calendly.com/jacobscounsel"

DEFAULT_BOOKING_LINKS = {
    "estate-planning": f"{BOOKING_BASE}/wealth-protection-consultation",
    "business-formation": f"{BOOKING_BASE}/business-protection-consultation",
    "brand-protection": f"{BOOKING_BASE}/brand-protection-consultation",
    "outside-counsel": f"{BOOKING_BASE}/outside-counsel-consultation",
    "priority": f"{BOOKING_BASE}/priority-consultation",
    "general": f"{BOOKING_BASE}/general-consultation",
}

# intake kind -> booking link key; anything unlisted books a general consultation
BOOKING_KINDS = {
    "estate-intake": "estate-planning",
    "business-formation": "business-formation",
    "brand-protection": "brand-protection",
    "outside-counsel": "outside-counsel",
}


def _split_addresses(value: Optional[str]) -> List[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def _booking_links_from_env() -> Dict[str, str]:
    """Defaults, each overridable with BOOKING_LINK_<KEY> (e.g. BOOKING_LINK_ESTATE_PLANNING)."""
    links = dict(DEFAULT_BOOKING_LINKS)
    for key in links:
        override = os.getenv(f"BOOKING_LINK_{key.upper().replace('-', '_')}")
        if override:
            links[key] = override.strip()
    return links


@dataclass(frozen=True)
class Settings:
    """Immutable configuration record injected into every collaborator."""

    port: int = 8000
    log_level: str = "INFO"

    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: Optional[str] = None

    ms_tenant_id: str = ""
    ms_client_id: str = ""
    ms_client_secret: str = ""
    ms_graph_sender: str = ""
    ms_login_base: str = "https://login.microsoftonline.com"
    ms_graph_base: str = "https://graph.microsoft.com"

    mailchimp_api_key: str = ""
    mailchimp_server: str = "us21"
    mailchimp_audience_id: str = ""

    motion_api_key: str = ""
    motion_workspace_id: str = ""
    motion_base: str = "https://api.usemotion.com"

    clio_grow_base: str = "https://grow.clio.com"
    clio_grow_inbox_token: str = ""

    intake_notify_to: List[str] = field(default_factory=list)
    high_value_notify_to: List[str] = field(default_factory=list)
    legal_guide_pdf_url: str = ""
    booking_links: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_BOOKING_LINKS))

    llm_timeout: float = 20.0
    http_timeout: float = 10.0

    @property
    def mailchimp_base(self) -> str:
        return f"https://{self.mailchimp_server}.api.mailchimp.com/3.0"

    def booking_link(self, kind: str, score: int) -> str:
        """Consultation booking URL: the priority calendar for high scores, else the kind's own."""
        if score >= PRIORITY_BOOKING_SCORE and self.booking_links.get("priority"):
            return self.booking_links["priority"]
        key = BOOKING_KINDS.get(kind, "general")
        return self.booking_links.get(key) or self.booking_links.get("general", "")

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.getenv
        return cls(
            port=int(env("PORT", "8000")),
            log_level=env("LOG_LEVEL", "INFO"),
            openai_api_key=env("OPENAI_API_KEY", ""),
            openai_model=env("OPENAI_MODEL", "gpt-4o-mini"),
            openai_base_url=env("OPENAI_BASE_URL") or None,
            ms_tenant_id=env("MS_TENANT_ID", ""),
            ms_client_id=env("MS_CLIENT_ID", ""),
            ms_client_secret=env("MS_CLIENT_SECRET", ""),
            ms_graph_sender=env("MS_GRAPH_SENDER", ""),
            mailchimp_api_key=env("MAILCHIMP_API_KEY", ""),
            mailchimp_server=env("MAILCHIMP_SERVER", "us21"),
            mailchimp_audience_id=env("MAILCHIMP_AUDIENCE_ID", ""),
            motion_api_key=env("MOTION_API_KEY", ""),
            motion_workspace_id=env("MOTION_WORKSPACE_ID", ""),
            clio_grow_base=env("CLIO_GROW_BASE", "https://grow.clio.com").rstrip("/"),
            clio_grow_inbox_token=env("CLIO_GROW_INBOX_TOKEN", ""),
            intake_notify_to=_split_addresses(env("INTAKE_NOTIFY_TO")),
            high_value_notify_to=_split_addresses(env("HIGH_VALUE_NOTIFY_TO")),
            legal_guide_pdf_url=env("LEGAL_GUIDE_PDF_URL", ""),
            booking_links=_booking_links_from_env(),
            llm_timeout=float(env("LLM_TIMEOUT_SECONDS", "20")),
            http_timeout=float(env("HTTP_TIMEOUT_SECONDS", "10")),
        )


@lru_cache()
def get_settings() -> Settings:
    """Load `.env` and the environment once; later calls return the same record."""
    load_dotenv()
    return Settings.from_env()
