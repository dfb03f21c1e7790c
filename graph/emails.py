"""Subjects and HTML bodies for the internal alert and the client emails."""

import json
from html import escape
from typing import Any, Dict, List, Optional, Tuple

from graph.nodes.score import priority_for
from graph.payload import display_name, extract_name, text
from graph.state import AiAnalysis, IntakeState, LeadScore

SERVICE_NAMES = {
    "estate-intake": "Estate Planning",
    "business-formation": "Business Formation",
    "brand-protection": "Brand Protection",
    "outside-counsel": "Outside Counsel",
    "legal-strategy-builder": "Legal Strategy Assessment",
    "legal-guide-download": "Legal Guide",
    "chat-intake": "Chat Intake",
}

# (next steps, response window)
SERVICE_FOLLOW_UP = {
    "estate-intake": (
        [
            "Review your estate planning goals and current assets",
            "Analyze tax implications and protection strategies",
            "Prepare recommendations for your plan",
            "Schedule your consultation to discuss next steps",
        ],
        "We typically respond within 4-6 hours for estate planning inquiries.",
    ),
    "business-formation": (
        [
            "Analyze your business model and funding plans",
            "Recommend the right entity structure",
            "Prepare formation documents and operating agreements",
            "Set up compliance systems and investor protections",
        ],
        "Business formation consultations are typically scheduled within 24 hours.",
    ),
    "brand-protection": (
        [
            "Run trademark clearance searches",
            "Build a protection strategy and filing roadmap",
            "Prepare applications and portfolio management",
            "Set up monitoring for infringement",
        ],
        "Brand protection consultations are typically scheduled within 12 hours.",
    ),
    "outside-counsel": (
        [
            "Review your legal needs and open matters",
            "Assess current gaps and risk exposure",
            "Propose an engagement structure and budget",
        ],
        "We typically respond to outside counsel inquiries within one business day.",
    ),
    "legal-strategy-builder": (
        [
            "Review your assessment answers",
            "Prioritize the risks your results surfaced",
            "Prepare a focused strategy session",
        ],
        "We typically follow up on assessments within one business day.",
    ),
    "chat-intake": (
        ["Review your conversation", "Match you with the right attorney"],
        "We typically respond within one business day.",
    ),
}

RESOURCES_BY_BAND = {
    "high": ["Priority consultation scheduling", "Advanced strategy guides", "Direct attorney contact"],
    "medium": ["Service overview and pricing guide", "Preparation checklist for your consultation"],
    "standard": ["Getting-started guide", "Our legal insights newsletter"],
}


def _section(title: str, value: Optional[str]) -> str:
    if not value:
        return ""
    body = escape(value).replace("\n", "<br>")
    return f"<h3>{escape(title)}</h3><p>{body}</p>"


def _list(items: List[str]) -> str:
    return "<ul>" + "".join(f"<li>{escape(item)}</li>" for item in items) + "</ul>"


def alert_email(state: IntakeState) -> Tuple[str, str]:
    """Internal alert for the intake team."""
    kind = state.get("kind", "")
    raw = state.get("raw", {})
    lead_score = state.get("lead_score") or LeadScore(score=0)
    analysis = state.get("analysis") or AiAnalysis()
    high_value = lead_score.score >= 70

    prefix = "HIGH VALUE" if high_value else "New"
    if state.get("converted"):
        prefix = f"ASSESSMENT CONVERSION - {prefix}"
    service = SERVICE_NAMES.get(kind, "Legal Intake")
    subject = f"{prefix} {service} - {display_name(raw)} (Score: {lead_score.score})"

    price_line = ""
    if state.get("price"):
        price_line = f"<p><strong>Quoted price:</strong> ${state['price']:,}</p>"
    elif state.get("price_estimate"):
        price_line = f"<p><strong>Estimate:</strong> {escape(state['price_estimate'])}</p>"

    html = f"""<html><body style="font-family: sans-serif; color: #1f2937;">
<h2>{escape(subject)}</h2>
<p><strong>Submission:</strong> {escape(state.get('submission_id', ''))}</p>
<p><strong>Email:</strong> {escape(text(raw, 'email') or 'Not provided')}<br>
<strong>Phone:</strong> {escape(text(raw, 'phone') or 'Not provided')}</p>
<p><strong>Lead score:</strong> {lead_score.score}/100 ({priority_for(lead_score.score)})</p>
{_list(lead_score.factors)}
{price_line}
{_section("Strategic analysis", analysis.analysis)}
{_section("Recommendations", analysis.recommendations)}
{_section("Risk flags", analysis.risk_flags)}
{_section("Engagement strategy", analysis.engagement_strategy)}
{_section("Client lifetime value", analysis.lifetime_value)}
<p><strong>Tags:</strong> {escape(', '.join(state.get('tags') or []))}</p>
<p><strong>Attachments:</strong> {len(state.get('attachments') or [])}</p>
<pre style="background: #f1f5f9; padding: 12px;">{escape(json.dumps(raw, indent=2, default=str))}</pre>
</body></html>"""
    return subject, html


def confirmation_email(state: IntakeState, guide_url: str = "", booking_url: str = "") -> Tuple[str, str]:
    """Client-facing confirmation; guide downloads get the download link instead."""
    kind = state.get("kind", "")
    raw: Dict[str, Any] = state.get("raw", {})
    lead_score = state.get("lead_score") or LeadScore(score=0)
    first, _ = extract_name(raw)
    greeting = escape(first or "there")

    if kind == "legal-guide-download":
        subject = "Your Legal Guide"
        link = (
            f'<p><a href="{escape(guide_url)}">Download your guide</a></p>'
            if guide_url
            else "<p>Your guide will follow in a separate email shortly.</p>"
        )
        html = f"""<html><body style="font-family: sans-serif; color: #1f2937;">
<p>Hi {greeting},</p>
<p>Thank you for requesting our legal guide.</p>
{link}
<p>If you have questions about your own situation, reply to this email and we will set up a time to talk.</p>
</body></html>"""
        return subject, html

    service = SERVICE_NAMES.get(kind, "Legal")
    steps, window = SERVICE_FOLLOW_UP.get(kind, SERVICE_FOLLOW_UP["chat-intake"])
    resources = RESOURCES_BY_BAND[priority_for(lead_score.score)]

    price_line = ""
    if state.get("price"):
        price_line = f"<p>Based on your selections, the flat fee for your package is ${state['price']:,}.</p>"
    elif state.get("price_estimate"):
        price_line = f"<p>Estimated investment: {escape(state['price_estimate'])}.</p>"

    booking_line = ""
    if booking_url:
        booking_line = f'<p><a href="{escape(booking_url)}">Schedule your consultation</a></p>'

    subject = f"{service} Intake Received - Next Steps"
    html = f"""<html><body style="font-family: sans-serif; color: #1f2937;">
<p>Hi {greeting},</p>
<p>Thank you for your {escape(service.lower())} submission. Here is what happens next:</p>
{_list(steps)}
{price_line}
<p>{escape(window)}</p>
{booking_line}
<p>Resources we have prepared for you:</p>
{_list(resources)}
<p>Reference: {escape(state.get('submission_id', ''))}</p>
</body></html>"""
    return subject, html
