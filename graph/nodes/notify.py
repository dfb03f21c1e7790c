from config import get_settings
from graph.emails import alert_email, confirmation_email
from graph.fanout import run_step
from graph.payload import text
from graph.state import IntakeState, LeadScore
from tools import mailer
from tools.errors import StepSkipped

HIGH_VALUE_SCORE = 70


async def alert(state: IntakeState) -> IntakeState:
    """Email the intake team; high-value leads also go to the high-value list."""
    settings = get_settings()
    lead_score = state.get("lead_score") or LeadScore(score=0)
    high_value = lead_score.score >= HIGH_VALUE_SCORE

    recipients = list(settings.intake_notify_to)
    if high_value:
        recipients += [address for address in settings.high_value_notify_to if address not in recipients]

    async def send():
        if not recipients:
            raise StepSkipped("no alert recipients configured")
        subject, html = alert_email(state)
        await mailer.send_mail(
            recipients,
            subject,
            html=html,
            priority="high" if high_value else "normal",
            attachments=state.get("attachments") or [],
        )

    return await run_step(state, "alert_email", send)


async def confirm(state: IntakeState) -> IntakeState:
    """Confirmation to the client, copied to the intake team."""
    settings = get_settings()
    email = text(state.get("raw", {}), "email")
    lead_score = state.get("lead_score") or LeadScore(score=0)

    async def send():
        if not email:
            raise StepSkipped("no client email")
        booking_url = settings.booking_link(state.get("kind", ""), lead_score.score)
        subject, html = confirmation_email(state, settings.legal_guide_pdf_url, booking_url)
        await mailer.send_mail([email], subject, html=html, cc=settings.intake_notify_to)

    return await run_step(state, "client_email", send)
