from graph.fanout import run_step
from graph.payload import text
from graph.state import IntakeState, LeadScore
from tools import clio, mailchimp, motion
from tools.errors import StepSkipped


async def list_sync(state: IntakeState) -> IntakeState:
    """Upsert the contact into the marketing list with its tags and merge fields."""
    email = text(state.get("raw", {}), "email")

    async def upsert():
        if not email:
            raise StepSkipped("no email")
        await mailchimp.upsert_member(
            email,
            state.get("merge_fields") or {},
            state.get("tags") or [],
            state.get("received_at"),
        )

    return await run_step(state, "list_sync", upsert)


async def create_task(state: IntakeState) -> IntakeState:
    """Open a follow-up project for qualified leads."""

    async def create():
        await motion.create_project(
            state.get("kind", ""),
            state.get("raw", {}),
            state.get("lead_score") or LeadScore(score=0),
            state.get("analysis"),
            state.get("received_at"),
        )

    return await run_step(state, "task", create)


async def push_crm(state: IntakeState) -> IntakeState:
    """Send the lead to the CRM inbox."""

    async def push():
        await clio.push_lead(
            state.get("kind", ""),
            state.get("raw", {}),
            state.get("lead_score") or LeadScore(score=0),
        )

    return await run_step(state, "crm", push)
