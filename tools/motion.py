from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from config import Settings, get_settings
from graph.payload import display_name, text
from graph.state import AiAnalysis, LeadScore
from tools.errors import ConfigMissing, StepSkipped, UpstreamError

TASK_SCORE_THRESHOLD = 60
HIGH_PRIORITY_SCORE = 80
DUE_IN_DAYS = 7


class TaskCreator:
    """Motion project creation for leads worth a follow-up task."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self.transport = transport

    def is_configured(self) -> bool:
        return bool(self.settings.motion_api_key)

    def build_project(
        self,
        kind: str,
        payload: Dict[str, Any],
        lead_score: LeadScore,
        analysis: Optional[AiAnalysis] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        analysis = analysis or AiAnalysis()
        now = now or datetime.now(timezone.utc)
        score = lead_score.score

        description = "\n".join([
            f"Lead score: {score}/100",
            f"Name: {display_name(payload)}",
            f"Email: {text(payload, 'email') or 'Not provided'}",
            f"Phone: {text(payload, 'phone') or 'Not provided'}",
            f"Business: {text(payload, 'businessName') or text(payload, 'companyName') or 'N/A'}",
            "",
            "Score factors:",
            *[f"- {factor}" for factor in lead_score.factors],
            "",
            f"Strategic analysis: {analysis.analysis or 'Not available'}",
            f"Recommendations: {analysis.recommendations or 'Not available'}",
            f"Risk flags: {analysis.risk_flags or 'Not available'}",
            f"Engagement strategy: {analysis.engagement_strategy or 'Not available'}",
        ])

        project: Dict[str, Any] = {
            "name": f"{kind.replace('-', ' ').upper()}: {display_name(payload)}",
            "description": description,
            "priority": "HIGH" if score >= HIGH_PRIORITY_SCORE else "MEDIUM",
            "dueDate": (now + timedelta(days=DUE_IN_DAYS)).isoformat(),
            "labels": [kind, f"score-{(score // 10) * 10}"],
        }
        if self.settings.motion_workspace_id:
            project["workspaceId"] = self.settings.motion_workspace_id
        return project

    async def create_project(
        self,
        kind: str,
        payload: Dict[str, Any],
        lead_score: LeadScore,
        analysis: Optional[AiAnalysis] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        if lead_score.score < TASK_SCORE_THRESHOLD:
            raise StepSkipped(f"score {lead_score.score} below {TASK_SCORE_THRESHOLD}")
        if not self.is_configured():
            raise ConfigMissing("Motion not configured")

        project = self.build_project(kind, payload, lead_score, analysis, now)
        try:
            async with httpx.AsyncClient(timeout=self.settings.http_timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.settings.motion_base}/v1/projects",
                    headers={"X-API-Key": self.settings.motion_api_key},
                    json=project,
                )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Motion request failed: {e}") from e

        if not response.is_success:
            raise UpstreamError(f"Motion error {response.status_code}", status=response.status_code)

        data = response.json()
        logger.info(f"Motion project created: {data.get('id', 'unknown')}")
        return data


async def create_project(
    kind: str,
    payload: Dict[str, Any],
    lead_score: LeadScore,
    analysis: Optional[AiAnalysis] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    return await TaskCreator(get_settings()).create_project(kind, payload, lead_score, analysis, now)
