import hashlib
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from config import Settings, get_settings
from tools.errors import ConfigMissing, UpstreamError


def subscriber_hash(email: str) -> str:
    """Mailchimp member id: MD5 of the trimmed, lower-cased address."""
    return hashlib.md5(email.strip().lower().encode("utf-8")).hexdigest()


class ListSync:
    """Mailchimp audience upsert (POST, then PATCH when the member exists)."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self.transport = transport

    def is_configured(self) -> bool:
        return bool(self.settings.mailchimp_api_key and self.settings.mailchimp_audience_id)

    def _members_url(self) -> str:
        return f"{self.settings.mailchimp_base}/lists/{self.settings.mailchimp_audience_id}/members"

    async def upsert_member(
        self,
        email: str,
        merge_fields: Dict[str, Any],
        tags: List[str],
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Subscribe the contact, or update it when it already exists.

        Mailchimp answers 400 for an existing member; that case is retried as a
        PATCH on the hashed id, followed by a tag update so repeated submissions
        accumulate tags.

        Returns:
            {"action": "created" | "updated", "id": <member id>}
        """
        if not self.is_configured():
            raise ConfigMissing("Mailchimp not configured")
        if not email:
            raise ConfigMissing("No email to subscribe")

        member_id = subscriber_hash(email)
        signup = (now or datetime.now(timezone.utc)).isoformat()

        async with httpx.AsyncClient(
            timeout=self.settings.http_timeout,
            transport=self.transport,
            auth=("anystring", self.settings.mailchimp_api_key),
        ) as client:
            try:
                response = await client.post(
                    self._members_url(),
                    json={
                        "email_address": email,
                        "status": "subscribed",
                        "merge_fields": merge_fields,
                        "tags": tags,
                        "timestamp_signup": signup,
                    },
                )
                if response.is_success:
                    logger.info(f"Mailchimp member created: {member_id}")
                    return {"action": "created", "id": response.json().get("id", member_id)}

                if response.status_code != 400:
                    raise UpstreamError(f"Mailchimp error {response.status_code}", status=response.status_code)

                update = await client.patch(
                    f"{self._members_url()}/{member_id}",
                    json={"merge_fields": merge_fields, "tags": tags},
                )
                if not update.is_success:
                    raise UpstreamError(f"Mailchimp update error {update.status_code}", status=update.status_code)

                if tags:
                    tag_update = await client.post(
                        f"{self._members_url()}/{member_id}/tags",
                        json={"tags": [{"name": tag, "status": "active"} for tag in tags]},
                    )
                    if not tag_update.is_success:
                        raise UpstreamError(
                            f"Mailchimp tag update error {tag_update.status_code}", status=tag_update.status_code
                        )
            except httpx.HTTPError as e:
                raise UpstreamError(f"Mailchimp request failed: {e}") from e

        logger.info(f"Mailchimp member updated: {member_id}")
        return {"action": "updated", "id": member_id}


async def upsert_member(email: str, merge_fields: Dict[str, Any], tags: List[str], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Upsert using the process settings."""
    return await ListSync(get_settings()).upsert_member(email, merge_fields, tags, now)
