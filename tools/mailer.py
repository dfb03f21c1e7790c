import base64
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

import httpx
from loguru import logger

from config import Settings, get_settings
from graph.state import Attachment
from tools.errors import ConfigMissing, UpstreamError

GRAPH_SCOPE = "https://graph.microsoft.com/.default"
MAX_ATTACHMENTS = 10


class GraphMailer:
    """Microsoft Graph mail sender using the client-credentials flow."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self.transport = transport

    def is_configured(self) -> bool:
        s = self.settings
        return all((s.ms_tenant_id, s.ms_client_id, s.ms_client_secret, s.ms_graph_sender))

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.http_timeout, transport=self.transport)

    async def get_token(self, client: Optional[httpx.AsyncClient] = None) -> str:
        """Fetch a fresh app token; every send acquires its own."""
        s = self.settings
        if not (s.ms_tenant_id and s.ms_client_id and s.ms_client_secret):
            raise ConfigMissing("MS Graph credentials missing")

        if client is None:
            async with self._client() as own_client:
                return await self._request_token(own_client)
        return await self._request_token(client)

    async def _request_token(self, client: httpx.AsyncClient) -> str:
        s = self.settings
        try:
            response = await client.post(
                f"{s.ms_login_base}/{s.ms_tenant_id}/oauth2/v2.0/token",
                data={
                    "client_id": s.ms_client_id,
                    "client_secret": s.ms_client_secret,
                    "scope": GRAPH_SCOPE,
                    "grant_type": "client_credentials",
                },
            )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Token request failed: {e}") from e

        if not response.is_success:
            raise UpstreamError(f"Token error {response.status_code}", status=response.status_code)
        token = response.json().get("access_token")
        if not token:
            raise UpstreamError("Token response carried no access_token")
        return token

    def build_message(
        self,
        to: List[str],
        subject: str,
        html: Optional[str] = None,
        text: Optional[str] = None,
        priority: str = "normal",
        attachments: Iterable[Attachment] = (),
        cc: Iterable[str] = (),
    ) -> Dict[str, Any]:
        if html is not None:
            body = {"contentType": "HTML", "content": html}
        else:
            body = {"contentType": "Text", "content": text or ""}

        message: Dict[str, Any] = {
            "subject": subject,
            "body": body,
            "toRecipients": [{"emailAddress": {"address": address}} for address in to],
            "importance": "high" if priority == "high" else "normal",
            "attachments": [
                {
                    "@odata.type": "#microsoft.graph.fileAttachment",
                    "name": attachment.filename or "attachment",
                    "contentType": attachment.content_type or "application/octet-stream",
                    "contentBytes": base64.b64encode(attachment.content).decode("ascii"),
                }
                for attachment in list(attachments)[:MAX_ATTACHMENTS]
            ],
        }
        cc_list = [address for address in cc if address and address not in to]
        if cc_list:
            message["ccRecipients"] = [{"emailAddress": {"address": address}} for address in cc_list]
        return {"message": message, "saveToSentItems": True}

    async def send_mail(
        self,
        to: List[str],
        subject: str,
        html: Optional[str] = None,
        text: Optional[str] = None,
        priority: str = "normal",
        attachments: Iterable[Attachment] = (),
        cc: Iterable[str] = (),
    ) -> None:
        """
        Send one message from the configured mailbox.

        Raises:
            ConfigMissing: credentials or sender not configured
            UpstreamError: token or sendMail call failed
        """
        if not self.settings.ms_graph_sender:
            raise ConfigMissing("MS_GRAPH_SENDER not configured")
        if not to:
            raise ConfigMissing("No recipients")

        mail = self.build_message(to, subject, html, text, priority, attachments, cc)

        async with self._client() as client:
            token = await self.get_token(client)
            try:
                response = await client.post(
                    f"{self.settings.ms_graph_base}/v1.0/users/{quote(self.settings.ms_graph_sender)}/sendMail",
                    headers={"Authorization": f"Bearer {token}"},
                    json=mail,
                )
            except httpx.HTTPError as e:
                raise UpstreamError(f"sendMail request failed: {e}") from e

        if not response.is_success:
            raise UpstreamError(f"sendMail failed {response.status_code} {response.text[:200]}", status=response.status_code)

        logger.info(f"Mail sent to {', '.join(to)}: {subject}")


async def send_mail(
    to: List[str],
    subject: str,
    html: Optional[str] = None,
    text: Optional[str] = None,
    priority: str = "normal",
    attachments: Iterable[Attachment] = (),
    cc: Iterable[str] = (),
) -> None:
    """Send mail using the process settings."""
    await GraphMailer(get_settings()).send_mail(to, subject, html, text, priority, attachments, cc)
