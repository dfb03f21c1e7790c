import os
import sys
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import app as app_module
from config import get_settings
from graph.state import AiAnalysis
from tools import clio, llm, mailchimp, mailer, motion

INTEGRATION_ENV = (
    "OPENAI_API_KEY",
    "MS_TENANT_ID",
    "MS_CLIENT_ID",
    "MS_CLIENT_SECRET",
    "MS_GRAPH_SENDER",
    "MAILCHIMP_API_KEY",
    "MAILCHIMP_AUDIENCE_ID",
    "MOTION_API_KEY",
    "CLIO_GROW_INBOX_TOKEN",
    "HIGH_VALUE_NOTIFY_TO",
)


@pytest.fixture
def client(monkeypatch):
    for name in INTEGRATION_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("INTAKE_NOTIFY_TO", "team@firm.com")
    get_settings.cache_clear()
    yield TestClient(app_module.app)
    get_settings.cache_clear()


@pytest.fixture
def sent_mail(monkeypatch):
    sent = []

    async def send_mail(to, subject, **kwargs):
        sent.append({"to": to, "subject": subject, **kwargs})

    monkeypatch.setattr(mailer, "send_mail", send_mail)
    monkeypatch.setattr(mailchimp, "upsert_member", AsyncMock(return_value={"action": "created", "id": "m1"}))
    monkeypatch.setattr(motion, "create_project", AsyncMock(return_value={"id": "p1"}))
    monkeypatch.setattr(clio, "push_lead", AsyncMock(return_value={}))
    monkeypatch.setattr(llm, "analyze_intake", AsyncMock(return_value=AiAnalysis()))
    return sent


class TestService:
    """Service description and health."""

    def test_root(self, client):
        response = client.get("/")
        body = response.json()

        assert response.status_code == 200
        assert body["ok"] is True
        assert body["version"] == app_module.VERSION
        assert "/estate-intake" in body["endpoints"]
        assert "/api/chat-intake" in body["endpoints"]

    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["integrations"] == {
            "openai": False,
            "microsoftGraph": False,
            "mailchimp": False,
            "motion": False,
            "clioGrow": False,
        }


class TestIntakeRoutes:
    """Form submissions through the HTTP surface."""

    def test_outside_counsel_json(self, client, sent_mail):
        response = client.post("/outside-counsel", json={"budget": "under 1K", "email": "a@yahoo.com"})
        body = response.json()

        assert response.status_code == 200
        assert body["ok"] is True
        assert body["leadScore"] == 45
        assert body["aiAnalysisAvailable"] is False
        assert body["submissionId"].startswith("outside-counsel-")

    def test_estate_multipart_with_document(self, client, sent_mail):
        response = client.post(
            "/estate-intake",
            data={"firstName": "Jane", "email": "jane@acme.io", "maritalStatus": "Single", "packagePreference": "Trust"},
            files=[("document", ("deed.pdf", b"%PDF-1.4 deed", "application/pdf"))],
        )
        body = response.json()

        assert response.status_code == 200
        assert body["price"] == 2900
        alert = sent_mail[0]
        assert alert["to"] == ["team@firm.com"]
        assert [attachment.filename for attachment in alert["attachments"]] == ["deed.pdf"]

    def test_brand_estimate(self, client, sent_mail):
        response = client.post("/brand-protection-intake", json={"protectionGoal": "clearance search"})
        assert response.json()["priceEstimate"] == "$1,495"

    def test_conversion_query(self, client, sent_mail):
        response = client.post(
            "/estate-intake?fromAssessment=true",
            json={"email": "x@firm.com", "assessmentScore": "72", "state": "OH"},
        )
        assert response.json()["leadScore"] == 100
        assert "ASSESSMENT CONVERSION" in sent_mail[0]["subject"]

    def test_unexpected_file_field(self, client, sent_mail):
        response = client.post(
            "/brand-protection-intake",
            data={"email": "a@b.com"},
            files=[("document", ("logo.png", b"png", "image/png"))],
        )

        assert response.status_code == 400
        assert response.json()["ok"] is False

    def test_too_many_files(self, client, sent_mail):
        files = [("documents", (f"f{i}.pdf", b"x", "application/pdf")) for i in range(16)]
        response = client.post("/business-formation-intake", data={"email": "a@b.com"}, files=files)
        body = response.json()

        assert response.status_code == 413
        assert body["ok"] is False
        assert body["limits"]["maxFiles"] == 15
        assert sent_mail == []

    def test_invalid_json(self, client, sent_mail):
        response = client.post(
            "/outside-counsel", content=b"{not json", headers={"content-type": "application/json"}
        )
        assert response.status_code == 400

    def test_guide_download(self, client, sent_mail):
        response = client.post("/download-specialized-guide", json={"email": "reader@gmail.com"})
        body = response.json()

        assert response.status_code == 200
        assert set(body) == {"ok", "submissionId"}
        assert body["submissionId"].startswith("legal-guide-download-")

    def test_guide_download_conversion_from_referer(self, client, sent_mail):
        response = client.post(
            "/download-primary-guide",
            json={"email": "reader@gmail.com"},
            headers={"referer": "https://jacobscounsellaw.com/legal-strategy-builder"},
        )

        assert response.status_code == 200
        assert "ASSESSMENT CONVERSION" in sent_mail[0]["subject"]

    def test_large_text_field_accepted(self, client, sent_mail):
        response = client.post(
            "/estate-intake",
            data={"email": "jane@acme.io", "additionalInfo": "x" * (2 * 1024 * 1024)},
            files=[("document", ("will.pdf", b"%PDF-1.4", "application/pdf"))],
        )
        assert response.status_code == 200

    def test_text_over_limit(self, client, sent_mail):
        response = client.post(
            "/estate-intake",
            data={"email": "jane@acme.io", "additionalInfo": "x" * (5 * 1024 * 1024 + 1)},
            files=[("document", ("will.pdf", b"%PDF-1.4", "application/pdf"))],
        )

        assert response.status_code == 413
        assert response.json()["limits"]["maxTextSizeMB"] == 5
        assert sent_mail == []

    def test_unhandled_error_is_500(self, client, monkeypatch):
        monkeypatch.setattr(app_module, "run_intake", AsyncMock(side_effect=RuntimeError("graph exploded")))
        response = TestClient(app_module.app, raise_server_exceptions=False).post(
            "/legal-strategy-builder", json={"email": "a@b.com"}
        )

        assert response.status_code == 500
        assert response.json() == {"ok": False, "error": "Internal server error"}


class TestSubscriberAndAnalytics:
    """List and analytics endpoints."""

    def test_add_subscriber_requires_email(self, client):
        response = client.post("/add-subscriber", json={"source": "footer"})
        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "Email is required"}

    def test_add_subscriber_unconfigured(self, client):
        response = client.post("/add-subscriber", json={"email": "a@b.com", "tags": ["newsletter"]})
        assert response.status_code == 200
        assert response.json() == {"ok": True, "skipped": True}

    def test_add_subscriber(self, client, monkeypatch):
        upsert = AsyncMock(return_value={"action": "updated", "id": "h"})
        monkeypatch.setattr(app_module.ListSync, "upsert_member", upsert)

        response = client.post(
            "/add-subscriber",
            json={"email": "a@b.com", "source": "footer", "tags": ["newsletter"], "merge_fields": {"FNAME": "A"}},
        )

        assert response.json() == {"ok": True, "action": "updated"}
        upsert.assert_awaited_once_with("a@b.com", {"FNAME": "A"}, ["newsletter", "source-footer"])

    def test_form_event(self, client):
        response = client.post("/api/analytics/form-event", json={"event": "step_complete", "formType": "estate"})
        assert response.json() == {"received": True}

    def test_conversion_requires_email(self, client):
        assert client.post("/api/analytics/conversion", json={"fromService": "guide"}).status_code == 400

    def test_conversion_best_effort(self, client):
        response = client.post(
            "/api/analytics/conversion",
            json={"email": "a@b.com", "fromService": "guide", "toService": "estate"},
        )
        assert response.json() == {"success": True}


class TestAssistantRoutes:
    """Chat intake, drafting and lifetime value."""

    def test_chat_requires_message(self, client):
        assert client.post("/api/chat-intake", json={"sessionId": "s1"}).status_code == 400

    def test_chat_completes_intake(self, client, monkeypatch):
        fake_llm = SimpleNamespace(
            chat_reply=AsyncMock(return_value=("Thanks Jo!", {"email": "jo@studio.io", "firstName": "Jo"}, True))
        )
        run = AsyncMock(return_value={"submission_id": "chat-intake-1"})
        monkeypatch.setattr(app_module, "get_llm_client", lambda: fake_llm)
        monkeypatch.setattr(app_module, "run_intake", run)

        response = client.post("/api/chat-intake", json={"sessionId": "s1", "message": "jo@studio.io", "context": []})
        body = response.json()

        assert body == {
            "success": True,
            "response": "Thanks Jo!",
            "extractedData": {"email": "jo@studio.io", "firstName": "Jo"},
            "sessionId": "s1",
        }
        kind, payload = run.call_args.args
        assert kind == "chat-intake"
        assert payload["email"] == "jo@studio.io"
        assert payload["sessionId"] == "s1"

    def test_chat_incomplete_does_not_run(self, client, monkeypatch):
        run = AsyncMock()
        monkeypatch.setattr(app_module, "run_intake", run)

        response = client.post("/api/chat-intake", json={"message": "hello"})

        assert response.json()["success"] is True
        assert response.json()["sessionId"].startswith("chat-")
        run.assert_not_awaited()

    def test_generate_document(self, client):
        response = client.post(
            "/api/generate-document",
            json={"documentType": "nda", "clientData": {"party": "Acme"}},
        )
        body = response.json()

        assert body["success"] is True
        assert body["documentId"].startswith("nda-")
        assert "- party: Acme" in body["document"]

    def test_generate_document_requires_type(self, client):
        assert client.post("/api/generate-document", json={}).status_code == 400

    def test_predict_clv_defaults_to_outside_counsel(self, client):
        response = client.post("/api/predict-clv", json={"formData": {"budget": "10K+", "email": "a@b.com"}})
        body = response.json()

        assert body["success"] is True
        assert body["leadScore"] == 95
        assert body["prediction"]["tier"] == "premium"
        assert body["prediction"]["estimatedValue"] == 15000
        assert body["prediction"]["rationale"] is None
