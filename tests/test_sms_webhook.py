"""Tests for the Twilio webhook endpoints."""

from unittest.mock import AsyncMock, MagicMock

from httpx import AsyncClient, ASGITransport
from twilio.request_validator import RequestValidator

from api.routes.sms_webhook import EMPTY_TWIML, get_conversation_service, twiml_message
from config import settings
from core.conversation import MessageTemplates
from models.schemas import ConversationState, Shift

from tests.conftest import NEW_PHONE, WORKER_PHONE

WEBHOOK = "/api/sms/webhook"


def form(body, sender=WORKER_PHONE, sid="SM-in"):
    return {"From": sender, "Body": body, "MessageSid": sid}


class TestTwiml:
    """TwiML rendering."""

    def test_message_is_escaped(self):
        """XML special characters are escaped."""
        assert "<Message>a &lt; b &amp; c</Message>" in twiml_message("a < b & c")

    def test_empty_reply(self):
        """No reply text renders an empty response."""
        assert twiml_message(None) == EMPTY_TWIML
        assert twiml_message("") == EMPTY_TWIML


class TestWebhook:
    """POST /api/sms/webhook."""

    async def test_registration_code(self, client):
        """A code from a new number is answered with the name prompt."""
        response = await client.post(WEBHOOK, data=form("Emsland100", sender=NEW_PHONE))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert "<Message>" in response.text
        assert "vollständigen Namen" in response.text

    async def test_reply_with_special_characters(self, client, service, lookups, worker):
        """Shift titles with ampersands are escaped in the reply."""
        shift = lookups.add_shift(Shift(id="s-2", title="Rock & Pop", date="2024-07-13",
                                        start_time="18:00", end_time="23:00"))
        await service.send_shift_invitation(worker, shift)

        response = await client.post(WEBHOOK, data=form("Ja"))

        assert "Rock &amp; Pop" in response.text
        conversation = service.store.get_or_create_conversation(WORKER_PHONE)
        assert conversation.state == ConversationState.COMPLETED

    async def test_missing_fields(self, client):
        """From and Body are required."""
        response = await client.post(WEBHOOK, data={"From": WORKER_PHONE})
        assert response.status_code == 400

    async def test_invalid_sender_gets_empty_response(self, client):
        """Unusable sender numbers get no message."""
        response = await client.post(WEBHOOK, data=form("Ja", sender="abc"))

        assert response.status_code == 200
        assert response.text == EMPTY_TWIML

    async def test_unexpected_error(self):
        """Unexpected exceptions answer with the technical-problem text."""
        from main import app

        broken = MagicMock()
        broken.handle_inbound = AsyncMock(side_effect=RuntimeError("boom"))
        broken.templates = MessageTemplates()
        app.dependency_overrides[get_conversation_service] = lambda: broken
        try:
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
                response = await ac.post(WEBHOOK, data=form("Ja"))
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 200
        assert "Technisches Problem" in response.text


class TestSignatureValidation:
    """X-Twilio-Signature checks."""

    async def test_missing_signature_rejected(self, client, monkeypatch):
        """With validation on, unsigned requests are refused."""
        monkeypatch.setattr(settings, "TWILIO_VALIDATE_SIGNATURE", True)
        monkeypatch.setattr(settings, "TWILIO_AUTH_TOKEN", "token")

        response = await client.post(WEBHOOK, data=form("Ja"))

        assert response.status_code == 403

    async def test_valid_signature_accepted(self, client, monkeypatch):
        """Correctly signed requests are processed."""
        monkeypatch.setattr(settings, "TWILIO_VALIDATE_SIGNATURE", True)
        monkeypatch.setattr(settings, "TWILIO_AUTH_TOKEN", "token")
        data = form("Emsland100", sender=NEW_PHONE)
        signature = RequestValidator("token").compute_signature(f"http://test{WEBHOOK}", data)

        response = await client.post(WEBHOOK, data=data, headers={"X-Twilio-Signature": signature})

        assert response.status_code == 200
        assert "vollständigen Namen" in response.text


class TestOtherEndpoints:
    """Cleanup and health."""

    async def test_cleanup(self, client):
        """Cleanup reports the number of removed conversations."""
        response = await client.post("/api/sms/cleanup")

        assert response.status_code == 200
        assert response.json() == {"removed": 0}

    async def test_health(self, client):
        """Health reports the storage backend."""
        response = await client.get("/health")

        assert response.json() == {"status": "healthy", "storage": settings.STORAGE_BACKEND}
