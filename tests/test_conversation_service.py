"""Tests for the conversation service (engine + storage + SMS)."""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import MagicMock

from twilio.base.exceptions import TwilioRestException

from core.services.conversation_service import (
    AddressLockRegistry,
    ConversationService,
    create_conversation_service,
)
from core.storage import InMemoryConversationStore
from models.schemas import ConversationState, InboundMessage, Shift, WorkerShiftStatus

from tests.conftest import NEW_PHONE, WORKER_PHONE


def inbound(body, sender=WORKER_PHONE, sid="SM-in"):
    return InboundMessage(from_address=sender, body=body, message_id=sid)


class TestInboundRegistration:
    """Registration end to end."""

    async def test_code_then_name_registers_worker(self, service, store, lookups, code_repository):
        """Code and name from a new number create the worker and link the conversation."""
        first = await service.handle_inbound(inbound("Emsland100", sender="0151 12345678"))

        assert first.success
        assert first.new_state == ConversationState.REGISTRATION_CODE_RECEIVED
        assert "vollständigen Namen" in first.reply_text

        second = await service.handle_inbound(inbound("Anna Schmidt", sender=NEW_PHONE))

        assert second.success
        assert second.conversation_id == first.conversation_id
        assert second.new_state == ConversationState.COMPLETED
        assert "Herzlich willkommen" in second.reply_text

        worker = lookups.find_worker_by_channel_address(NEW_PHONE)
        assert worker.full_name == "Anna Schmidt"
        assert worker.registered_via_code == "emsland100"
        assert code_repository.get_code("emsland100").current_uses == 1

        conversation = store.get_conversation_by_id(first.conversation_id)
        assert conversation.subject_id == worker.id
        assert conversation.context["registration"]["worker_id"] == worker.id
        assert conversation.context["registration"]["completed"] is True

    async def test_invalid_sender(self, service):
        """Unusable sender numbers are rejected without a reply."""
        outcome = await service.handle_inbound(inbound("Ja", sender="abc"))

        assert not outcome.success
        assert outcome.reply_text is None
        assert "Invalid phone number" in outcome.error

    async def test_completed_conversation_is_reopened(self, service, store):
        """A message after completion starts over from idle."""
        await service.handle_inbound(inbound("Bin krank"))

        outcome = await service.handle_inbound(inbound("Wo ist der Treffpunkt?"))

        assert outcome.previous_state == ConversationState.IDLE
        assert outcome.new_state == ConversationState.COMPLETED
        assert "Treffpunkt-Info" in outcome.reply_text
        context = store.get_conversation_by_id(outcome.conversation_id).context
        assert "emergency" not in context


class TestShiftInvitation:
    """Outbound invitations and the worker's answer."""

    async def test_invite_and_accept(self, service, store, lookups, worker, shift, twilio_client):
        """The invitation is sent, delivery confirmed and Ja marks the worker available."""
        outcome = await service.send_shift_invitation(worker, shift)

        assert outcome.success
        assert outcome.new_state == ConversationState.AWAITING_EVENT_RESPONSE
        assert outcome.send_result.transport_id == "SM123"
        kwargs = twilio_client.messages.create.call_args.kwargs
        assert kwargs["to"] == WORKER_PHONE
        assert "Stadtfest Lingen" in kwargs["body"]
        assert lookups.shift_statuses[("w-1", "s-1")] == WorkerShiftStatus.ASKED

        conversation = store.get_conversation_by_id(outcome.conversation_id)
        assert conversation.shift_id == "s-1"
        assert conversation.context["shift_response"]["notification_sent"] is True

        reply = await service.handle_inbound(inbound("Ja"))

        assert reply.success
        assert reply.new_state == ConversationState.COMPLETED
        assert "Super, Max!" in reply.reply_text
        assert lookups.shift_statuses[("w-1", "s-1")] == WorkerShiftStatus.AVAILABLE

    async def test_failed_send_leaves_notification_pending(self, service, worker, shift, twilio_client):
        """Without delivery the conversation stays in event_notification_sent."""
        twilio_client.messages.create.side_effect = TwilioRestException(
            400, "https://api.twilio.com", msg="Invalid 'To' number", code=21211)

        outcome = await service.send_shift_invitation(worker, shift)

        assert not outcome.success
        assert outcome.new_state == ConversationState.EVENT_NOTIFICATION_SENT
        assert "21211" in outcome.error

        reply = await service.handle_inbound(inbound("Nein"))

        assert reply.new_state == ConversationState.COMPLETED
        assert reply.reply_text.startswith("Schade, Max!")

    async def test_rate_limited_invitation_is_delivered(self, service, worker, shift, twilio_client):
        """A transient Twilio error is retried and the invitation still goes out."""
        twilio_client.messages.create.side_effect = [
            TwilioRestException(429, "https://api.twilio.com", msg="Too Many Requests", code=20429),
            MagicMock(sid="SM789", status="queued"),
        ]

        outcome = await service.send_shift_invitation(worker, shift)

        assert outcome.success
        assert outcome.send_result.attempts == 2
        assert outcome.new_state == ConversationState.AWAITING_EVENT_RESPONSE

    async def test_without_sms_transport(self, engine, store, lookups, code_repository, worker, shift):
        """Invitations fail cleanly when no SMS transport is configured."""
        service = ConversationService(engine, store, lookups, code_repository)

        outcome = await service.send_shift_invitation(worker, shift)

        assert not outcome.success
        assert outcome.error == "SMS service not configured"

    async def test_engine_failure_replies_with_system_error(self, service, worker):
        """A shift that disappeared after the invitation gives the technical-problem reply."""
        ghost = Shift(id="s-404", title="Weihnachtsmarkt", date="2024-12-01",
                      start_time="10:00", end_time="18:00")
        await service.send_shift_invitation(worker, ghost)

        reply = await service.handle_inbound(inbound("Ja"))

        assert not reply.success
        assert "Technisches Problem" in reply.reply_text
        assert "Shift not found" in reply.error
        assert reply.new_state == ConversationState.AWAITING_EVENT_RESPONSE

    async def test_concurrent_answers_are_serialized(self, service, worker, shift):
        """Two answers from one number never both see the open invitation."""
        await service.send_shift_invitation(worker, shift)

        outcomes = await asyncio.gather(
            service.handle_inbound(inbound("Ja", sid="SM-1")),
            service.handle_inbound(inbound("Nein", sid="SM-2")),
        )

        previous_states = sorted(o.previous_state.value for o in outcomes)
        assert previous_states == ["awaiting_event_response", "idle"]
        assert service.locks.active_addresses() == []


class TestOvertime:
    """Overtime requests through the service."""

    async def test_request_and_decline(self, service, worker, shift, twilio_client):
        """The overtime request is sent and Nein completes it."""
        outcome = await service.send_overtime_request(worker, shift, 1.5)

        assert outcome.success
        assert outcome.new_state == ConversationState.OVERTIME_REQUEST_SENT
        assert "ca. 1.5 Stunden" in twilio_client.messages.create.call_args.kwargs["body"]

        reply = await service.handle_inbound(inbound("Nein"))

        assert reply.new_state == ConversationState.COMPLETED
        assert reply.reply_text.startswith("Verstanden, Max!")

    async def test_invalid_hours(self, service, worker, shift, twilio_client):
        """Non-positive hours are refused before anything is sent."""
        outcome = await service.send_overtime_request(worker, shift, 0)

        assert not outcome.success
        twilio_client.messages.create.assert_not_called()


class TestMaintenance:
    """Cleanup and construction."""

    async def test_cleanup_expired(self, service, store):
        """Expired conversations are deleted."""
        store.get_or_create_conversation(WORKER_PHONE, expires_at=datetime.utcnow() - timedelta(hours=1))
        store.get_or_create_conversation(NEW_PHONE)

        assert await service.cleanup_expired() == 1

    async def test_address_lock_registry(self):
        """Locks are dropped once released."""
        locks = AddressLockRegistry()
        async with locks.lock(WORKER_PHONE):
            assert locks.active_addresses() == [WORKER_PHONE]
        assert locks.active_addresses() == []

    def test_create_from_settings(self):
        """Default settings build an in-memory service without a Twilio client."""
        service = create_conversation_service()

        assert isinstance(service.store, InMemoryConversationStore)
        assert service.sms.client is None
        assert service.code_repository.validate_code("emsland100").is_valid
