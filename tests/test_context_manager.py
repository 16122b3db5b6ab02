"""Tests for the context manager and validator."""

import json

import pytest

from core.conversation.context import (
    ContextImportError,
    ContextValidator,
    ConversationContext,
    InformationRequest,
    RegistrationStep,
    Severity,
)


class TestCreateAndUpdate:
    """Creating and updating contexts."""

    def test_create_zeroes_counters(self, context_manager):
        """A new context has zero counters and stamped times."""
        context = context_manager.create()
        assert context.message_count == 0
        assert context.error_count == 0
        assert context.retry_count == 0
        assert context.conversation_started == "2024-06-03T09:30:00+00:00"
        assert context.last_activity == context.conversation_started
        assert context.information_requests == []

    def test_create_with_seed(self, context_manager):
        """Seed values are applied without counting a message."""
        context = context_manager.create({"last_info_request": "location"})
        assert context.last_info_request == "location"
        assert context.message_count == 0

    def test_update_increments_message_count(self, context_manager):
        """Every update counts exactly one message."""
        context = context_manager.create()
        updated = context_manager.update(context, {"error_count": 2})
        assert updated.message_count == 1
        assert updated.error_count == 2

    def test_update_keeps_explicit_message_count(self, context_manager):
        """An explicit message_count in the delta wins."""
        context = context_manager.create()
        updated = context_manager.update(context, {"message_count": 7})
        assert updated.message_count == 7

    def test_update_does_not_mutate_input(self, context_manager):
        """The input context is left untouched."""
        context = context_manager.create()
        context_manager.update(context, {"error_count": 3})
        assert context.error_count == 0
        assert context.message_count == 0

    def test_update_rejects_unknown_field(self, context_manager):
        """Unknown fields are a programming error."""
        with pytest.raises(ValueError):
            context_manager.update(context_manager.create(), {"bogus": 1})

    def test_count_message_false(self, context_manager):
        """Typed wrappers can skip counting."""
        context = context_manager.create()
        updated = context_manager.increment_error_count(context, count_message=False)
        assert updated.error_count == 1
        assert updated.message_count == 0


class TestTypedWrappers:
    """Per-topic convenience operations."""

    def test_registration_context(self, context_manager):
        """Registration keeps the code across steps."""
        context = context_manager.set_registration_context(
            context_manager.create(), RegistrationStep.AWAITING_NAME, code="emsland100")
        context = context_manager.set_registration_context(
            context, RegistrationStep.COMPLETED, worker_name="Anna Schmidt")

        assert context.registration.code == "emsland100"
        assert context.registration.worker_name == "Anna Schmidt"
        assert context.registration.completed is True

    def test_information_requests_mark_first_unanswered(self, context_manager):
        """Only the first open request of a kind is marked answered."""
        context = context_manager.create()
        context = context_manager.add_information_request(context, "location", "Wo?")
        context = context_manager.add_information_request(context, "location", "Wo genau?")
        context = context_manager.add_information_request(context, "contact", "Wer?")

        answered = context_manager.mark_information_request_answered(context, "location")

        assert [r.answered for r in answered.information_requests] == [True, False, False]
        assert answered.information_provided is True
        assert answered.last_info_request == "contact"

    def test_emergency_context(self, context_manager):
        """Emergency details are nested under the emergency record."""
        context = context_manager.set_emergency_context(
            context_manager.create(), "late", delay_minutes=15, severity=Severity.LOW, handled=True)
        assert context.emergency.details.delay_minutes == 15
        assert context.to_dict()["emergency"]["details"]["severity"] == "low"

    def test_overtime_requires_positive_values(self, context_manager):
        """Non-positive hours or rates are rejected."""
        with pytest.raises(ValueError):
            context_manager.set_overtime_context(context_manager.create(), 0, 15.0)
        with pytest.raises(ValueError):
            context_manager.set_overtime_context(context_manager.create(), 2, -1)

    def test_event_context_keeps_notification_flag(self, context_manager):
        """Later event updates keep notification_sent unless told otherwise."""
        context = context_manager.set_event_context(
            context_manager.create(), "s-1", "Stadtfest", notification_sent=True)
        context = context_manager.set_event_context(context, "s-1", "Stadtfest", response_type="accept")
        assert context.shift_response.notification_sent is True
        assert context.shift_response.response_processed is True

    def test_scratch(self, context_manager):
        """Scratch data can be set and cleared without counting messages."""
        context = context_manager.set_scratch(context_manager.create(), "k", 1)
        assert context.scratch == {"k": 1}
        assert context_manager.clear_scratch(context).scratch == {}
        assert context.message_count == 0


class TestResetAndMerge:
    """Reset and merge."""

    def test_reset_preserves_start_time(self, context_manager):
        """Preserving metadata keeps conversation_started and empties the rest."""
        context = context_manager.create()
        context = context_manager.add_information_request(context, "location", "Wo?")
        context = context_manager.increment_error_count(context)

        reset = context_manager.reset(context, preserve_metadata=True)

        assert reset.conversation_started == context.conversation_started
        assert reset.message_count == 0
        assert reset.error_count == 0
        assert reset.information_requests == []

    def test_reset_without_metadata_is_blank(self, context_manager):
        """Without metadata the context is completely empty."""
        reset = context_manager.reset(context_manager.create(), preserve_metadata=False)
        assert reset == ConversationContext()

    def test_merge(self, context_manager):
        """Lists concatenate, scalars from incoming win, message_count takes the max."""
        base = context_manager.add_information_request(context_manager.create(), "location", "Wo?")
        base = context_manager.update(base, {"message_count": 5})
        incoming = context_manager.add_information_request(context_manager.create(), "contact", "Wer?")
        incoming = context_manager.update(incoming, {"error_count": 2})

        merged = context_manager.merge(base, incoming)

        assert [r.kind for r in merged.information_requests] == ["location", "contact"]
        assert merged.error_count == 2
        assert merged.message_count == 5
        assert merged.last_info_request == "contact"


class TestSerialization:
    """Export and import."""

    def test_round_trip(self, context_manager):
        """Exported text imports to an equal context."""
        context = context_manager.set_event_context(
            context_manager.create(), "s-1", "Stadtfest Lingen", shift_date="2024-06-08")
        context = context_manager.add_information_request(context, "location", "Wo?")

        restored = context_manager.import_context(context_manager.export_context(context))

        assert restored == context

    def test_export_drops_none(self, context_manager):
        """Unset optional records are omitted."""
        data = json.loads(context_manager.export_context(context_manager.create()))
        assert "registration" not in data
        assert "emergency" not in data

    def test_import_rejects_bad_json(self, context_manager):
        """Invalid JSON raises ContextImportError."""
        with pytest.raises(ContextImportError):
            context_manager.import_context("{not json")

    def test_import_rejects_invalid_data(self, context_manager):
        """Structurally valid JSON failing validation also raises."""
        text = json.dumps({"shift_response": {"shift_id": "s-1", "shift_title": "X", "shift_date": "08.06.2024"}})
        with pytest.raises(ContextImportError) as exc_info:
            context_manager.import_context(text)
        assert exc_info.value.errors


class TestContextValidator:
    """Field validation."""

    def test_negative_counters_are_clamped(self):
        """Negative counters become zero with a warning."""
        result = ContextValidator.validate({"error_count": -3})
        assert result.is_valid
        assert result.sanitized["error_count"] == 0
        assert result.warnings

    def test_bad_severity(self):
        """Unknown severities are errors."""
        result = ContextValidator.validate({"emergency": {"kind": "sick", "details": {"severity": "extreme"}}})
        assert not result.is_valid

    def test_bad_phone_in_contact_update(self):
        """Contact phone numbers must be E.164."""
        result = ContextValidator.validate({"contact_updates": [
            {"kind": "phone_number", "new_value": "0170123", "timestamp": "2024-06-03T09:30:00"},
        ]})
        assert not result.is_valid

    def test_bad_requested_time(self):
        """Schedule times must be HH:MM."""
        result = ContextValidator.validate({"schedule_modification": {"kind": "start_time", "requested_time": "4h"}})
        assert not result.is_valid

    def test_overtime_must_be_positive(self):
        """Overtime hours and rate must be positive."""
        result = ContextValidator.validate({"overtime": {"additional_hours": 0, "hourly_rate": 14.5}})
        assert not result.is_valid

    def test_unknown_field(self):
        """Unknown top-level fields are rejected."""
        assert not ContextValidator.validate({"foo": "bar"}).is_valid

    def test_not_an_object(self):
        """Anything but a mapping or context is invalid."""
        assert not ContextValidator.validate(["x"]).is_valid

    def test_valid_context_object(self, context_manager):
        """A context built by the manager is valid."""
        context = context_manager.set_registration_context(
            context_manager.create(), RegistrationStep.AWAITING_NAME, code="emsland100")
        result = context_manager.validate(context)
        assert result.is_valid
        assert result.warnings

    def test_information_request_entries(self):
        """Information request entries need kind, question and timestamp."""
        entry = InformationRequest(kind="location", question="Wo?", timestamp="nope").to_dict()
        assert not ContextValidator.validate({"information_requests": [entry]}).is_valid
