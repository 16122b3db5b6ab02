"""Tests for intent parsing and classification."""

import pytest

from core.conversation.context import ContextManager, RegistrationStep
from core.conversation.understanding import (
    EmergencyType,
    EventResponseType,
    InformationRequestType,
    IntentClassifier,
    IntentType,
    RegistrationResponseType,
    ScheduleModificationType,
    get_confidence_threshold,
    is_confident,
    normalize_text,
    parse_emergency_message,
    parse_event_response,
    parse_information_request,
    parse_overtime_response,
    parse_registration_response,
    parse_schedule_modification,
)
from core.conversation.understanding.intent_classifier import Intent
from core.conversation.understanding.parsers import OvertimeResponseType
from models.schemas import ConversationState


@pytest.fixture
def classifier(code_repository):
    return IntentClassifier(code_repository)


class TestNormalization:
    """Text normalization before matching."""

    def test_strips_punctuation_and_case(self):
        """Punctuation is removed and text lower-cased."""
        assert normalize_text("  Ja, gerne!  ") == "ja gerne"

    def test_collapses_whitespace(self):
        """Runs of whitespace become single spaces."""
        assert normalize_text("bin   im\tstau") == "bin im stau"


class TestEventResponseParser:
    """Accept / decline / time request / question."""

    @pytest.mark.parametrize("text", ["Ja", "ja!", "1", "1️⃣", "Bin dabei", "OK"])
    def test_accept(self, text):
        """Accept vocabulary maps to accept with high confidence."""
        parsed = parse_event_response(text)
        assert parsed.type == EventResponseType.ACCEPT
        assert parsed.confidence == 0.9

    @pytest.mark.parametrize("text", ["Nein", "2", "Kann nicht arbeiten", "Leider nicht"])
    def test_decline(self, text):
        """Decline vocabulary maps to decline."""
        assert parse_event_response(text).type == EventResponseType.DECLINE

    def test_negated_accept_is_decline(self):
        """'kann nicht arbeiten' contains 'kann arbeiten' words but is a decline."""
        assert parse_event_response("Ich kann nicht arbeiten").type == EventResponseType.DECLINE

    def test_request_time(self):
        """Asking for time to think is a time request."""
        parsed = parse_event_response("Ich gebe bis morgen Bescheid")
        assert parsed.type == EventResponseType.REQUEST_TIME
        assert parsed.confidence == 0.8

    @pytest.mark.parametrize("text", ["3", "Rückfrage", "Wann genau?"])
    def test_question(self, text):
        """Numeric choice 3 and question words map to question."""
        assert parse_event_response(text).type == EventResponseType.QUESTION

    def test_substring_fallback(self):
        """A 'ja' buried in other words is a weak accept."""
        parsed = parse_event_response("jaaa gerne doch")
        assert parsed.type == EventResponseType.ACCEPT
        assert parsed.confidence == 0.6

    def test_unknown(self):
        """Unrelated text is unknown with zero confidence."""
        parsed = parse_event_response("Hallo zusammen")
        assert parsed.type == EventResponseType.UNKNOWN
        assert parsed.confidence == 0.0


class TestScheduleModificationParser:
    """Start time, end time, duration and general changes."""

    def test_start_time_with_hour_only(self):
        """Minutes default to 00 when omitted."""
        parsed = parse_schedule_modification("Kann ich erst um 10 Uhr anfangen?")
        assert parsed.type == ScheduleModificationType.START_TIME
        assert parsed.requested_time == "10:00"
        assert parsed.confidence == 0.8

    def test_start_time_with_minutes(self):
        """HH:MM is kept and the hour zero-padded."""
        parsed = parse_schedule_modification("Anfangen um 9:30 geht das?")
        assert parsed.requested_time == "09:30"

    def test_end_time(self):
        """Leaving early is an end time change."""
        parsed = parse_schedule_modification("Ich muss um 15 Uhr weg")
        assert parsed.type == ScheduleModificationType.END_TIME
        assert parsed.requested_time == "15:00"

    def test_duration(self):
        """'nur N Stunden' is a duration change with the hour count."""
        parsed = parse_schedule_modification("Ich kann nur 4 Stunden")
        assert parsed.type == ScheduleModificationType.DURATION
        assert parsed.requested_hours == 4
        assert parsed.confidence == 0.7

    def test_no_match_is_low_confidence(self):
        """Unrelated text stays below the acceptance threshold."""
        parsed = parse_schedule_modification("Hallo")
        assert parsed.confidence < get_confidence_threshold(IntentType.SCHEDULE_MODIFICATION)


class TestRegistrationParser:
    """Registration codes and names."""

    def test_code_is_case_insensitive(self):
        """Known codes match regardless of case."""
        parsed = parse_registration_response("EMSLAND100", ["emsland100"])
        assert parsed.type == RegistrationResponseType.CODE
        assert parsed.confidence == 1.0

    def test_strict_name(self):
        """Two capitalized words are a name with high confidence."""
        parsed = parse_registration_response("Anna Schmidt")
        assert parsed.type == RegistrationResponseType.NAME
        assert parsed.confidence == 0.9

    def test_hyphenated_name(self):
        """Hyphenated names are accepted with lower confidence."""
        parsed = parse_registration_response("Anna-Lena Müller")
        assert parsed.type == RegistrationResponseType.NAME
        assert parsed.confidence == 0.7

    def test_lowercase_name_only_when_lenient(self):
        """Lower-case names need the lenient mode."""
        assert parse_registration_response("anna schmidt").type == RegistrationResponseType.INVALID
        assert parse_registration_response("anna schmidt", lenient=True).type == RegistrationResponseType.NAME

    def test_single_word_is_invalid(self):
        """One word is never a full name."""
        parsed = parse_registration_response("Anna", lenient=True)
        assert parsed.type == RegistrationResponseType.INVALID
        assert parsed.confidence == 0.0


class TestEmergencyParser:
    """Late, sick, injury and cancellation."""

    def test_late_with_minutes(self):
        """Minute counts are extracted from lateness messages."""
        parsed = parse_emergency_message("Komme 20 Minuten später")
        assert parsed.type == EmergencyType.LATE
        assert parsed.delay_minutes == 20

    def test_late_without_minutes(self):
        """Lateness without a number has no delay."""
        parsed = parse_emergency_message("Bin im Stau")
        assert parsed.type == EmergencyType.LATE
        assert parsed.delay_minutes is None

    def test_sick(self):
        """Sickness keywords map to sick."""
        parsed = parse_emergency_message("Bin krank, kann nicht kommen")
        assert parsed.type == EmergencyType.SICK
        assert parsed.confidence > 0.7

    def test_injury(self):
        """Injury keywords map to injury."""
        assert parse_emergency_message("Habe mich am Fuß verletzt").type == EmergencyType.INJURY

    def test_cancellation(self):
        """Cancelling keywords map to cancellation."""
        assert parse_emergency_message("Ich muss absagen").type == EmergencyType.CANCELLATION

    def test_word_boundaries(self):
        """'arm' inside 'warm' is not an injury."""
        assert parse_emergency_message("Ist es warm dort").type == EmergencyType.UNKNOWN


class TestInformationParser:
    """Location, equipment, contact and general questions."""

    def test_location(self):
        """Where-questions are location requests."""
        assert parse_information_request("Wo ist der Treffpunkt?").type == InformationRequestType.LOCATION

    def test_equipment(self):
        """Clothing questions are equipment requests."""
        assert parse_information_request("Welche Kleidung brauche ich?").type == InformationRequestType.EQUIPMENT

    def test_contact(self):
        """Contact questions are contact requests."""
        assert parse_information_request("Wer ist mein Ansprechpartner?").type == InformationRequestType.CONTACT

    def test_general_question(self):
        """Any other question is general."""
        parsed = parse_information_request("Gibt es Pausen?")
        assert parsed.type == InformationRequestType.GENERAL
        assert parsed.confidence == 0.6


class TestOvertimeParser:
    """Overtime reuses the event-response vocabulary."""

    def test_accept_and_decline(self):
        """Yes and no map to accept and decline."""
        assert parse_overtime_response("Ja").type == OvertimeResponseType.ACCEPT
        assert parse_overtime_response("Nein").type == OvertimeResponseType.DECLINE

    def test_question_is_unknown(self):
        """Anything but yes/no is unknown for overtime."""
        assert parse_overtime_response("Wie lange?").type == OvertimeResponseType.UNKNOWN


class TestIntentClassifier:
    """Ordered, exclusive classification."""

    @pytest.mark.parametrize("text", [
        "", "Ja", "Emsland100", "Bin krank", "Wo?", "asdf", "Kann ich erst um 10 anfangen?", "🙂",
    ])
    def test_confidence_bounds_and_types(self, classifier, text):
        """Every result has a confidence in [0, 1] and a known type."""
        intent = classifier.classify(text)
        assert 0.0 <= intent.confidence <= 1.0
        assert intent.type in set(IntentType)

    def test_registration_code(self, classifier):
        """The registration code wins with full confidence."""
        intent = classifier.classify("Emsland100")
        assert intent.type == IntentType.REGISTRATION
        assert intent.kind == "code"
        assert intent.confidence == 1.0

    def test_emergency_beats_schedule_and_decline(self, classifier):
        """'krank' wins over the decline phrase 'kann nicht'."""
        intent = classifier.classify("Bin krank, kann nicht kommen")
        assert intent.type == IntentType.EMERGENCY
        assert intent.kind == "sick"

    def test_schedule_beats_event_response(self, classifier):
        """A start time change is not read as a question."""
        intent = classifier.classify("Kann ich erst um 10 Uhr anfangen?")
        assert intent.type == IntentType.SCHEDULE_MODIFICATION
        assert intent.payload["requested_time"] == "10:00"

    def test_event_response(self, classifier):
        """Plain yes is an event response."""
        intent = classifier.classify("Ja")
        assert intent.type == IntentType.EVENT_RESPONSE
        assert intent.kind == "accept"

    def test_unknown(self, classifier):
        """Gibberish falls through to unknown."""
        intent = classifier.classify("xyz")
        assert intent.type == IntentType.UNKNOWN
        assert intent.confidence == 0.0

    def test_name_needs_pending_registration(self, classifier):
        """A name-shaped message is not a registration without an open registration."""
        manager = ContextManager()
        idle_context = manager.create()
        assert classifier.classify("Anna Schmidt", idle_context).type != IntentType.REGISTRATION

        pending = manager.set_registration_context(idle_context, RegistrationStep.AWAITING_NAME, code="emsland100")
        intent = classifier.classify("Anna Schmidt", pending)
        assert intent.type == IntentType.REGISTRATION
        assert intent.kind == "name"

    def test_unregistered_code_from_repository(self, code_repository):
        """Codes added to the repository are recognized."""
        code_repository.add_code("Lingen2024")
        intent = IntentClassifier(code_repository).classify("lingen2024")
        assert intent.type == IntentType.REGISTRATION


class TestClassifyForState:
    """State-narrowed classification."""

    def test_awaiting_name_is_lenient(self, classifier):
        """Lower-case names count while waiting for the name."""
        intent = classifier.classify_for_state("anna schmidt", ConversationState.AWAITING_NAME)
        assert intent.type == IntentType.REGISTRATION
        assert intent.kind == "name"

    def test_awaiting_name_invalid_is_still_registration(self, classifier):
        """Invalid names stay in the registration topic so the worker can retry."""
        intent = classifier.classify_for_state("123", ConversationState.REGISTRATION_CODE_RECEIVED)
        assert intent.type == IntentType.REGISTRATION
        assert intent.kind == "invalid"

    def test_overtime_only_yes_no(self, classifier):
        """In overtime_request_sent only accept/decline are recognized."""
        intent = classifier.classify_for_state("Ja", ConversationState.OVERTIME_REQUEST_SENT)
        assert intent.type == IntentType.EVENT_RESPONSE
        assert intent.payload["topic"] == "overtime"

        other = classifier.classify_for_state("Wo ist das?", ConversationState.OVERTIME_REQUEST_SENT)
        assert other.type == IntentType.UNKNOWN

    def test_awaiting_event_response_skips_registration(self, classifier):
        """A code while waiting for a shift answer is not a registration."""
        intent = classifier.classify_for_state("Emsland100", ConversationState.AWAITING_EVENT_RESPONSE)
        assert intent.type != IntentType.REGISTRATION


class TestConfidence:
    """Published thresholds."""

    def test_thresholds(self):
        """Per-type thresholds with a default."""
        assert get_confidence_threshold(IntentType.REGISTRATION) == 0.7
        assert get_confidence_threshold(IntentType.EVENT_RESPONSE) == 0.6
        assert get_confidence_threshold(IntentType.EMERGENCY) == 0.7
        assert get_confidence_threshold("something_else") == 0.5

    def test_is_confident(self):
        """Confidence is compared against the type's threshold."""
        assert is_confident(Intent(IntentType.EMERGENCY, 0.8))
        assert not is_confident(Intent(IntentType.EMERGENCY, 0.6))
        assert not is_confident(Intent(IntentType.UNKNOWN, 1.0))

    def test_confidence_is_clamped(self):
        """Out-of-range confidences are clamped."""
        assert Intent(IntentType.EMERGENCY, 1.5).confidence == 1.0
        assert Intent(IntentType.EMERGENCY, -1).confidence == 0.0
