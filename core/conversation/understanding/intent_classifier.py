"""
State-aware intent classification for inbound SMS.

Classification runs an ordered list of matchers and the first one that
produces a confident result wins. The order is the precedence between
overlapping keyword families (an emergency beats a schedule change, a
schedule change beats a plain yes/no).
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from models.schemas import ConversationState
from core.conversation.context.models import ConversationContext, RegistrationStep
from .parsers import (
    DEFAULT_REGISTRATION_CODES,
    RegistrationResponseType,
    EmergencyType,
    InformationRequestType,
    EventResponseType,
    OvertimeResponseType,
    parse_registration_response,
    parse_emergency_message,
    parse_schedule_modification,
    parse_information_request,
    parse_event_response,
    parse_overtime_response,
)

logger = logging.getLogger(__name__)


class IntentType(str, Enum):
    """All supported intent types"""
    REGISTRATION = "registration"
    EMERGENCY = "emergency"
    SCHEDULE_MODIFICATION = "schedule_modification"
    INFORMATION_REQUEST = "information_request"
    EVENT_RESPONSE = "event_response"
    UNKNOWN = "unknown"


CONFIDENCE_THRESHOLDS: Dict[str, float] = {
    IntentType.REGISTRATION.value: 0.7,
    IntentType.EVENT_RESPONSE.value: 0.6,
    IntentType.EMERGENCY.value: 0.7,
    IntentType.SCHEDULE_MODIFICATION.value: 0.6,
    IntentType.INFORMATION_REQUEST.value: 0.6,
    "overtime_response": 0.6,
}
DEFAULT_CONFIDENCE_THRESHOLD = 0.5


def get_confidence_threshold(intent_type: Any) -> float:
    key = intent_type.value if isinstance(intent_type, Enum) else str(intent_type)
    return CONFIDENCE_THRESHOLDS.get(key, DEFAULT_CONFIDENCE_THRESHOLD)


@dataclass
class Intent:
    """Result of intent classification"""
    type: IntentType
    confidence: float
    payload: Dict[str, Any] = field(default_factory=dict)
    original_text: str = ""

    def __post_init__(self):
        self.confidence = max(0.0, min(1.0, float(self.confidence)))

    @property
    def kind(self) -> Optional[str]:
        """Sub-type inside the intent family (e.g. 'sick', 'accept')"""
        return self.payload.get("kind")


def is_confident(intent: Intent) -> bool:
    """Check if an intent is confident enough to act upon"""
    if intent.type == IntentType.UNKNOWN:
        return False
    topic = "overtime_response" if intent.payload.get("topic") == "overtime" else intent.type
    return intent.confidence >= get_confidence_threshold(topic)


def unknown_intent(text: str) -> Intent:
    return Intent(IntentType.UNKNOWN, 0.0, {}, text)


class IntentMatcher(ABC):
    """One entry in the ordered classification chain"""

    intent_type: IntentType = IntentType.UNKNOWN

    @abstractmethod
    def match(self, text: str, context: Optional[ConversationContext] = None) -> Optional[Intent]:
        """Return an Intent if the text belongs to this topic, else None"""
        pass

    def _accept(self, confidence: float) -> bool:
        return confidence >= get_confidence_threshold(self.intent_type)


class RegistrationMatcher(IntentMatcher):
    """
    Registration codes and worker names.

    A name-shaped message only counts as registration when no context is
    known or the context shows a registration waiting for the name.
    """

    intent_type = IntentType.REGISTRATION

    def __init__(self, code_source=None):
        self.code_source = code_source

    def codes(self) -> Iterable[str]:
        if self.code_source is None:
            return DEFAULT_REGISTRATION_CODES
        return self.code_source.known_codes()

    def match(self, text, context=None):
        parsed = parse_registration_response(text, self.codes())
        if parsed.type == RegistrationResponseType.CODE:
            return Intent(self.intent_type, parsed.confidence,
                          {"kind": parsed.type.value, "value": parsed.value}, text)
        if parsed.type == RegistrationResponseType.NAME and self._accept(parsed.confidence):
            if context is None or _registration_pending(context):
                return Intent(self.intent_type, parsed.confidence,
                              {"kind": parsed.type.value, "value": parsed.value}, text)
        return None


class EmergencyMatcher(IntentMatcher):
    intent_type = IntentType.EMERGENCY

    def match(self, text, context=None):
        parsed = parse_emergency_message(text)
        if parsed.type == EmergencyType.UNKNOWN or not self._accept(parsed.confidence):
            return None
        return Intent(self.intent_type, parsed.confidence, {
            "kind": parsed.type.value,
            "delay_minutes": parsed.delay_minutes,
            "reason": parsed.reason,
        }, text)


class ScheduleModificationMatcher(IntentMatcher):
    intent_type = IntentType.SCHEDULE_MODIFICATION

    def match(self, text, context=None):
        parsed = parse_schedule_modification(text)
        if not self._accept(parsed.confidence):
            return None
        return Intent(self.intent_type, parsed.confidence, {
            "kind": parsed.type.value,
            "requested_time": parsed.requested_time,
            "requested_hours": parsed.requested_hours,
            "reason": parsed.reason,
        }, text)


class InformationRequestMatcher(IntentMatcher):
    intent_type = IntentType.INFORMATION_REQUEST

    def match(self, text, context=None):
        parsed = parse_information_request(text)
        if parsed.type == InformationRequestType.UNKNOWN or not self._accept(parsed.confidence):
            return None
        return Intent(self.intent_type, parsed.confidence, {"kind": parsed.type.value}, text)


class EventResponseMatcher(IntentMatcher):
    intent_type = IntentType.EVENT_RESPONSE

    def match(self, text, context=None):
        parsed = parse_event_response(text)
        if parsed.type == EventResponseType.UNKNOWN or not self._accept(parsed.confidence):
            return None
        return Intent(self.intent_type, parsed.confidence, {"kind": parsed.type.value}, text)


def _registration_pending(context: ConversationContext) -> bool:
    registration = context.registration
    if registration is None or registration.completed:
        return False
    return registration.step in (RegistrationStep.CODE_RECEIVED, RegistrationStep.AWAITING_NAME)


class IntentClassifier:
    """
    Ordered, exclusive intent classification.

    Usage:
        classifier = IntentClassifier(code_repository)
        intent = classifier.classify("Bin krank")
        intent = classifier.classify_for_state("Ja", ConversationState.AWAITING_EVENT_RESPONSE)
    """

    def __init__(self, code_repository=None, matchers: Optional[List[IntentMatcher]] = None):
        self.code_repository = code_repository
        self.matchers: List[IntentMatcher] = matchers or [
            RegistrationMatcher(code_repository),
            EmergencyMatcher(),
            ScheduleModificationMatcher(),
            InformationRequestMatcher(),
            EventResponseMatcher(),
        ]

    def classify(self, text: str, context: Optional[ConversationContext] = None) -> Intent:
        """Run the full matcher chain"""
        return self._run(self.matchers, text, context)

    def classify_for_state(self, text: str, state: ConversationState,
                           context: Optional[ConversationContext] = None) -> Intent:
        """
        Classify against what the current state expects.

        Args:
            text: Raw inbound text
            state: Current conversation state
            context: Current conversation context

        Returns:
            The classified Intent. States without a narrower expectation fall
            back to full classification.
        """
        if state in (ConversationState.REGISTRATION_CODE_RECEIVED, ConversationState.AWAITING_NAME):
            return self._classify_name(text)

        if state == ConversationState.OVERTIME_REQUEST_SENT:
            return self._classify_overtime(text)

        if state in (ConversationState.AWAITING_EVENT_RESPONSE, ConversationState.EVENT_NOTIFICATION_SENT):
            matchers = [m for m in self.matchers if m.intent_type != IntentType.REGISTRATION]
            return self._run(matchers, text, context)

        return self.classify(text, context)

    def _run(self, matchers: List[IntentMatcher], text: str,
             context: Optional[ConversationContext]) -> Intent:
        for matcher in matchers:
            intent = matcher.match(text, context)
            if intent is not None:
                logger.debug(f"Classified '{text[:50]}' as {intent.type.value}/{intent.kind} ({intent.confidence:.2f})")
                return intent
        logger.debug(f"No intent matched for '{text[:50]}'")
        return unknown_intent(text)

    def _classify_name(self, text: str) -> Intent:
        codes = RegistrationMatcher(self.code_repository).codes()
        parsed = parse_registration_response(text, codes, lenient=True)
        return Intent(IntentType.REGISTRATION, parsed.confidence,
                      {"kind": parsed.type.value, "value": parsed.value}, text)

    def _classify_overtime(self, text: str) -> Intent:
        parsed = parse_overtime_response(text)
        if parsed.type == OvertimeResponseType.UNKNOWN:
            return unknown_intent(text)
        return Intent(IntentType.EVENT_RESPONSE, parsed.confidence,
                      {"kind": parsed.type.value, "topic": "overtime"}, text)
