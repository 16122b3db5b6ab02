"""Intent understanding components"""

from .parsers import (
    DEFAULT_REGISTRATION_CODES,
    normalize_text,
    parse_event_response,
    parse_schedule_modification,
    parse_registration_response,
    parse_emergency_message,
    parse_information_request,
    parse_overtime_response,
    EventResponseType,
    ScheduleModificationType,
    RegistrationResponseType,
    EmergencyType,
    InformationRequestType,
    OvertimeResponseType,
)
from .intent_classifier import (
    IntentClassifier,
    IntentType,
    Intent,
    IntentMatcher,
    CONFIDENCE_THRESHOLDS,
    get_confidence_threshold,
    is_confident,
)

__all__ = [
    'DEFAULT_REGISTRATION_CODES',
    'normalize_text',
    'parse_event_response',
    'parse_schedule_modification',
    'parse_registration_response',
    'parse_emergency_message',
    'parse_information_request',
    'parse_overtime_response',
    'EventResponseType',
    'ScheduleModificationType',
    'RegistrationResponseType',
    'EmergencyType',
    'InformationRequestType',
    'OvertimeResponseType',
    'IntentClassifier',
    'IntentType',
    'Intent',
    'IntentMatcher',
    'CONFIDENCE_THRESHOLDS',
    'get_confidence_threshold',
    'is_confident',
]
