"""
State transition table for the SMS conversation flow.

Every legal state change is one row of TRANSITION_TABLE. Handlers never set
a state directly: they name the triggers they fire and the table decides
where the conversation ends up.
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple

from models.schemas import ConversationState

logger = logging.getLogger(__name__)


class Trigger(str, Enum):
    """Events that move a conversation between states"""
    REGISTRATION_CODE = "registration_code"
    VALID_NAME = "valid_name"
    EVENT_NOTIFICATION = "event_notification"
    NOTIFICATION_SENT = "notification_sent"
    EVENT_RESPONSE = "event_response"
    TIME_REQUESTED = "time_requested"
    SCHEDULE_REQUEST = "schedule_request"
    MODIFICATION_PROCESSED = "modification_processed"
    INFORMATION_REQUEST = "information_request"
    INFORMATION_PROVIDED = "information_provided"
    INFORMATION_CLOSED = "information_closed"
    EMERGENCY = "emergency"
    EMERGENCY_HANDLED = "emergency_handled"
    OVERTIME_REQUEST = "overtime_request"
    OVERTIME_RESPONSE = "overtime_response"
    RESET = "reset"


S = ConversationState

TRANSITION_TABLE: Dict[Tuple[ConversationState, Trigger], ConversationState] = {
    # Self-registration
    (S.IDLE, Trigger.REGISTRATION_CODE): S.REGISTRATION_CODE_RECEIVED,
    (S.REGISTRATION_CODE_RECEIVED, Trigger.VALID_NAME): S.COMPLETED,
    (S.AWAITING_NAME, Trigger.VALID_NAME): S.COMPLETED,

    # Shift invitation
    (S.IDLE, Trigger.EVENT_NOTIFICATION): S.EVENT_NOTIFICATION_SENT,
    (S.EVENT_NOTIFICATION_SENT, Trigger.NOTIFICATION_SENT): S.AWAITING_EVENT_RESPONSE,
    (S.AWAITING_EVENT_RESPONSE, Trigger.EVENT_RESPONSE): S.COMPLETED,
    (S.AWAITING_EVENT_RESPONSE, Trigger.TIME_REQUESTED): S.AWAITING_EVENT_RESPONSE,

    # Schedule changes
    (S.AWAITING_EVENT_RESPONSE, Trigger.SCHEDULE_REQUEST): S.SCHEDULE_MODIFICATION_REQUEST,
    (S.SCHEDULE_MODIFICATION_REQUEST, Trigger.MODIFICATION_PROCESSED): S.COMPLETED,

    # Questions: back to the shift answer when one is pending, otherwise done
    (S.IDLE, Trigger.INFORMATION_REQUEST): S.INFORMATION_REQUEST,
    (S.AWAITING_EVENT_RESPONSE, Trigger.INFORMATION_REQUEST): S.INFORMATION_REQUEST,
    (S.INFORMATION_REQUEST, Trigger.INFORMATION_PROVIDED): S.AWAITING_EVENT_RESPONSE,
    (S.INFORMATION_REQUEST, Trigger.INFORMATION_CLOSED): S.COMPLETED,

    # Emergencies
    (S.IDLE, Trigger.EMERGENCY): S.EMERGENCY_SITUATION,
    (S.AWAITING_EVENT_RESPONSE, Trigger.EMERGENCY): S.EMERGENCY_SITUATION,
    (S.EMERGENCY_SITUATION, Trigger.EMERGENCY_HANDLED): S.COMPLETED,

    # Overtime
    (S.IDLE, Trigger.OVERTIME_REQUEST): S.OVERTIME_REQUEST_SENT,
    (S.OVERTIME_REQUEST_SENT, Trigger.OVERTIME_RESPONSE): S.COMPLETED,

    (S.COMPLETED, Trigger.RESET): S.IDLE,
}

# States that only exist between two triggers of the same message
TRANSIENT_STATES: Set[ConversationState] = {
    S.SCHEDULE_MODIFICATION_REQUEST,
    S.INFORMATION_REQUEST,
    S.EMERGENCY_SITUATION,
}

# States in which a registration is still unfinished
REGISTRATION_STATES: Set[ConversationState] = {
    S.REGISTRATION_CODE_RECEIVED,
    S.AWAITING_NAME,
}


class TransitionError(Exception):
    """Raised when a trigger is not allowed from the current state"""

    def __init__(self, state: ConversationState, trigger: Trigger):
        super().__init__(f"No transition from {state.value} on {trigger.value}")
        self.state = state
        self.trigger = trigger


def next_state(state: ConversationState, trigger: Trigger) -> Optional[ConversationState]:
    """Look up the target state, None if the pair is not in the table"""
    return TRANSITION_TABLE.get((state, trigger))


def can_transition(state: ConversationState, trigger: Trigger) -> bool:
    return (state, trigger) in TRANSITION_TABLE


def triggers_from(state: ConversationState) -> List[Trigger]:
    """Triggers accepted in a state"""
    return [trigger for (from_state, trigger) in TRANSITION_TABLE if from_state == state]


def apply_triggers(state: ConversationState, triggers: Iterable[Trigger]) -> ConversationState:
    """
    Walk the table for a chain of triggers.

    Raises:
        TransitionError: a trigger in the chain is not allowed
    """
    current = state
    for trigger in triggers:
        target = next_state(current, trigger)
        if target is None:
            raise TransitionError(current, trigger)
        logger.debug(f"Transition {current.value} -> {target.value} ({trigger.value})")
        current = target
    return current


def compute_expiry(state: ConversationState, now: datetime,
                   default_hours: int = 24, registration_hours: int = 2) -> datetime:
    """Expiry for a conversation that just entered `state`"""
    if state in REGISTRATION_STATES:
        return now + timedelta(hours=registration_hours)
    return now + timedelta(hours=default_hours)


class TransitionRules:
    """Human-readable reasons for logging state changes"""

    REASONS: Dict[Trigger, str] = {
        Trigger.REGISTRATION_CODE: "Registration code received, waiting for name",
        Trigger.VALID_NAME: "Worker registered",
        Trigger.EVENT_NOTIFICATION: "Shift invitation created",
        Trigger.NOTIFICATION_SENT: "Shift invitation delivered",
        Trigger.EVENT_RESPONSE: "Worker answered shift invitation",
        Trigger.TIME_REQUESTED: "Worker asked for more time",
        Trigger.SCHEDULE_REQUEST: "Worker asked for a schedule change",
        Trigger.MODIFICATION_PROCESSED: "Schedule change recorded",
        Trigger.INFORMATION_REQUEST: "Worker asked a question",
        Trigger.INFORMATION_PROVIDED: "Question answered, shift answer still pending",
        Trigger.INFORMATION_CLOSED: "Question answered",
        Trigger.EMERGENCY: "Worker reported an emergency",
        Trigger.EMERGENCY_HANDLED: "Emergency recorded",
        Trigger.OVERTIME_REQUEST: "Overtime request created",
        Trigger.OVERTIME_RESPONSE: "Worker answered overtime request",
        Trigger.RESET: "Conversation reset",
    }

    @classmethod
    def get_transition_reason(cls, triggers: Iterable[Trigger]) -> str:
        reasons = [cls.REASONS.get(t, t.value) for t in triggers]
        return "; ".join(reasons) if reasons else "No state change"
