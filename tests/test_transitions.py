"""Tests for the state transition table."""

from datetime import datetime, timedelta

import pytest

from core.conversation.orchestration import (
    TRANSITION_TABLE,
    TransitionError,
    TransitionRules,
    Trigger,
    apply_triggers,
    can_transition,
    compute_expiry,
    next_state,
    triggers_from,
)
from models.schemas import ConversationState as S


class TestTransitionTable:
    """Legal state changes."""

    @pytest.mark.parametrize("state,trigger,target", [
        (S.IDLE, Trigger.REGISTRATION_CODE, S.REGISTRATION_CODE_RECEIVED),
        (S.REGISTRATION_CODE_RECEIVED, Trigger.VALID_NAME, S.COMPLETED),
        (S.IDLE, Trigger.EVENT_NOTIFICATION, S.EVENT_NOTIFICATION_SENT),
        (S.EVENT_NOTIFICATION_SENT, Trigger.NOTIFICATION_SENT, S.AWAITING_EVENT_RESPONSE),
        (S.AWAITING_EVENT_RESPONSE, Trigger.EVENT_RESPONSE, S.COMPLETED),
        (S.AWAITING_EVENT_RESPONSE, Trigger.TIME_REQUESTED, S.AWAITING_EVENT_RESPONSE),
        (S.INFORMATION_REQUEST, Trigger.INFORMATION_PROVIDED, S.AWAITING_EVENT_RESPONSE),
        (S.OVERTIME_REQUEST_SENT, Trigger.OVERTIME_RESPONSE, S.COMPLETED),
        (S.COMPLETED, Trigger.RESET, S.IDLE),
    ])
    def test_rows(self, state, trigger, target):
        """Selected rows point where they should."""
        assert next_state(state, trigger) == target
        assert can_transition(state, trigger)

    def test_missing_pair(self):
        """Pairs outside the table have no target."""
        assert next_state(S.IDLE, Trigger.EVENT_RESPONSE) is None
        assert not can_transition(S.COMPLETED, Trigger.EMERGENCY)

    def test_completed_only_resets(self):
        """Completed conversations only accept a reset."""
        assert triggers_from(S.COMPLETED) == [Trigger.RESET]

    def test_every_trigger_has_a_reason(self):
        """Each trigger used in the table has a readable reason."""
        for _, trigger in TRANSITION_TABLE:
            assert trigger in TransitionRules.REASONS


class TestApplyTriggers:
    """Walking trigger chains."""

    def test_chain(self):
        """Schedule request and processing end in completed."""
        state = apply_triggers(S.AWAITING_EVENT_RESPONSE,
                               [Trigger.SCHEDULE_REQUEST, Trigger.MODIFICATION_PROCESSED])
        assert state == S.COMPLETED

    def test_empty_chain(self):
        """No triggers leave the state unchanged."""
        assert apply_triggers(S.AWAITING_NAME, []) == S.AWAITING_NAME

    def test_illegal_trigger(self):
        """An illegal step raises with the offending state and trigger."""
        with pytest.raises(TransitionError) as exc_info:
            apply_triggers(S.IDLE, [Trigger.EMERGENCY, Trigger.EVENT_RESPONSE])
        assert exc_info.value.state == S.EMERGENCY_SITUATION
        assert exc_info.value.trigger == Trigger.EVENT_RESPONSE

    def test_reason(self):
        """Reasons are joined for logging."""
        reason = TransitionRules.get_transition_reason([Trigger.EMERGENCY, Trigger.EMERGENCY_HANDLED])
        assert reason == "Worker reported an emergency; Emergency recorded"
        assert TransitionRules.get_transition_reason([]) == "No state change"


class TestExpiry:
    """Conversation expiry."""

    def test_registration_states_expire_sooner(self):
        """Registration waits two hours."""
        now = datetime(2024, 6, 3, 9, 30)
        assert compute_expiry(S.REGISTRATION_CODE_RECEIVED, now) == now + timedelta(hours=2)

    def test_default_expiry(self):
        """Everything else lasts a day."""
        now = datetime(2024, 6, 3, 9, 30)
        assert compute_expiry(S.AWAITING_EVENT_RESPONSE, now) == now + timedelta(hours=24)
        assert compute_expiry(S.COMPLETED, now, default_hours=48) == now + timedelta(hours=48)
