"""Conversation orchestration components"""

from .transitions import (
    Trigger,
    TRANSITION_TABLE,
    TRANSIENT_STATES,
    TransitionError,
    TransitionRules,
    next_state,
    can_transition,
    triggers_from,
    apply_triggers,
    compute_expiry,
)

__all__ = [
    'Trigger',
    'TRANSITION_TABLE',
    'TRANSIENT_STATES',
    'TransitionError',
    'TransitionRules',
    'next_state',
    'can_transition',
    'triggers_from',
    'apply_triggers',
    'compute_expiry',
]
