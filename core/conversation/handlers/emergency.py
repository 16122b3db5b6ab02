"""
Handler for emergencies: running late, sick, injured or cancelling.

Anything that takes the worker off a linked shift requests the shift status
to be set to unavailable.
"""

from core.conversation.context import Severity
from core.conversation.handlers.base import BaseHandler, HandlerRequest, HandlerResponse
from core.conversation.orchestration import Trigger
from core.conversation.understanding import EmergencyType, IntentType
from models.schemas import ConversationState, WorkerShiftStatus

SEVERITY = {
    EmergencyType.LATE.value: Severity.LOW,
    EmergencyType.SICK.value: Severity.MEDIUM,
    EmergencyType.INJURY.value: Severity.HIGH,
    EmergencyType.CANCELLATION.value: Severity.MEDIUM,
}

# Kinds that need a human to follow up
FOLLOWUP_KINDS = {EmergencyType.SICK.value, EmergencyType.INJURY.value}

# Kinds that mean the worker will not show up at all
ABSENCE_KINDS = {
    EmergencyType.SICK.value,
    EmergencyType.INJURY.value,
    EmergencyType.CANCELLATION.value,
}


class EmergencyHandler(BaseHandler):
    """Records an emergency and confirms it to the worker"""

    handles = [
        (ConversationState.IDLE, IntentType.EMERGENCY),
        (ConversationState.AWAITING_EVENT_RESPONSE, IntentType.EMERGENCY),
    ]

    def handle(self, request: HandlerRequest) -> HandlerResponse:
        conversation = request.conversation
        payload = request.intent.payload
        kind = payload.get("kind", EmergencyType.UNKNOWN.value)

        worker = self.find_worker(conversation)
        if worker is None:
            return self.failure(f"Worker not found for {conversation.channel_address}")

        shift_id = self.linked_shift_id(conversation, request.context)
        shift = None
        if shift_id is not None:
            shift = self.lookups.find_shift_by_id(shift_id)
            if shift is None:
                return self.failure(f"Shift not found: {shift_id}")

        context = self.context_manager.set_emergency_context(
            request.context,
            kind=kind,
            delay_minutes=payload.get("delay_minutes"),
            reason=request.intent.original_text,
            severity=SEVERITY.get(kind, Severity.MEDIUM),
            requires_followup=kind in FOLLOWUP_KINDS,
            handled=True,
        )

        side_effects = []
        if shift is not None and kind in ABSENCE_KINDS:
            side_effects.append(self.shift_status_effect(worker, shift.id, WorkerShiftStatus.UNAVAILABLE))

        if kind == EmergencyType.INJURY.value:
            self.logger.warning(f"⚠️ Injury reported by worker {worker.id}")

        response = HandlerResponse(
            success=True,
            message=self.templates.emergency(worker, kind, payload.get("delay_minutes")),
            triggers=[Trigger.EMERGENCY, Trigger.EMERGENCY_HANDLED],
            context=context,
            side_effects=side_effects,
            metadata={"severity": SEVERITY.get(kind, Severity.MEDIUM).value},
        )
        self.log_handling(request, response)
        return response
