"""Handler for requested changes to start time, end time or duration"""

from core.conversation.handlers.base import BaseHandler, HandlerRequest, HandlerResponse
from core.conversation.orchestration import Trigger
from core.conversation.understanding import IntentType, ScheduleModificationType
from models.schemas import ConversationState


class ScheduleModificationHandler(BaseHandler):
    """Records a schedule change and hands the details off to the coordinator"""

    handles = [
        (ConversationState.AWAITING_EVENT_RESPONSE, IntentType.SCHEDULE_MODIFICATION),
    ]

    def handle(self, request: HandlerRequest) -> HandlerResponse:
        conversation = request.conversation
        payload = request.intent.payload
        kind = payload.get("kind") or ScheduleModificationType.GENERAL.value
        requested_time = payload.get("requested_time")

        worker = self.find_worker(conversation)
        if worker is None:
            return self.failure(f"Worker not found for {conversation.channel_address}")

        shift_id = self.linked_shift_id(conversation, request.context)
        if shift_id is None:
            return self.failure(f"No shift linked to conversation {conversation.id}")
        shift = self.lookups.find_shift_by_id(shift_id)
        if shift is None:
            return self.failure(f"Shift not found: {shift_id}")

        if kind == ScheduleModificationType.START_TIME.value:
            original_time = shift.start_time
        elif kind == ScheduleModificationType.END_TIME.value:
            original_time = shift.end_time
        else:
            original_time = None

        context = self.context_manager.set_schedule_modification(
            request.context,
            kind=kind,
            requested_time=requested_time,
            original_time=original_time,
            reason=request.intent.original_text,
            processed=True,
        )
        response = HandlerResponse(
            success=True,
            message=self.templates.schedule_modification(worker, shift, kind, requested_time),
            triggers=[Trigger.SCHEDULE_REQUEST, Trigger.MODIFICATION_PROCESSED],
            context=context,
            metadata={"requested_hours": payload.get("requested_hours")},
        )
        self.log_handling(request, response)
        return response
