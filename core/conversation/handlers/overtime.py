"""Handler for answers to an overtime request"""

from core.conversation.handlers.base import BaseHandler, HandlerRequest, HandlerResponse
from core.conversation.orchestration import Trigger
from core.conversation.understanding import IntentType, OvertimeResponseType
from models.schemas import ConversationState


class OvertimeHandler(BaseHandler):
    """Accept or decline of a pending overtime request"""

    handles = [
        (ConversationState.OVERTIME_REQUEST_SENT, IntentType.EVENT_RESPONSE),
    ]

    def handle(self, request: HandlerRequest) -> HandlerResponse:
        conversation = request.conversation
        kind = request.intent.kind

        worker = self.find_worker(conversation)
        if worker is None:
            return self.failure(f"Worker not found for {conversation.channel_address}")

        overtime = request.context.overtime
        if overtime is None:
            return self.failure(f"No overtime request in context of conversation {conversation.id}")

        if kind == OvertimeResponseType.ACCEPT.value:
            message = self.templates.overtime_acceptance(worker)
        elif kind == OvertimeResponseType.DECLINE.value:
            message = self.templates.overtime_decline(worker)
        else:
            return HandlerResponse(
                success=True,
                message=self.templates.error("invalid_response"),
                context=self.context_manager.increment_error_count(request.context),
            )

        context = self.context_manager.set_overtime_context(
            request.context,
            additional_hours=overtime.additional_hours,
            hourly_rate=overtime.hourly_rate,
            request_sent=True,
            response=kind,
            processed=True,
        )
        response = HandlerResponse(
            success=True,
            message=message,
            triggers=[Trigger.OVERTIME_RESPONSE],
            context=context,
        )
        self.log_handling(request, response)
        return response
