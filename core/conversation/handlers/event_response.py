"""
Handler for answers to a shift invitation.

Covers accept, decline, "let me think about it" and "Rückfrage". Accept and
decline complete the conversation and request a shift status update; a
time request keeps the invitation open until a deadline.
"""

from datetime import timedelta

from core.conversation.handlers.base import BaseHandler, HandlerRequest, HandlerResponse
from core.conversation.handlers.information import InformationAnswerMixin
from core.conversation.orchestration import Trigger
from core.conversation.understanding import (
    EventResponseType,
    IntentType,
    parse_information_request,
)
from models.schemas import ConversationState, WorkerShiftStatus


class EventResponseHandler(InformationAnswerMixin, BaseHandler):
    """
    Handles replies to a shift invitation.

    This handler manages:
    - Accept and decline with a shift status update
    - Deadline calculation for time requests
    - Routing "Rückfrage" answers into question handling
    """

    handles = [
        (ConversationState.AWAITING_EVENT_RESPONSE, IntentType.EVENT_RESPONSE),
    ]

    def handle(self, request: HandlerRequest) -> HandlerResponse:
        conversation = request.conversation
        kind = request.intent.kind

        worker = self.find_worker(conversation)
        if worker is None:
            return self.failure(f"Worker not found for {conversation.channel_address}")

        shift_id = self.linked_shift_id(conversation, request.context)
        if shift_id is None:
            return self.failure(f"No shift linked to conversation {conversation.id}")
        shift = self.lookups.find_shift_by_id(shift_id)
        if shift is None:
            return self.failure(f"Shift not found: {shift_id}")

        if kind == EventResponseType.QUESTION.value:
            info_kind = parse_information_request(request.intent.original_text).type.value
            response = self.answer_question(
                request, info_kind, [Trigger.INFORMATION_REQUEST, Trigger.INFORMATION_PROVIDED])
            self.log_handling(request, response)
            return response

        if kind == EventResponseType.REQUEST_TIME.value:
            deadline = (request.now + timedelta(days=1)).replace(
                hour=self.time_request_cutoff_hour, minute=0, second=0, microsecond=0)
            context = self.context_manager.set_event_context(
                request.context, shift.id, shift.title,
                shift_date=shift.date,
                shift_location=shift.location,
                time_request_deadline=deadline.isoformat(),
            )
            response = HandlerResponse(
                success=True,
                message=self.templates.time_request(worker, deadline),
                triggers=[Trigger.TIME_REQUESTED],
                context=context,
                metadata={"deadline": deadline.isoformat()},
            )
            self.log_handling(request, response)
            return response

        if kind == EventResponseType.ACCEPT.value:
            status = WorkerShiftStatus.AVAILABLE
            message = self.templates.shift_acceptance(worker, shift)
        elif kind == EventResponseType.DECLINE.value:
            status = WorkerShiftStatus.UNAVAILABLE
            message = self.templates.shift_decline(worker, shift)
        else:
            # Status stays "asked" until a clear answer arrives
            return HandlerResponse(
                success=True,
                message=self.templates.error("invalid_response"),
                context=self.context_manager.increment_error_count(request.context),
            )

        context = self.context_manager.set_event_context(
            request.context, shift.id, shift.title,
            shift_date=shift.date,
            shift_location=shift.location,
            response_type=kind,
        )
        response = HandlerResponse(
            success=True,
            message=message,
            triggers=[Trigger.EVENT_RESPONSE],
            context=context,
            side_effects=[self.shift_status_effect(worker, shift.id, status)],
        )
        self.log_handling(request, response)
        return response
