"""
Handler for worker questions about a shift.

Questions about location, equipment and contacts get a canned answer. A
question asked while a shift invitation is still open returns the
conversation to waiting for the yes/no answer.
"""

from typing import List

from core.conversation.handlers.base import BaseHandler, HandlerRequest, HandlerResponse
from core.conversation.orchestration import Trigger
from core.conversation.understanding import (
    InformationRequestType,
    IntentType,
    parse_information_request,
)
from models.schemas import ConversationState


class InformationAnswerMixin:
    """Shared answering logic for direct questions and 'Rückfrage' replies"""

    def answer_question(self, request: HandlerRequest, kind: str,
                        triggers: List[Trigger]) -> HandlerResponse:
        if kind == InformationRequestType.UNKNOWN.value:
            kind = InformationRequestType.GENERAL.value

        shift_id = self.linked_shift_id(request.conversation, request.context)
        shift = self.find_shift(request.conversation, request.context) if shift_id else None
        location = shift.location if shift else None

        context = self.context_manager.add_information_request(
            request.context, kind, request.intent.original_text)
        context = self.context_manager.mark_information_request_answered(
            context, kind, count_message=False)

        return HandlerResponse(
            success=True,
            message=self.templates.information(kind, location),
            triggers=triggers,
            context=context,
            metadata={"information_kind": kind},
        )


class InformationHandler(InformationAnswerMixin, BaseHandler):
    """Handles questions in idle and while a shift answer is pending"""

    handles = [
        (ConversationState.IDLE, IntentType.INFORMATION_REQUEST),
        (ConversationState.AWAITING_EVENT_RESPONSE, IntentType.INFORMATION_REQUEST),
    ]

    def handle(self, request: HandlerRequest) -> HandlerResponse:
        kind = request.intent.kind or parse_information_request(request.intent.original_text).type.value

        if request.conversation.state == ConversationState.AWAITING_EVENT_RESPONSE:
            triggers = [Trigger.INFORMATION_REQUEST, Trigger.INFORMATION_PROVIDED]
        else:
            triggers = [Trigger.INFORMATION_REQUEST, Trigger.INFORMATION_CLOSED]

        response = self.answer_question(request, kind, triggers)
        self.log_handling(request, response)
        return response
