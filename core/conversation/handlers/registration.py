"""
Handler for worker self-registration over SMS.

Flow: the worker texts a registration code, is asked for their full name,
and is registered once a valid name arrives.
"""

from core.conversation.context import RegistrationStep
from core.conversation.handlers.base import (
    BaseHandler,
    HandlerRequest,
    HandlerResponse,
    SideEffect,
    SideEffectKind,
)
from core.conversation.orchestration import Trigger
from core.conversation.understanding import IntentType, RegistrationResponseType
from core.registration import validate_worker_name
from models.schemas import ConversationState


class RegistrationHandler(BaseHandler):
    """
    Handles registration codes and name replies.

    This handler manages:
    - Code validation for unregistered numbers
    - Name validation with retry prompts
    - Requesting worker creation and code usage tracking
    """

    handles = [
        (ConversationState.IDLE, IntentType.REGISTRATION),
        (ConversationState.REGISTRATION_CODE_RECEIVED, IntentType.REGISTRATION),
        (ConversationState.AWAITING_NAME, IntentType.REGISTRATION),
    ]

    def handle(self, request: HandlerRequest) -> HandlerResponse:
        if request.conversation.state == ConversationState.IDLE:
            response = self._handle_code(request)
        else:
            response = self._handle_name(request)
        self.log_handling(request, response)
        return response

    def _handle_code(self, request: HandlerRequest) -> HandlerResponse:
        """A code arriving in idle starts a registration"""
        intent = request.intent
        context = request.context

        if intent.kind != RegistrationResponseType.CODE.value:
            return HandlerResponse(
                success=True,
                message=self.templates.error("invalid_response"),
                context=self.context_manager.increment_error_count(context),
            )

        existing = self.lookups.find_worker_by_channel_address(request.conversation.channel_address)
        if existing is not None:
            self.logger.info(f"{request.conversation.channel_address} is already registered as {existing.id}")
            return HandlerResponse(
                success=True,
                message=self.templates.already_registered(existing),
                context=self.context_manager.update(context, {}),
            )

        validation = self.code_repository.validate_code(intent.payload.get("value"), request.now)
        if not validation.is_valid:
            self.logger.warning(f"Rejected registration code: {validation.error}")
            return HandlerResponse(
                success=True,
                message=self.templates.error("invalid_code"),
                context=self.context_manager.increment_error_count(context),
                metadata={"code_error": validation.error_type.value},
            )

        new_context = self.context_manager.set_registration_context(
            context,
            step=RegistrationStep.AWAITING_NAME,
            code=validation.code.code,
        )
        return HandlerResponse(
            success=True,
            message=self.templates.registration_prompt(intent.original_text.strip()),
            triggers=[Trigger.REGISTRATION_CODE],
            context=new_context,
        )

    def _handle_name(self, request: HandlerRequest) -> HandlerResponse:
        """Name reply while a registration is open"""
        intent = request.intent
        context = request.context

        if intent.kind == RegistrationResponseType.CODE.value:
            # Code sent twice, ask for the name again
            return HandlerResponse(
                success=True,
                message=self.templates.registration_prompt(intent.original_text.strip()),
                context=self.context_manager.update(context, {}),
            )

        validation = validate_worker_name(intent.payload.get("value") or intent.original_text)
        if not validation.is_valid:
            return HandlerResponse(
                success=True,
                message=self.templates.registration_name_retry(validation.error),
                context=self.context_manager.increment_retry_count(context),
                metadata={"name_error": validation.error},
            )

        code = context.registration.code if context.registration else None
        code_check = self.code_repository.validate_code(code, request.now) if code else None
        if code_check is None or not code_check.is_valid:
            self.logger.warning(f"Registration code {code!r} no longer usable at name step")
            return HandlerResponse(
                success=True,
                message=self.templates.error("registration_failed"),
                context=self.context_manager.increment_error_count(context),
            )

        new_context = self.context_manager.set_registration_context(
            context,
            step=RegistrationStep.COMPLETED,
            worker_name=validation.full_name,
        )
        side_effects = [
            SideEffect(SideEffectKind.CREATE_WORKER, {
                "first_name": validation.first_name,
                "last_name": validation.last_name,
                "phone_number": request.conversation.channel_address,
                "registered_via_code": code_check.code.code,
            }),
            SideEffect(SideEffectKind.RECORD_CODE_USE, {"code": code_check.code.code}),
        ]
        return HandlerResponse(
            success=True,
            message=self.templates.registration_confirmation(validation.full_name),
            triggers=[Trigger.VALID_NAME],
            context=new_context,
            side_effects=side_effects,
        )
