"""
Conversation engine for the shift SMS assistant.

The engine is the state machine. For one inbound message it classifies the
text against the current state, dispatches to the handler registered for
(state, intent type), walks the transition table with the triggers the
handler fired and returns the result. It does not write anything: the
caller executes the requested side effects and then persists the new state
and context.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from models.schemas import Conversation, ConversationState, Shift, Worker, WorkerShiftStatus
from core.conversation.context import ContextManager, ConversationContext
from core.conversation.understanding import Intent, IntentClassifier, DEFAULT_REGISTRATION_CODES
from core.conversation.templates import MessageTemplates
from core.conversation.orchestration import (
    Trigger,
    TransitionError,
    TransitionRules,
    apply_triggers,
    compute_expiry,
)
from core.conversation.handlers import (
    DEFAULT_HANDLERS,
    HandlerRegistry,
    HandlerRequest,
    HandlerResponse,
    SideEffect,
    SideEffectKind,
)
from core.registration import InMemoryRegistrationCodeRepository, RegistrationCodeRepository
from core.storage.base import DomainLookups

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    """Outcome of processing one message or one outbound step"""
    success: bool
    previous_state: ConversationState
    new_state: ConversationState
    new_context: Optional[ConversationContext] = None
    reply_text: Optional[str] = None
    side_effects: List[SideEffect] = field(default_factory=list)
    triggers: List[Trigger] = field(default_factory=list)
    intent: Optional[Intent] = None
    error: Optional[str] = None
    expires_at: Optional[datetime] = None
    shift_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def state_changed(self) -> bool:
        return self.previous_state != self.new_state


class ConversationEngine:
    """
    Table-driven conversation state machine.

    Usage:
        engine = ConversationEngine(lookups, code_repository)
        result = engine.process(conversation, "Ja")
        if result.success:
            ...execute result.side_effects, persist result.new_state/new_context...
    """

    def __init__(self, lookups: DomainLookups,
                 code_repository: Optional[RegistrationCodeRepository] = None,
                 classifier: Optional[IntentClassifier] = None,
                 context_manager: Optional[ContextManager] = None,
                 templates: Optional[MessageTemplates] = None,
                 registry: Optional[HandlerRegistry] = None,
                 time_request_cutoff_hour: int = 18,
                 expiry_hours: int = 24,
                 registration_expiry_hours: int = 2):
        self.lookups = lookups
        self.code_repository = code_repository or InMemoryRegistrationCodeRepository(DEFAULT_REGISTRATION_CODES)
        self.classifier = classifier or IntentClassifier(self.code_repository)
        self.context_manager = context_manager or ContextManager()
        self.templates = templates or MessageTemplates()
        self.expiry_hours = expiry_hours
        self.registration_expiry_hours = registration_expiry_hours

        if registry is None:
            registry = HandlerRegistry()
            for handler_class in DEFAULT_HANDLERS:
                registry.register(handler_class(
                    self.templates,
                    self.context_manager,
                    lookups,
                    code_repository=self.code_repository,
                    time_request_cutoff_hour=time_request_cutoff_hour,
                ))
        self.registry = registry

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def process(self, conversation: Conversation, text: str,
                now: Optional[datetime] = None) -> TransitionResult:
        """
        Process one inbound message.

        Args:
            conversation: Current persisted conversation
            text: Raw message body
            now: Reference time (naive UTC), defaults to the current time

        Returns:
            TransitionResult. success is False only for missing lookups,
            illegal transitions and unknown states; everything the worker
            can fix by replying is a successful result with a correction.
        """
        now = now or datetime.utcnow()
        try:
            state = ConversationState(conversation.state)
        except ValueError:
            logger.error(f"Conversation {conversation.id} is in unknown state {conversation.state!r}")
            return TransitionResult(
                success=False,
                previous_state=conversation.state,
                new_state=conversation.state,
                error=f"Unknown conversation state: {conversation.state}",
            )

        context = self._load_context(conversation)
        triggers: List[Trigger] = []

        # A reply to an invitation proves it was delivered
        if state == ConversationState.EVENT_NOTIFICATION_SENT:
            state = apply_triggers(state, [Trigger.NOTIFICATION_SENT])
            triggers.append(Trigger.NOTIFICATION_SENT)

        intent = self.classifier.classify_for_state(text, state, context)
        logger.info(f"Intent for {conversation.channel_address} in {state.value}: "
                    f"{intent.type.value}/{intent.kind} ({intent.confidence:.2f})")

        handler = self.registry.get_handler(state, intent.type)
        if handler is None:
            return self._not_understood(conversation, state, context, intent, triggers, now)

        request = HandlerRequest(
            conversation=conversation.model_copy(update={"state": state}),
            context=context,
            intent=intent,
            now=now,
        )
        response = handler.handle(request)
        return self._finish(conversation, state, context, response, triggers, now, intent)

    def _load_context(self, conversation: Conversation) -> ConversationContext:
        if not conversation.context:
            return self.context_manager.create()
        try:
            return ConversationContext.from_dict(conversation.context)
        except (AttributeError, TypeError, ValueError, KeyError) as e:
            logger.warning(f"⚠️ Corrupt context on conversation {conversation.id}, resetting: {e}")
            return self.context_manager.reset(None, preserve_metadata=True)

    def _not_understood(self, conversation: Conversation, state: ConversationState,
                        context: ConversationContext, intent: Intent,
                        triggers: List[Trigger], now: datetime) -> TransitionResult:
        """No handler for (state, intent): apologize and keep the state"""
        logger.info(f"No handler for {state.value}/{intent.type.value}, sending generic reply")
        return TransitionResult(
            success=True,
            previous_state=conversation.state,
            new_state=state,
            new_context=self.context_manager.increment_error_count(context),
            reply_text=self.templates.error("invalid_response"),
            triggers=triggers,
            intent=intent,
            expires_at=self._expiry(conversation, state, triggers, now),
            shift_id=conversation.shift_id,
        )

    def _finish(self, conversation: Conversation, state: ConversationState,
                context: ConversationContext, response: HandlerResponse,
                triggers: List[Trigger], now: datetime,
                intent: Optional[Intent] = None,
                shift_id: Optional[str] = None) -> TransitionResult:
        """Walk the table for the handler's triggers and build the result"""
        if not response.success:
            return TransitionResult(
                success=False,
                previous_state=conversation.state,
                new_state=conversation.state,
                intent=intent,
                error=response.error,
            )

        try:
            new_state = apply_triggers(state, response.triggers)
        except TransitionError as e:
            logger.error(f"❌ Illegal transition for conversation {conversation.id}: {e}")
            return TransitionResult(
                success=False,
                previous_state=conversation.state,
                new_state=conversation.state,
                intent=intent,
                error=str(e),
            )

        triggers = triggers + response.triggers
        if triggers:
            logger.info(f"Conversation {conversation.id}: {conversation.state.value} -> {new_state.value} "
                        f"({TransitionRules.get_transition_reason(triggers)})")

        return TransitionResult(
            success=True,
            previous_state=conversation.state,
            new_state=new_state,
            new_context=response.context or self.context_manager.update(context, {}),
            reply_text=response.message,
            side_effects=response.side_effects,
            triggers=triggers,
            intent=intent,
            expires_at=self._expiry(conversation, new_state, triggers, now),
            shift_id=shift_id or conversation.shift_id,
            metadata=response.metadata,
        )

    def _expiry(self, conversation: Conversation, state: ConversationState,
                triggers: List[Trigger], now: datetime) -> Optional[datetime]:
        if not triggers:
            return conversation.expires_at
        return compute_expiry(state, now, self.expiry_hours, self.registration_expiry_hours)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def start_shift_invitation(self, conversation: Conversation, worker: Worker, shift: Shift,
                               now: Optional[datetime] = None) -> TransitionResult:
        """Invite a worker to a shift (idle -> event_notification_sent)"""
        now = now or datetime.utcnow()
        context = self.context_manager.set_event_context(
            self._load_context(conversation), shift.id, shift.title,
            shift_date=shift.date,
            shift_location=shift.location,
            notification_sent=False,
            count_message=False,
        )
        response = HandlerResponse(
            success=True,
            message=self.templates.shift_notification(worker, shift),
            triggers=[Trigger.EVENT_NOTIFICATION],
            context=context,
            side_effects=[SideEffect(SideEffectKind.UPDATE_SHIFT_STATUS, {
                "worker_id": worker.id,
                "shift_id": shift.id,
                "status": WorkerShiftStatus.ASKED,
                "response_method": "sms",
            })],
        )
        return self._finish(conversation, conversation.state, context, response, [], now,
                            shift_id=shift.id)

    def confirm_notification_sent(self, conversation: Conversation,
                                  now: Optional[datetime] = None) -> TransitionResult:
        """Invitation delivered (event_notification_sent -> awaiting_event_response)"""
        now = now or datetime.utcnow()
        context = self._load_context(conversation)
        shift_response = context.shift_response
        if shift_response is None or not shift_response.shift_id:
            return self._finish(conversation, conversation.state, context, HandlerResponse(
                success=False, error=f"No shift invitation in context of conversation {conversation.id}",
            ), [], now)

        context = self.context_manager.set_event_context(
            context, shift_response.shift_id, shift_response.shift_title,
            notification_sent=True,
            count_message=False,
        )
        response = HandlerResponse(success=True, triggers=[Trigger.NOTIFICATION_SENT], context=context)
        return self._finish(conversation, conversation.state, context, response, [], now)

    def start_overtime_request(self, conversation: Conversation, worker: Worker, shift: Shift,
                               additional_hours: float, hourly_rate: Optional[float] = None,
                               now: Optional[datetime] = None) -> TransitionResult:
        """Ask a worker to stay longer (idle -> overtime_request_sent)"""
        now = now or datetime.utcnow()
        rate = hourly_rate if hourly_rate is not None else shift.hourly_rate
        try:
            context = self.context_manager.set_overtime_context(
                self._load_context(conversation),
                additional_hours=additional_hours,
                hourly_rate=rate,
                request_sent=True,
                count_message=False,
            )
        except ValueError as e:
            return self._finish(conversation, conversation.state, ConversationContext(),
                                HandlerResponse(success=False, error=str(e)), [], now)

        response = HandlerResponse(
            success=True,
            message=self.templates.overtime_request(worker, shift, additional_hours, rate),
            triggers=[Trigger.OVERTIME_REQUEST],
            context=context,
        )
        return self._finish(conversation, conversation.state, context, response, [], now,
                            shift_id=shift.id)

    def reset(self, conversation: Conversation, now: Optional[datetime] = None) -> TransitionResult:
        """Reopen a completed conversation (completed -> idle)"""
        now = now or datetime.utcnow()
        previous = self._load_context(conversation)
        context = self.context_manager.reset(previous, preserve_metadata=True)
        response = HandlerResponse(success=True, triggers=[Trigger.RESET], context=context)
        return self._finish(conversation, conversation.state, previous, response, [], now)
