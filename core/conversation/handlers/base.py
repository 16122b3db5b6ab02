"""
Base handler interface for conversation handling.

A handler owns one dialog topic. It reads the current conversation and
context, asks the context manager for the next context, renders the reply
and names the triggers to fire. It never writes to storage: writes are
returned as requested side effects for the caller to execute.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import logging

from core.conversation.understanding import Intent, IntentType
from core.conversation.context import ContextManager, ConversationContext
from core.conversation.orchestration import Trigger
from core.conversation.templates import MessageTemplates
from core.registration import RegistrationCodeRepository
from core.storage.base import DomainLookups
from models.schemas import Conversation, ConversationState, Shift, Worker

logger = logging.getLogger(__name__)


class SideEffectKind(str, Enum):
    """Writes the caller performs after a transition"""
    CREATE_WORKER = "create_worker"
    UPDATE_SHIFT_STATUS = "update_shift_status"
    RECORD_CODE_USE = "record_code_use"


@dataclass
class SideEffect:
    kind: SideEffectKind
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class HandlerRequest:
    """Everything a handler may look at for one inbound message"""
    conversation: Conversation
    context: ConversationContext
    intent: Intent
    now: datetime


@dataclass
class HandlerResponse:
    """Response from a handler"""
    success: bool
    message: Optional[str] = None
    triggers: List[Trigger] = field(default_factory=list)
    context: Optional[ConversationContext] = None
    side_effects: List[SideEffect] = field(default_factory=list)
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class BaseHandler(ABC):
    """
    Abstract base class for conversation handlers.

    Subclasses list the (state, intent type) pairs they serve in `handles`;
    the registry dispatches on exactly those pairs.
    """

    handles: List[Tuple[ConversationState, IntentType]] = []

    def __init__(self, templates: MessageTemplates, context_manager: ContextManager,
                 lookups: DomainLookups,
                 code_repository: Optional[RegistrationCodeRepository] = None,
                 time_request_cutoff_hour: int = 18):
        self.templates = templates
        self.context_manager = context_manager
        self.lookups = lookups
        self.code_repository = code_repository
        self.time_request_cutoff_hour = time_request_cutoff_hour
        self.logger = logging.getLogger(self.__class__.__name__)

    def can_handle(self, state: ConversationState, intent: Intent) -> bool:
        return (state, intent.type) in self.handles

    @abstractmethod
    def handle(self, request: HandlerRequest) -> HandlerResponse:
        """
        Handle the intent and generate a response.

        Args:
            request: Conversation, context, intent and reference time

        Returns:
            Handler response with reply, triggers, new context and side effects
        """
        pass

    # Lookups

    def find_worker(self, conversation: Conversation) -> Optional[Worker]:
        worker = self.lookups.find_worker_by_channel_address(conversation.channel_address)
        if worker is None:
            self.logger.warning(f"No worker found for {conversation.channel_address}")
        return worker

    def linked_shift_id(self, conversation: Conversation,
                        context: ConversationContext) -> Optional[str]:
        """Shift linked to the conversation, falling back to the one in context"""
        if conversation.shift_id:
            return conversation.shift_id
        if context.shift_response and context.shift_response.shift_id:
            return context.shift_response.shift_id
        return None

    def find_shift(self, conversation: Conversation,
                   context: ConversationContext) -> Optional[Shift]:
        shift_id = self.linked_shift_id(conversation, context)
        if shift_id is None:
            return None
        shift = self.lookups.find_shift_by_id(shift_id)
        if shift is None:
            self.logger.warning(f"Shift {shift_id} not found for conversation {conversation.id}")
        return shift

    # Responses

    def failure(self, error: str) -> HandlerResponse:
        """A lookup the reply depends on failed"""
        self.logger.error(error)
        return HandlerResponse(success=False, error=error)

    def shift_status_effect(self, worker: Worker, shift_id: str, status) -> SideEffect:
        return SideEffect(SideEffectKind.UPDATE_SHIFT_STATUS, {
            "worker_id": worker.id,
            "shift_id": shift_id,
            "status": status,
            "response_method": "sms",
        })

    def log_handling(self, request: HandlerRequest, response: HandlerResponse):
        """Log handler processing for debugging"""
        self.logger.info(
            f"Handled {request.intent.type.value}/{request.intent.kind} in "
            f"{request.conversation.state.value}: triggers="
            f"{[t.value for t in response.triggers]}, "
            f"side_effects={[e.kind.value for e in response.side_effects]}"
        )


class HandlerRegistry:
    """Map from (state, intent type) to the handler that serves it"""

    def __init__(self):
        self.handlers: List[BaseHandler] = []
        self._handler_map: Dict[Tuple[ConversationState, IntentType], BaseHandler] = {}

    def register(self, handler: BaseHandler,
                 keys: Optional[List[Tuple[ConversationState, IntentType]]] = None):
        """
        Register a handler.

        Args:
            handler: Handler instance
            keys: Pairs to serve, defaults to the handler's own `handles`

        Raises:
            ValueError: a pair is already served by another handler
        """
        self.handlers.append(handler)
        for key in keys or handler.handles:
            if key in self._handler_map:
                existing = self._handler_map[key].__class__.__name__
                raise ValueError(f"{key[0].value}/{key[1].value} already handled by {existing}")
            self._handler_map[key] = handler

    def get_handler(self, state: ConversationState, intent_type: IntentType) -> Optional[BaseHandler]:
        return self._handler_map.get((state, intent_type))

    def keys(self) -> List[Tuple[ConversationState, IntentType]]:
        return list(self._handler_map.keys())

    def get_all_handlers(self) -> List[BaseHandler]:
        """Get all registered handlers"""
        return self.handlers.copy()
