"""
Conversation service: ties the engine to storage and the SMS transport.

Messages from the same phone number are processed one at a time. The
engine itself is lock-free; serialization happens here with one
asyncio.Lock per channel address.
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Tuple

from config import settings
from core.conversation import ConversationEngine, MessageTemplates, SideEffectKind, TransitionResult
from core.conversation.context import ConversationContext, RegistrationStep
from core.registration import (
    InMemoryRegistrationCodeRepository,
    RegistrationCodeRepository,
    validate_phone_number,
)
from core.services.sms_service import SMSService
from core.storage import (
    ConversationStore,
    DomainLookups,
    InMemoryConversationStore,
    InMemoryDomainLookups,
    PostgresConversationStore,
    PostgresDomainLookups,
)
from models.schemas import (
    Conversation,
    ConversationState,
    InboundMessage,
    SendErrorKind,
    SendResult,
    Shift,
    Worker,
)

logger = logging.getLogger(__name__)


class AddressLockRegistry:
    """One asyncio.Lock per channel address, dropped when nobody holds or waits for it"""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def lock(self, address: str):
        lock = self._locks.setdefault(address, asyncio.Lock())
        self._users[address] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[address] -= 1
            if self._users[address] == 0:
                del self._users[address]
                self._locks.pop(address, None)

    def active_addresses(self):
        return list(self._locks.keys())


@dataclass
class ProcessingOutcome:
    """What happened to one inbound message or outbound campaign step"""
    success: bool
    conversation_id: Optional[str] = None
    previous_state: Optional[ConversationState] = None
    new_state: Optional[ConversationState] = None
    reply_text: Optional[str] = None
    error: Optional[str] = None
    send_result: Optional[SendResult] = None


class ConversationService:
    """
    Runs inbound messages and outbound campaigns through the engine.

    Order per message: load or create the conversation, run the engine,
    execute requested side effects, then persist state and context.
    """

    def __init__(self, engine: ConversationEngine, store: ConversationStore,
                 lookups: DomainLookups, code_repository: RegistrationCodeRepository,
                 sms: Optional[SMSService] = None,
                 country_code: str = "49"):
        self.engine = engine
        self.store = store
        self.lookups = lookups
        self.code_repository = code_repository
        self.sms = sms
        self.country_code = country_code
        self.locks = AddressLockRegistry()

    @property
    def templates(self) -> MessageTemplates:
        return self.engine.templates

    def normalize_address(self, address: str) -> str:
        validation = validate_phone_number(address, self.country_code)
        if not validation.is_valid:
            raise ValueError(f"Invalid phone number {address}: {validation.error}")
        return validation.normalized

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def handle_inbound(self, message: InboundMessage,
                             now: Optional[datetime] = None) -> ProcessingOutcome:
        """
        Process one inbound SMS.

        Args:
            message: Sender, body and gateway message id
            now: Reference time (naive UTC)

        Returns:
            ProcessingOutcome with the reply to send back
        """
        try:
            address = self.normalize_address(message.from_address)
        except ValueError as e:
            logger.warning(f"⚠️  Rejected inbound message {message.message_id}: {e}")
            return ProcessingOutcome(success=False, error=str(e))

        logger.info(f"📥 Inbound SMS from {address} | SID: {message.message_id} | Body: {message.body[:50]}")

        async with self.locks.lock(address):
            return await asyncio.to_thread(self._process_inbound, address, message.body,
                                           now or datetime.utcnow())

    def _process_inbound(self, address: str, body: str, now: datetime) -> ProcessingOutcome:
        conversation = self._open_conversation(address, now)
        result = self.engine.process(conversation, body, now)

        if not result.success:
            logger.warning(f"⚠️  Engine failed for conversation {conversation.id}: {result.error}")
            return ProcessingOutcome(
                success=False,
                conversation_id=conversation.id,
                previous_state=result.previous_state,
                new_state=result.previous_state,
                reply_text=self.templates.error("system_error"),
                error=result.error,
            )

        self._commit(conversation, result)
        return ProcessingOutcome(
            success=True,
            conversation_id=conversation.id,
            previous_state=result.previous_state,
            new_state=result.new_state,
            reply_text=result.reply_text,
        )

    def _open_conversation(self, address: str, now: datetime) -> Conversation:
        """
        Active conversation for an address, reopened if it was completed.

        Expired conversations are never returned by the store, so a message
        after expiry starts a fresh idle conversation.
        """
        worker = self.lookups.find_worker_by_channel_address(address)
        conversation = self.store.get_or_create_conversation(
            address,
            subject_id=worker.id if worker else None,
        )
        if conversation.state != ConversationState.COMPLETED:
            return conversation

        reset = self.engine.reset(conversation, now)
        if not reset.success:
            raise RuntimeError(f"Could not reset conversation {conversation.id}: {reset.error}")
        return self.store.update_conversation_state(
            conversation.id,
            reset.new_state,
            context=reset.new_context.to_dict(),
            expires_at=reset.expires_at,
        )

    def _commit(self, conversation: Conversation, result: TransitionResult) -> Conversation:
        """Execute side effects, then persist the new state and context"""
        subject_id, context = self._execute_side_effects(conversation, result)
        return self.store.update_conversation_state(
            conversation.id,
            result.new_state,
            context=context.to_dict(),
            shift_id=result.shift_id,
            subject_id=subject_id,
            expires_at=result.expires_at,
        )

    def _execute_side_effects(self, conversation: Conversation,
                              result: TransitionResult) -> Tuple[Optional[str], ConversationContext]:
        subject_id = conversation.subject_id
        context = result.new_context

        for effect in result.side_effects:
            payload = effect.payload
            if effect.kind == SideEffectKind.CREATE_WORKER:
                worker = self.lookups.create_worker(
                    first_name=payload["first_name"],
                    last_name=payload["last_name"],
                    phone_number=payload["phone_number"],
                    registered_via_code=payload.get("registered_via_code"),
                )
                subject_id = worker.id
                context = self.engine.context_manager.set_registration_context(
                    context, RegistrationStep.COMPLETED, worker_id=worker.id, count_message=False)
                logger.info(f"✅ Registered worker {worker.id} ({worker.full_name})")
            elif effect.kind == SideEffectKind.UPDATE_SHIFT_STATUS:
                self.lookups.update_worker_shift_status(
                    payload["worker_id"],
                    payload["shift_id"],
                    payload["status"],
                    response_method=payload.get("response_method", "sms"),
                )
            elif effect.kind == SideEffectKind.RECORD_CODE_USE:
                self.code_repository.record_use(payload["code"])
            else:
                raise ValueError(f"Unknown side effect: {effect.kind}")

        return subject_id, context

    # ------------------------------------------------------------------
    # Outbound campaigns
    # ------------------------------------------------------------------

    async def send_shift_invitation(self, worker: Worker, shift: Shift,
                                    now: Optional[datetime] = None) -> ProcessingOutcome:
        """Invite a worker to a shift and wait for their answer"""
        address = self.normalize_address(worker.phone_number)
        async with self.locks.lock(address):
            now = now or datetime.utcnow()
            conversation = await asyncio.to_thread(self._open_conversation, address, now)
            result = self.engine.start_shift_invitation(conversation, worker, shift, now)
            if not result.success:
                return self._failed(conversation, result)

            conversation = await asyncio.to_thread(self._commit, conversation, result)
            send = await self._send(address, result.reply_text, conversation, "shift_notification")
            if send.success:
                confirm = self.engine.confirm_notification_sent(conversation, now)
                if not confirm.success:
                    return self._failed(conversation, confirm)
                conversation = await asyncio.to_thread(self._commit, conversation, confirm)

            return ProcessingOutcome(
                success=send.success,
                conversation_id=conversation.id,
                previous_state=result.previous_state,
                new_state=conversation.state,
                reply_text=result.reply_text,
                error=send.error,
                send_result=send,
            )

    async def send_overtime_request(self, worker: Worker, shift: Shift, additional_hours: float,
                                    hourly_rate: Optional[float] = None,
                                    now: Optional[datetime] = None) -> ProcessingOutcome:
        """Ask a worker to stay longer on a shift"""
        address = self.normalize_address(worker.phone_number)
        async with self.locks.lock(address):
            now = now or datetime.utcnow()
            conversation = await asyncio.to_thread(self._open_conversation, address, now)
            result = self.engine.start_overtime_request(
                conversation, worker, shift, additional_hours, hourly_rate, now)
            if not result.success:
                return self._failed(conversation, result)

            conversation = await asyncio.to_thread(self._commit, conversation, result)
            send = await self._send(address, result.reply_text, conversation, "overtime_request")
            return ProcessingOutcome(
                success=send.success,
                conversation_id=conversation.id,
                previous_state=result.previous_state,
                new_state=conversation.state,
                reply_text=result.reply_text,
                error=send.error,
                send_result=send,
            )

    async def _send(self, address: str, body: str, conversation: Conversation,
                    message_type: str) -> SendResult:
        if self.sms is None:
            logger.error("❌ Cannot send SMS - no SMS service configured")
            return SendResult(success=False, status="failed", error="SMS service not configured",
                              error_kind=SendErrorKind.PERMANENT, attempts=0)
        return await self.sms.send_text(address, body, {
            "conversation_id": conversation.id,
            "message_type": message_type,
        })

    @staticmethod
    def _failed(conversation: Conversation, result: TransitionResult) -> ProcessingOutcome:
        logger.warning(f"⚠️  Could not start campaign on conversation {conversation.id}: {result.error}")
        return ProcessingOutcome(
            success=False,
            conversation_id=conversation.id,
            previous_state=result.previous_state,
            new_state=result.previous_state,
            error=result.error,
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """Delete conversations past their expiry"""
        return await asyncio.to_thread(self.store.cleanup_expired_conversations, now)


def create_conversation_service() -> ConversationService:
    """Build the service from application settings"""
    if settings.use_postgres:
        store = PostgresConversationStore(default_expiry_hours=settings.CONVERSATION_EXPIRY_HOURS)
        lookups = PostgresDomainLookups()
    else:
        store = InMemoryConversationStore(default_expiry_hours=settings.CONVERSATION_EXPIRY_HOURS)
        lookups = InMemoryDomainLookups()

    code_repository = InMemoryRegistrationCodeRepository(settings.registration_code_list)
    templates = MessageTemplates(
        coordinator_name=settings.COORDINATOR_NAME,
        onsite_contact_name=settings.ONSITE_CONTACT_NAME,
        default_meeting_point=settings.DEFAULT_MEETING_POINT,
    )
    engine = ConversationEngine(
        lookups,
        code_repository=code_repository,
        templates=templates,
        time_request_cutoff_hour=settings.TIME_REQUEST_CUTOFF_HOUR,
        expiry_hours=settings.CONVERSATION_EXPIRY_HOURS,
        registration_expiry_hours=settings.REGISTRATION_EXPIRY_HOURS,
    )
    logger.info(f"✅ Conversation service ready (storage: {settings.STORAGE_BACKEND})")
    return ConversationService(
        engine,
        store,
        lookups,
        code_repository,
        sms=SMSService.from_settings(),
        country_code=settings.DEFAULT_COUNTRY_CODE,
    )
