"""In-process storage used for local runs and tests"""

import logging
import threading
import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from models.schemas import Conversation, ConversationState, Shift, Worker, WorkerShiftStatus
from .base import ConversationStore, ConversationNotFoundError, DomainLookups

logger = logging.getLogger(__name__)


class InMemoryConversationStore(ConversationStore):
    """Keeps at most one active conversation per channel address"""

    def __init__(self, default_expiry_hours: int = 24):
        self.default_expiry_hours = default_expiry_hours
        self._conversations: Dict[str, Conversation] = {}
        self._lock = threading.Lock()

    def get_or_create_conversation(self, channel_address, subject_id=None, expires_at=None):
        now = datetime.utcnow()
        with self._lock:
            for conversation in self._conversations.values():
                if conversation.channel_address == channel_address and not conversation.is_expired(now):
                    return conversation.model_copy(deep=True)

            conversation = Conversation(
                id=str(uuid.uuid4()),
                channel_address=channel_address,
                subject_id=subject_id,
                state=ConversationState.IDLE,
                expires_at=expires_at or now + timedelta(hours=self.default_expiry_hours),
                created_at=now,
                updated_at=now,
                last_activity_at=now,
            )
            self._conversations[conversation.id] = conversation
            logger.info(f"Created conversation {conversation.id} for {channel_address}")
            return conversation.model_copy(deep=True)

    def update_conversation_state(self, conversation_id, new_state, context=None,
                                  shift_id=None, subject_id=None, expires_at=None):
        now = datetime.utcnow()
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                raise ConversationNotFoundError(conversation_id)
            conversation.state = new_state
            if context is not None:
                conversation.context = context
            if shift_id is not None:
                conversation.shift_id = shift_id
            if subject_id is not None:
                conversation.subject_id = subject_id
            if expires_at is not None:
                conversation.expires_at = expires_at
            conversation.last_activity_at = now
            conversation.updated_at = now
            return conversation.model_copy(deep=True)

    def get_conversation_by_id(self, conversation_id):
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            return conversation.model_copy(deep=True) if conversation else None

    def list_active_conversations(self, now=None):
        now = now or datetime.utcnow()
        with self._lock:
            return [
                c.model_copy(deep=True)
                for c in self._conversations.values()
                if not c.is_expired(now) and c.state != ConversationState.COMPLETED
            ]

    def cleanup_expired_conversations(self, now=None):
        now = now or datetime.utcnow()
        with self._lock:
            expired = [cid for cid, c in self._conversations.items() if c.is_expired(now)]
            for cid in expired:
                del self._conversations[cid]
        if expired:
            logger.info(f"Cleaned up {len(expired)} expired conversations")
        return len(expired)


class InMemoryDomainLookups(DomainLookups):
    """Worker and shift records held in dictionaries"""

    def __init__(self, workers: Optional[List[Worker]] = None, shifts: Optional[List[Shift]] = None):
        self.workers: Dict[str, Worker] = {w.id: w for w in workers or []}
        self.shifts: Dict[str, Shift] = {s.id: s for s in shifts or []}
        self.shift_statuses: Dict[Tuple[str, str], WorkerShiftStatus] = {}
        self._lock = threading.Lock()

    def add_worker(self, worker: Worker) -> Worker:
        with self._lock:
            self.workers[worker.id] = worker
        return worker

    def add_shift(self, shift: Shift) -> Shift:
        with self._lock:
            self.shifts[shift.id] = shift
        return shift

    def find_worker_by_channel_address(self, channel_address):
        with self._lock:
            for worker in self.workers.values():
                if worker.phone_number == channel_address and worker.is_active:
                    return worker
        return None

    def find_shift_by_id(self, shift_id):
        with self._lock:
            return self.shifts.get(shift_id)

    def create_worker(self, first_name, last_name, phone_number, registered_via_code=None):
        worker = Worker(
            id=str(uuid.uuid4()),
            first_name=first_name,
            last_name=last_name,
            phone_number=phone_number,
            registered_via_code=registered_via_code,
        )
        return self.add_worker(worker)

    def update_worker_shift_status(self, worker_id, shift_id, status, response_method="sms"):
        with self._lock:
            self.shift_statuses[(worker_id, shift_id)] = status
        logger.info(f"Worker {worker_id} is now {status.value} for shift {shift_id} (via {response_method})")
