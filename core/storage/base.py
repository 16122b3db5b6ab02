"""
Storage contracts used by the conversation engine and service.

The engine only reads through DomainLookups; every write goes through the
service layer after the engine has produced its result.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from models.schemas import Conversation, ConversationState, Shift, Worker, WorkerShiftStatus


class ConversationNotFoundError(LookupError):
    """Raised when a conversation id is unknown"""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class ConversationStore(ABC):
    """Persistence for Conversation records"""

    @abstractmethod
    def get_or_create_conversation(self, channel_address: str,
                                   subject_id: Optional[str] = None,
                                   expires_at: Optional[datetime] = None) -> Conversation:
        """
        Return the active conversation for a channel address, creating one if needed.

        Args:
            channel_address: Normalized phone number
            subject_id: Worker id to link when creating
            expires_at: Expiry for a newly created conversation

        Returns:
            The active (non-expired) conversation
        """
        pass

    @abstractmethod
    def update_conversation_state(self, conversation_id: str, new_state: ConversationState,
                                  context: Optional[Dict[str, Any]] = None,
                                  shift_id: Optional[str] = None,
                                  subject_id: Optional[str] = None,
                                  expires_at: Optional[datetime] = None) -> Conversation:
        pass

    @abstractmethod
    def get_conversation_by_id(self, conversation_id: str) -> Optional[Conversation]:
        pass

    @abstractmethod
    def list_active_conversations(self, now: Optional[datetime] = None) -> List[Conversation]:
        """Non-expired, non-completed conversations"""
        pass

    @abstractmethod
    def cleanup_expired_conversations(self, now: Optional[datetime] = None) -> int:
        """Delete expired conversations and return how many were removed"""
        pass


class DomainLookups(ABC):
    """Worker and shift records owned by the roster system"""

    @abstractmethod
    def find_worker_by_channel_address(self, channel_address: str) -> Optional[Worker]:
        pass

    @abstractmethod
    def find_shift_by_id(self, shift_id: str) -> Optional[Shift]:
        pass

    @abstractmethod
    def create_worker(self, first_name: str, last_name: str, phone_number: str,
                      registered_via_code: Optional[str] = None) -> Worker:
        pass

    @abstractmethod
    def update_worker_shift_status(self, worker_id: str, shift_id: str,
                                   status: WorkerShiftStatus,
                                   response_method: str = "sms") -> None:
        pass
