"""Data models for the shift SMS assistant"""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from enum import Enum
from datetime import datetime


class ConversationState(str, Enum):
    """Conversation state machine states"""
    IDLE = "idle"
    REGISTRATION_CODE_RECEIVED = "registration_code_received"
    AWAITING_NAME = "awaiting_name"
    EVENT_NOTIFICATION_SENT = "event_notification_sent"
    AWAITING_EVENT_RESPONSE = "awaiting_event_response"
    SCHEDULE_MODIFICATION_REQUEST = "schedule_modification_request"
    OVERTIME_REQUEST_SENT = "overtime_request_sent"
    INFORMATION_REQUEST = "information_request"
    EMERGENCY_SITUATION = "emergency_situation"
    COMPLETED = "completed"


class WorkerShiftStatus(str, Enum):
    """Availability status of a worker for a shift"""
    ASKED = "asked"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class Conversation(BaseModel):
    """One dialog session per phone number"""
    id: str
    channel_address: str
    subject_id: Optional[str] = None
    shift_id: Optional[str] = None
    state: ConversationState = ConversationState.IDLE
    context: Dict[str, Any] = Field(default_factory=dict)
    last_activity_at: datetime = Field(default_factory=datetime.utcnow)
    expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.utcnow()) >= self.expires_at


class Worker(BaseModel):
    """A registered gig worker"""
    id: str
    first_name: str
    last_name: str
    phone_number: str
    is_active: bool = True
    registered_via_code: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Shift(BaseModel):
    """A shift (event) workers are invited to"""
    id: str
    title: str
    date: str  # YYYY-MM-DD
    start_time: str  # HH:MM
    end_time: str  # HH:MM
    location: Optional[str] = None
    hourly_rate: float = 0.0
    contact_person: Optional[str] = None


class InboundMessage(BaseModel):
    """Inbound text as delivered by the SMS gateway"""
    from_address: str
    body: str
    message_id: Optional[str] = None


class SendErrorKind(str, Enum):
    """Whether a failed send may succeed when tried again"""
    RETRYABLE = "retryable"
    PERMANENT = "permanent"


class SendResult(BaseModel):
    """Outcome of an outbound send"""
    success: bool
    transport_id: Optional[str] = None
    status: str = "queued"
    error: Optional[str] = None
    error_kind: Optional[SendErrorKind] = None
    attempts: int = 1
