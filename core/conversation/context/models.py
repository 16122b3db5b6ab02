"""
Structured conversation context.

The context is an envelope of independently optional per-topic records, so a
single conversation can carry partial progress in several topics at once
(e.g. a shift invitation plus a pending information request).
"""

from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class RegistrationStep(str, Enum):
    CODE_RECEIVED = "code_received"
    AWAITING_NAME = "awaiting_name"
    COMPLETED = "completed"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def _drop_none(value: Any) -> Any:
    """Recursively convert to plain data, dropping None values"""
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value):
        return {
            f.name: _drop_none(getattr(value, f.name))
            for f in fields(value)
            if getattr(value, f.name) is not None
        }
    if isinstance(value, dict):
        return {k: _drop_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_drop_none(v) for v in value]
    return value


class _Record:
    """Shared to_dict/from_dict for context records"""

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]):
        if data is None:
            return None
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class RegistrationContext(_Record):
    code: Optional[str] = None
    step: Optional[RegistrationStep] = None
    worker_name: Optional[str] = None
    worker_id: Optional[str] = None
    completed: bool = False

    def __post_init__(self):
        if isinstance(self.step, str) and not isinstance(self.step, RegistrationStep):
            self.step = RegistrationStep(self.step)


@dataclass
class ShiftResponseContext(_Record):
    shift_id: Optional[str] = None
    shift_title: Optional[str] = None
    shift_date: Optional[str] = None  # YYYY-MM-DD
    shift_location: Optional[str] = None
    notification_sent: bool = False
    response_type: Optional[str] = None  # accept / decline / request_time / question
    response_processed: bool = False
    time_request_deadline: Optional[str] = None  # ISO timestamp


@dataclass
class ScheduleModificationContext(_Record):
    kind: str = "general"  # start_time / end_time / duration / general
    original_time: Optional[str] = None
    requested_time: Optional[str] = None
    reason: Optional[str] = None
    processed: bool = False


@dataclass
class InformationRequest(_Record):
    kind: str
    question: str
    timestamp: str
    answered: bool = False


@dataclass
class EmergencyDetails(_Record):
    delay_minutes: Optional[int] = None
    reason: Optional[str] = None
    severity: Optional[Severity] = None
    requires_followup: bool = False

    def __post_init__(self):
        if isinstance(self.severity, str) and not isinstance(self.severity, Severity):
            self.severity = Severity(self.severity)


@dataclass
class EmergencyContext(_Record):
    kind: str = "unknown"  # late / sick / injury / cancellation / unknown
    details: EmergencyDetails = field(default_factory=EmergencyDetails)
    handled: bool = False

    @classmethod
    def from_dict(cls, data):
        if data is None:
            return None
        return cls(
            kind=data.get("kind", "unknown"),
            details=EmergencyDetails.from_dict(data.get("details") or {}),
            handled=data.get("handled", False),
        )


@dataclass
class OvertimeContext(_Record):
    additional_hours: float
    hourly_rate: float
    request_sent: bool = False
    response: Optional[str] = None  # accept / decline
    processed: bool = False


@dataclass
class ContactUpdate(_Record):
    kind: str  # phone_number / availability / preferences
    timestamp: str
    new_value: Optional[str] = None
    old_value: Optional[str] = None
    processed: bool = False


# Envelope field -> record type for nested coercion
RECORD_FIELDS = {
    "registration": RegistrationContext,
    "shift_response": ShiftResponseContext,
    "schedule_modification": ScheduleModificationContext,
    "emergency": EmergencyContext,
    "overtime": OvertimeContext,
}
LIST_FIELDS = {
    "information_requests": InformationRequest,
    "contact_updates": ContactUpdate,
}
COUNTER_FIELDS = ("message_count", "error_count", "retry_count")


@dataclass
class ConversationContext:
    """Per-conversation dialog state, replaced wholesale on every transition"""
    registration: Optional[RegistrationContext] = None
    shift_response: Optional[ShiftResponseContext] = None
    schedule_modification: Optional[ScheduleModificationContext] = None
    emergency: Optional[EmergencyContext] = None
    overtime: Optional[OvertimeContext] = None

    information_requests: List[InformationRequest] = field(default_factory=list)
    last_info_request: Optional[str] = None
    information_provided: bool = False
    contact_updates: List[ContactUpdate] = field(default_factory=list)

    # Metadata
    conversation_started: Optional[str] = None
    last_activity: Optional[str] = None
    message_count: int = 0
    error_count: int = 0
    retry_count: int = 0

    # Ephemeral scratch data, cleared explicitly
    scratch: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to plain data for persistence, without None values"""
        return _drop_none(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ConversationContext':
        """Create from dictionary"""
        if not data:
            return cls()
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data or data[f.name] is None:
                continue
            value = data[f.name]
            if f.name in RECORD_FIELDS:
                value = coerce_record(f.name, value)
            elif f.name in LIST_FIELDS:
                value = [coerce_list_entry(f.name, entry) for entry in value]
            elif f.name == "scratch":
                value = dict(value)
            kwargs[f.name] = value
        return cls(**kwargs)

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]


def coerce_record(name: str, value: Any):
    record_type = RECORD_FIELDS[name]
    if value is None or isinstance(value, record_type):
        return value
    return record_type.from_dict(value)


def coerce_list_entry(name: str, value: Any):
    entry_type = LIST_FIELDS[name]
    if isinstance(value, entry_type):
        return value
    return entry_type.from_dict(value)
