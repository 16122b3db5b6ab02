"""
Unified context management for conversations.

All operations are pure: they take a context and return a new one, never
mutating their input. The caller (the engine) persists the result.
"""

import copy
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .models import (
    ConversationContext,
    ContactUpdate,
    EmergencyContext,
    EmergencyDetails,
    InformationRequest,
    LIST_FIELDS,
    OvertimeContext,
    RECORD_FIELDS,
    RegistrationContext,
    RegistrationStep,
    ScheduleModificationContext,
    Severity,
    ShiftResponseContext,
    coerce_list_entry,
    coerce_record,
)
from .validators import ContextValidator, ContextValidationResult

logger = logging.getLogger(__name__)


class ContextImportError(ValueError):
    """Raised when serialized context text cannot be imported"""

    def __init__(self, message: str, errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.errors = errors or []


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ContextManager:
    """
    Pure operations over ConversationContext values.

    Args:
        clock: Callable returning the current time (timezone-aware)
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or utc_now

    def _now(self) -> str:
        return self.clock().isoformat()

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def create(self, seed: Optional[Dict[str, Any]] = None) -> ConversationContext:
        """Create a fresh context with stamped metadata and zeroed counters"""
        now = self._now()
        context = ConversationContext(
            conversation_started=now,
            last_activity=now,
            message_count=0,
            error_count=0,
            retry_count=0,
            information_requests=[],
            contact_updates=[],
        )
        if seed:
            context = self._apply(context, seed)
        return context

    def update(self, context: ConversationContext, delta: Dict[str, Any]) -> ConversationContext:
        """
        Shallow-merge a delta over the context.

        Stamps last_activity and increments message_count unless the delta
        sets message_count itself.
        """
        updated = self._apply(context, delta)
        updated.last_activity = self._now()
        if "message_count" not in delta:
            updated.message_count = context.message_count + 1
        return updated

    def _apply(self, context: ConversationContext, delta: Dict[str, Any]) -> ConversationContext:
        known = set(ConversationContext.field_names())
        updated = copy.deepcopy(context)
        for key, value in delta.items():
            if key not in known:
                raise ValueError(f"Unknown context field: {key}")
            if key in RECORD_FIELDS:
                value = coerce_record(key, value)
            elif key in LIST_FIELDS:
                value = [coerce_list_entry(key, entry) for entry in value]
            setattr(updated, key, copy.deepcopy(value))
        return updated

    def _update(self, context: ConversationContext, delta: Dict[str, Any],
                count_message: bool) -> ConversationContext:
        if not count_message:
            delta = dict(delta, message_count=context.message_count)
        return self.update(context, delta)

    # ------------------------------------------------------------------
    # Typed convenience wrappers
    # ------------------------------------------------------------------

    def add_information_request(self, context: ConversationContext, kind: str, question: str,
                                count_message: bool = True) -> ConversationContext:
        entry = InformationRequest(kind=kind, question=question, timestamp=self._now())
        return self._update(context, {
            "information_requests": context.information_requests + [entry],
            "last_info_request": kind,
        }, count_message)

    def mark_information_request_answered(self, context: ConversationContext, kind: str,
                                          count_message: bool = True) -> ConversationContext:
        """Mark the first unanswered request of this kind as answered"""
        requests = copy.deepcopy(context.information_requests)
        for entry in requests:
            if entry.kind == kind and not entry.answered:
                entry.answered = True
                break
        return self._update(context, {
            "information_requests": requests,
            "information_provided": True,
        }, count_message)

    def add_contact_update(self, context: ConversationContext, kind: str, new_value: str,
                           old_value: Optional[str] = None,
                           count_message: bool = True) -> ConversationContext:
        entry = ContactUpdate(kind=kind, new_value=new_value, old_value=old_value,
                              timestamp=self._now())
        return self._update(context, {
            "contact_updates": context.contact_updates + [entry],
        }, count_message)

    def set_registration_context(self, context: ConversationContext, step: RegistrationStep,
                                 code: Optional[str] = None, worker_name: Optional[str] = None,
                                 worker_id: Optional[str] = None,
                                 count_message: bool = True) -> ConversationContext:
        current = context.registration or RegistrationContext()
        registration = RegistrationContext(
            code=code or current.code,
            step=step,
            worker_name=worker_name or current.worker_name,
            worker_id=worker_id or current.worker_id,
            completed=step == RegistrationStep.COMPLETED,
        )
        return self._update(context, {"registration": registration}, count_message)

    def set_schedule_modification(self, context: ConversationContext, kind: str,
                                  requested_time: Optional[str] = None,
                                  original_time: Optional[str] = None,
                                  reason: Optional[str] = None, processed: bool = False,
                                  count_message: bool = True) -> ConversationContext:
        modification = ScheduleModificationContext(
            kind=kind,
            original_time=original_time,
            requested_time=requested_time,
            reason=reason,
            processed=processed,
        )
        return self._update(context, {"schedule_modification": modification}, count_message)

    def set_emergency_context(self, context: ConversationContext, kind: str,
                              delay_minutes: Optional[int] = None, reason: Optional[str] = None,
                              severity: Optional[Severity] = None, requires_followup: bool = False,
                              handled: bool = False,
                              count_message: bool = True) -> ConversationContext:
        emergency = EmergencyContext(
            kind=kind,
            details=EmergencyDetails(
                delay_minutes=delay_minutes,
                reason=reason,
                severity=severity,
                requires_followup=requires_followup,
            ),
            handled=handled,
        )
        return self._update(context, {"emergency": emergency}, count_message)

    def set_overtime_context(self, context: ConversationContext, additional_hours: float,
                             hourly_rate: float, request_sent: bool = True,
                             response: Optional[str] = None, processed: bool = False,
                             count_message: bool = True) -> ConversationContext:
        if additional_hours <= 0 or hourly_rate <= 0:
            raise ValueError("Overtime hours and rate must be positive")
        overtime = OvertimeContext(
            additional_hours=additional_hours,
            hourly_rate=hourly_rate,
            request_sent=request_sent,
            response=response,
            processed=processed,
        )
        return self._update(context, {"overtime": overtime}, count_message)

    def set_event_context(self, context: ConversationContext, shift_id: str, shift_title: str,
                          shift_date: Optional[str] = None, shift_location: Optional[str] = None,
                          notification_sent: Optional[bool] = None,
                          response_type: Optional[str] = None,
                          time_request_deadline: Optional[str] = None,
                          count_message: bool = True) -> ConversationContext:
        current = context.shift_response or ShiftResponseContext()
        shift_response = ShiftResponseContext(
            shift_id=shift_id,
            shift_title=shift_title,
            shift_date=shift_date or current.shift_date,
            shift_location=shift_location or current.shift_location,
            notification_sent=current.notification_sent if notification_sent is None else notification_sent,
            response_type=response_type or current.response_type,
            response_processed=response_type is not None or current.response_processed,
            time_request_deadline=time_request_deadline or current.time_request_deadline,
        )
        return self._update(context, {"shift_response": shift_response}, count_message)

    def increment_error_count(self, context: ConversationContext,
                              count_message: bool = True) -> ConversationContext:
        return self._update(context, {"error_count": context.error_count + 1}, count_message)

    def increment_retry_count(self, context: ConversationContext,
                              count_message: bool = True) -> ConversationContext:
        return self._update(context, {"retry_count": context.retry_count + 1}, count_message)

    def set_scratch(self, context: ConversationContext, key: str, value: Any) -> ConversationContext:
        scratch = dict(context.scratch)
        scratch[key] = value
        return self._update(context, {"scratch": scratch}, count_message=False)

    def clear_scratch(self, context: ConversationContext) -> ConversationContext:
        return self._update(context, {"scratch": {}}, count_message=False)

    # ------------------------------------------------------------------
    # Validation, merge, serialization, reset
    # ------------------------------------------------------------------

    @staticmethod
    def validate(context) -> ContextValidationResult:
        return ContextValidator.validate(context)

    def merge(self, base: ConversationContext, incoming: ConversationContext) -> ConversationContext:
        """
        Merge two contexts.

        List fields concatenate, scalar fields take the incoming value when
        it is set, and message_count keeps the larger of the two.
        """
        merged = copy.deepcopy(base)
        for name in ConversationContext.field_names():
            incoming_value = getattr(incoming, name)
            if name in LIST_FIELDS:
                setattr(merged, name, getattr(base, name) + copy.deepcopy(incoming_value))
            elif name == "scratch":
                merged.scratch = {**base.scratch, **incoming.scratch}
            elif name == "message_count":
                merged.message_count = max(base.message_count, incoming.message_count)
            elif incoming_value is not None:
                setattr(merged, name, copy.deepcopy(incoming_value))
        merged.last_activity = self._now()
        return merged

    @staticmethod
    def export_context(context: ConversationContext) -> str:
        """Serialize to portable JSON text"""
        return json.dumps(context.to_dict(), indent=2, ensure_ascii=False)

    @staticmethod
    def import_context(text: str) -> ConversationContext:
        """
        Parse serialized context text.

        Raises:
            ContextImportError: the text is not JSON or fails validation
        """
        try:
            data = json.loads(text)
        except (TypeError, json.JSONDecodeError) as e:
            raise ContextImportError(f"Failed to import context: {e}") from e

        result = ContextValidator.validate(data)
        if not result.is_valid:
            details = ", ".join(str(e) for e in result.errors)
            raise ContextImportError(f"Invalid context data: {details}", result.errors)

        for warning in result.warnings:
            logger.warning(f"Context import warning: {warning}")
        return ConversationContext.from_dict(result.sanitized)

    def reset(self, context: Optional[ConversationContext] = None,
              preserve_metadata: bool = True) -> ConversationContext:
        """
        Reset a context.

        With preserve_metadata the conversation start time is kept and the
        counters and lists are emptied; otherwise the result is blank.
        """
        if not preserve_metadata:
            return ConversationContext()
        started = context.conversation_started if context and context.conversation_started else self._now()
        return ConversationContext(
            conversation_started=started,
            last_activity=self._now(),
            message_count=0,
            error_count=0,
            retry_count=0,
            information_requests=[],
            contact_updates=[],
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def has_event_context(context: ConversationContext) -> bool:
        shift = context.shift_response
        return bool(shift and shift.shift_id and shift.shift_title)

    @staticmethod
    def has_pending_overtime(context: ConversationContext) -> bool:
        return bool(context.overtime and not context.overtime.processed)

    @staticmethod
    def summarize(context: ConversationContext) -> str:
        """Short one-line summary for logs"""
        summary = []
        if context.registration:
            step = context.registration.step.value if context.registration.step else "in progress"
            summary.append(f"Registration: {step}")
        if context.shift_response and context.shift_response.shift_title:
            summary.append(f"Shift: {context.shift_response.shift_title} "
                           f"({context.shift_response.response_type or 'pending'})")
        if context.emergency:
            summary.append(f"Emergency: {context.emergency.kind}")
        if context.schedule_modification and not context.schedule_modification.processed:
            summary.append(f"Schedule: {context.schedule_modification.kind}")
        if context.overtime and not context.overtime.processed:
            summary.append(f"Overtime: {context.overtime.additional_hours}h")
        summary.append(f"Messages: {context.message_count}")
        summary.append(f"Errors: {context.error_count}")
        return ", ".join(summary)
