"""
Context validation utilities.

This module checks a conversation context (in its plain-data form) against
the field invariants and produces a sanitized copy. Counter problems are
repaired with a warning; malformed dates, severities and non-positive
overtime figures are hard errors.
"""

import copy
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from .models import ConversationContext, COUNTER_FIELDS, LIST_FIELDS, RECORD_FIELDS, RegistrationStep, Severity

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_RE = re.compile(r"^\d{1,2}:\d{2}$")
PHONE_RE = re.compile(r"^\+\d{10,15}$")

SCHEDULE_KINDS = {"start_time", "end_time", "duration", "general"}
EMERGENCY_KINDS = {"late", "sick", "injury", "cancellation", "unknown"}
SEVERITIES = {s.value for s in Severity}


class ValidationError:
    """Represents a context validation error"""

    def __init__(self, field: str, message: str, severity: str = "error"):
        self.field = field
        self.message = message
        self.severity = severity  # "error", "warning"

    def __repr__(self):
        return f"ValidationError({self.field}: {self.message})"

    def __str__(self):
        return f"{self.field}: {self.message}"


@dataclass
class ContextValidationResult:
    is_valid: bool
    errors: List[ValidationError] = field(default_factory=list)
    warnings: List[ValidationError] = field(default_factory=list)
    sanitized: Dict[str, Any] = field(default_factory=dict)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp, returning None when it is not one"""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _is_valid_date(value: Any) -> bool:
    if not isinstance(value, str) or not DATE_RE.match(value):
        return False
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def _is_positive_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def _strip_none(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _strip_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_strip_none(v) for v in value if v is not None]
    return value


class ContextValidator:
    """Validates conversation context for consistency and completeness"""

    @classmethod
    def validate(cls, context: Union[ConversationContext, Dict[str, Any]]) -> ContextValidationResult:
        """
        Validate context data.

        Args:
            context: Context envelope or its dictionary form

        Returns:
            ContextValidationResult with errors, warnings and the sanitized dict
        """
        if isinstance(context, ConversationContext):
            data = context.to_dict()
        elif isinstance(context, dict):
            data = _strip_none(copy.deepcopy(context))
        else:
            error = ValidationError("context", "Context must be an object")
            return ContextValidationResult(False, [error], [], {})

        errors: List[ValidationError] = []
        warnings: List[ValidationError] = []

        errors.extend(cls._validate_unknown_fields(data))
        errors.extend(cls._validate_shapes(data))
        if any(e.field in RECORD_FIELDS or e.field in LIST_FIELDS for e in errors):
            return ContextValidationResult(False, errors, warnings, data)
        cls._validate_counters(data, errors, warnings)
        errors.extend(cls._validate_metadata_timestamps(data))
        errors.extend(cls._validate_shift_response(data.get("shift_response")))
        errors.extend(cls._validate_schedule_modification(data.get("schedule_modification")))
        errors.extend(cls._validate_emergency(data.get("emergency")))
        errors.extend(cls._validate_overtime(data.get("overtime")))
        errors.extend(cls._validate_information_requests(data.get("information_requests")))
        errors.extend(cls._validate_contact_updates(data.get("contact_updates")))
        warnings.extend(cls._consistency_warnings(data))

        return ContextValidationResult(
            is_valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
            sanitized=data,
        )

    @staticmethod
    def _validate_unknown_fields(data: Dict[str, Any]) -> List[ValidationError]:
        known = set(ConversationContext.field_names())
        return [
            ValidationError(key, "Unknown context field")
            for key in data
            if key not in known
        ]

    @staticmethod
    def _validate_shapes(data: Dict[str, Any]) -> List[ValidationError]:
        errors = []
        for name in RECORD_FIELDS:
            if name in data and not isinstance(data[name], dict):
                errors.append(ValidationError(name, "Must be an object"))
        for name in LIST_FIELDS:
            if name in data and not isinstance(data[name], list):
                errors.append(ValidationError(name, "Must be a list"))
        registration = data.get("registration")
        if isinstance(registration, dict) and "step" in registration \
                and registration["step"] not in {s.value for s in RegistrationStep}:
            errors.append(ValidationError("registration.step", "Unknown registration step"))
        return errors

    @staticmethod
    def _validate_counters(data: Dict[str, Any], errors: List[ValidationError],
                           warnings: List[ValidationError]):
        for name in COUNTER_FIELDS:
            if name not in data:
                continue
            value = data[name]
            if isinstance(value, bool) or not isinstance(value, int):
                errors.append(ValidationError(name, "Counter must be an integer"))
            elif value < 0:
                data[name] = 0
                warnings.append(ValidationError(name, "Counter was negative, reset to 0", "warning"))

    @staticmethod
    def _validate_metadata_timestamps(data: Dict[str, Any]) -> List[ValidationError]:
        errors = []
        for name in ("conversation_started", "last_activity"):
            if name in data and parse_timestamp(data[name]) is None:
                errors.append(ValidationError(name, "Invalid timestamp"))
        return errors

    @staticmethod
    def _validate_shift_response(shift: Optional[Dict[str, Any]]) -> List[ValidationError]:
        if not shift:
            return []
        errors = []
        if "shift_date" in shift and not _is_valid_date(shift["shift_date"]):
            errors.append(ValidationError("shift_response.shift_date", "Date must be YYYY-MM-DD"))
        deadline = shift.get("time_request_deadline")
        if deadline is not None and parse_timestamp(deadline) is None:
            errors.append(ValidationError("shift_response.time_request_deadline", "Invalid deadline"))
        return errors

    @staticmethod
    def _validate_schedule_modification(schedule: Optional[Dict[str, Any]]) -> List[ValidationError]:
        if not schedule:
            return []
        errors = []
        if schedule.get("kind") not in SCHEDULE_KINDS:
            errors.append(ValidationError("schedule_modification.kind", "Unknown modification kind"))
        for name in ("original_time", "requested_time"):
            value = schedule.get(name)
            if value is not None and not (isinstance(value, str) and TIME_RE.match(value)):
                errors.append(ValidationError(f"schedule_modification.{name}", "Time must be HH:MM"))
        return errors

    @staticmethod
    def _validate_emergency(emergency: Optional[Dict[str, Any]]) -> List[ValidationError]:
        if not emergency:
            return []
        errors = []
        if emergency.get("kind") not in EMERGENCY_KINDS:
            errors.append(ValidationError("emergency.kind", "Unknown emergency kind"))
        details = emergency.get("details") or {}
        delay = details.get("delay_minutes")
        if delay is not None:
            delay_ok = (isinstance(delay, int) and not isinstance(delay, bool) and delay >= 0) or \
                (isinstance(delay, str) and delay.isdigit())
            if not delay_ok:
                errors.append(ValidationError("emergency.details.delay_minutes", "Delay must be a number of minutes"))
        severity = details.get("severity")
        if severity is not None and severity not in SEVERITIES:
            errors.append(ValidationError("emergency.details.severity", "Severity must be low, medium or high"))
        return errors

    @staticmethod
    def _validate_overtime(overtime: Optional[Dict[str, Any]]) -> List[ValidationError]:
        if not overtime:
            return []
        errors = []
        if not _is_positive_number(overtime.get("additional_hours")):
            errors.append(ValidationError("overtime.additional_hours", "Additional hours must be positive"))
        if not _is_positive_number(overtime.get("hourly_rate")):
            errors.append(ValidationError("overtime.hourly_rate", "Hourly rate must be positive"))
        return errors

    @staticmethod
    def _validate_information_requests(entries: Optional[List[Any]]) -> List[ValidationError]:
        if entries is None:
            return []
        if not isinstance(entries, list):
            return [ValidationError("information_requests", "Must be a list")]
        errors = []
        for index, entry in enumerate(entries):
            name = f"information_requests[{index}]"
            if not isinstance(entry, dict):
                errors.append(ValidationError(name, "Entry must be an object"))
                continue
            if not entry.get("kind") or not entry.get("question"):
                errors.append(ValidationError(name, "Entry needs kind and question"))
            if parse_timestamp(entry.get("timestamp")) is None:
                errors.append(ValidationError(name, "Entry needs a valid timestamp"))
        return errors

    @staticmethod
    def _validate_contact_updates(entries: Optional[List[Any]]) -> List[ValidationError]:
        if entries is None:
            return []
        if not isinstance(entries, list):
            return [ValidationError("contact_updates", "Must be a list")]
        errors = []
        for index, entry in enumerate(entries):
            name = f"contact_updates[{index}]"
            if not isinstance(entry, dict):
                errors.append(ValidationError(name, "Entry must be an object"))
                continue
            if not entry.get("kind") or not entry.get("new_value"):
                errors.append(ValidationError(name, "Entry needs kind and new_value"))
            if parse_timestamp(entry.get("timestamp")) is None:
                errors.append(ValidationError(name, "Entry needs a valid timestamp"))
            if entry.get("kind") == "phone_number" and entry.get("new_value") \
                    and not PHONE_RE.match(str(entry["new_value"])):
                errors.append(ValidationError(name, "Phone number must be + followed by 10-15 digits"))
        return errors

    @staticmethod
    def _consistency_warnings(data: Dict[str, Any]) -> List[ValidationError]:
        warnings = []
        registration = data.get("registration") or {}
        if registration.get("code") and not registration.get("worker_name"):
            warnings.append(ValidationError("registration", "Registration code present but no name yet", "warning"))
        shift = data.get("shift_response") or {}
        if shift.get("shift_id") and not shift.get("shift_title"):
            warnings.append(ValidationError("shift_response", "Shift id present but no title", "warning"))
        return warnings
