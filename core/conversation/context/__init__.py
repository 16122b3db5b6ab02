"""Context management components"""

from .models import (
    ConversationContext,
    RegistrationContext,
    RegistrationStep,
    ShiftResponseContext,
    ScheduleModificationContext,
    InformationRequest,
    EmergencyContext,
    EmergencyDetails,
    OvertimeContext,
    ContactUpdate,
    Severity,
)
from .manager import ContextManager, ContextImportError
from .validators import ContextValidator, ContextValidationResult, ValidationError

__all__ = [
    'ConversationContext',
    'RegistrationContext',
    'RegistrationStep',
    'ShiftResponseContext',
    'ScheduleModificationContext',
    'InformationRequest',
    'EmergencyContext',
    'EmergencyDetails',
    'OvertimeContext',
    'ContactUpdate',
    'Severity',
    'ContextManager',
    'ContextImportError',
    'ContextValidator',
    'ContextValidationResult',
    'ValidationError',
]
