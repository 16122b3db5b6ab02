"""Conversation handlers, one per dialog topic"""

from .base import (
    BaseHandler,
    HandlerRequest,
    HandlerResponse,
    HandlerRegistry,
    SideEffect,
    SideEffectKind,
)
from .registration import RegistrationHandler
from .information import InformationHandler
from .event_response import EventResponseHandler
from .schedule_modification import ScheduleModificationHandler
from .emergency import EmergencyHandler
from .overtime import OvertimeHandler

DEFAULT_HANDLERS = [
    RegistrationHandler,
    EventResponseHandler,
    ScheduleModificationHandler,
    InformationHandler,
    EmergencyHandler,
    OvertimeHandler,
]

__all__ = [
    'BaseHandler',
    'HandlerRequest',
    'HandlerResponse',
    'HandlerRegistry',
    'SideEffect',
    'SideEffectKind',
    'RegistrationHandler',
    'InformationHandler',
    'EventResponseHandler',
    'ScheduleModificationHandler',
    'EmergencyHandler',
    'OvertimeHandler',
    'DEFAULT_HANDLERS',
]
