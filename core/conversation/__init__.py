"""
Core conversation handling system.

This package provides the SMS conversation engine with:
- Intent classification over German free text
- Context management with typed per-topic records
- Reply templates
- Table-driven state transitions and per-topic handlers
"""

from .context import (
    ContextManager,
    ConversationContext,
    ContextImportError,
)
from .understanding import (
    IntentClassifier,
    IntentType,
    Intent,
)
from .templates import MessageTemplates
from .orchestration import (
    Trigger,
    TransitionRules,
    TransitionError,
)
from .handlers import (
    HandlerRegistry,
    BaseHandler,
    SideEffect,
    SideEffectKind,
)
from .engine import ConversationEngine, TransitionResult

__all__ = [
    # Context
    'ContextManager',
    'ConversationContext',
    'ContextImportError',

    # Understanding
    'IntentClassifier',
    'IntentType',
    'Intent',

    # Templates
    'MessageTemplates',

    # Orchestration
    'Trigger',
    'TransitionRules',
    'TransitionError',

    # Handlers
    'HandlerRegistry',
    'BaseHandler',
    'SideEffect',
    'SideEffectKind',

    # Engine
    'ConversationEngine',
    'TransitionResult',
]
