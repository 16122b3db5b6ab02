"""Conversation and domain storage backends"""

from .base import ConversationStore, DomainLookups, ConversationNotFoundError
from .memory import InMemoryConversationStore, InMemoryDomainLookups
from .postgres import PostgresConversationStore, PostgresDomainLookups, ensure_schema

__all__ = [
    'ConversationStore',
    'DomainLookups',
    'ConversationNotFoundError',
    'InMemoryConversationStore',
    'InMemoryDomainLookups',
    'PostgresConversationStore',
    'PostgresDomainLookups',
    'ensure_schema',
]
