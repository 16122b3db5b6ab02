"""Shared pytest fixtures for the shift SMS assistant."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from httpx import AsyncClient, ASGITransport

from core.conversation import ConversationEngine, ContextManager
from core.registration import InMemoryRegistrationCodeRepository
from core.services.conversation_service import ConversationService
from core.services.sms_service import SMSService
from core.storage import InMemoryConversationStore, InMemoryDomainLookups
from models.schemas import Conversation, ConversationState, Shift, Worker


WORKER_PHONE = "+4917012345678"
NEW_PHONE = "+4915112345678"
NOW = datetime(2024, 6, 3, 9, 30)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def worker():
    return Worker(id="w-1", first_name="Max", last_name="Mustermann", phone_number=WORKER_PHONE)


@pytest.fixture
def shift():
    return Shift(
        id="s-1",
        title="Stadtfest Lingen",
        date="2024-06-08",
        start_time="09:00",
        end_time="17:00",
        location="Marktplatz Lingen",
        hourly_rate=14.5,
    )


@pytest.fixture
def lookups(worker, shift):
    return InMemoryDomainLookups(workers=[worker], shifts=[shift])


@pytest.fixture
def code_repository():
    return InMemoryRegistrationCodeRepository(["emsland100"])


@pytest.fixture
def context_manager():
    return ContextManager(clock=lambda: datetime(2024, 6, 3, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def engine(lookups, code_repository, context_manager):
    return ConversationEngine(lookups, code_repository=code_repository, context_manager=context_manager)


@pytest.fixture
def make_conversation(context_manager):
    """Build a conversation in a given state with an optional context."""

    def _make(state=ConversationState.IDLE, context=None, shift_id=None, phone=WORKER_PHONE):
        ctx = context if context is not None else context_manager.create()
        return Conversation(
            id="c-1",
            channel_address=phone,
            shift_id=shift_id,
            state=state,
            context=ctx.to_dict(),
            expires_at=datetime(2024, 6, 4, 9, 30),
        )

    return _make


@pytest.fixture
def twilio_client():
    client = MagicMock()
    client.messages.create.return_value = MagicMock(sid="SM123", status="queued")
    return client


@pytest.fixture
def sms(twilio_client):
    return SMSService(account_sid="AC1", auth_token="token", from_number="+4940123456",
                      retry_base_delay=0,
                      client=twilio_client)


@pytest.fixture
def store():
    return InMemoryConversationStore()


@pytest.fixture
def service(engine, store, lookups, code_repository, sms):
    return ConversationService(engine, store, lookups, code_repository, sms=sms)


@pytest.fixture
async def client(service):
    """Async HTTP client against the app with an in-memory conversation service."""
    from main import app
    from api.routes.sms_webhook import get_conversation_service

    app.dependency_overrides[get_conversation_service] = lambda: service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
