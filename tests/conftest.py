# /tests/conftest.py
import sys
import os
import pytest
from flask import Flask
from unittest.mock import MagicMock

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
os.environ.setdefault('FLASK_ENV', 'testing')

from handoff_app import create_app
from handoff_app.config import Config
from handoff_app.models import Base
from handoff_app.models.chat_schemas import ChatRequest, UnifiedChatResponse
from handoff_app.models.platform_schemas import PlatformConversation, SentMessage
from handoff_app.services.assistant_gateway import AssistantGateway
from handoff_app.services.errors import GatewayResult
from handoff_app.services.human_agent_gateway import HumanAgentGateway
from handoff_app.services.identity_service import InMemoryIdentityResolver
from handoff_app.services.router import ConversationRouter
from handoff_app.services.routing_service import ROUTER_EXTENSION_KEY
from handoff_app.services.state_store import InMemoryConversationStateStore
from handoff_app.utils import db_utils

FIXED_NOW = "2025-01-01T12:00:00+00:00"


class TestingConfig(Config):
    """In-memory SQLite, in-memory state store, no external services."""
    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    DATABASE_URL = "sqlite://"
    SQLALCHEMY_ECHO = False
    STATE_STORE_BACKEND = "memory"
    ASSISTANT_API_URL = "http://assistant.test"
    HUMAN_AGENT_API_URL = "http://platform.test/v2"
    HUMAN_AGENT_API_TOKEN = "platform-token"
    task_always_eager = True


@pytest.fixture(scope='session')
def app() -> Flask:
    """ Creates the test application instance using the factory. """
    test_app = create_app(TestingConfig)
    with test_app.app_context():
        assert db_utils.create_all_tables()
    yield test_app


@pytest.fixture(autouse=True)
def _reset_state(app: Flask):
    """ Drops the cached router and empties every table after each test. """
    yield
    app.extensions.pop(ROUTER_EXTENSION_KEY, None)
    with db_utils.get_db_session() as session:
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()


@pytest.fixture(scope='function')
def client(app: Flask):
    """ Provides a Flask test client. """
    return app.test_client()


# --- Router building blocks ---

def make_chat_response(**overrides) -> UnifiedChatResponse:
    data = {
        "response": "Hello from the assistant",
        "display_items": {},
        "handoff_to_human": False,
        "session_id": "s1",
        "conversation_id": "c1",
        "user_id": "u1",
        "billing_session_count": 1,
        "is_new_session": True,
        "timestamp": "2025-01-01T11:59:00+00:00",
        "metadata": {},
    }
    data.update(overrides)
    return UnifiedChatResponse.model_validate(data)


def make_handoff_response(external_id="ext1", **overrides) -> UnifiedChatResponse:
    overrides.setdefault("response", "Connecting you to a human agent")
    return make_chat_response(
        handoff_to_human=True,
        metadata={"freshchat_conversation_id": external_id},
        **overrides,
    )


def make_conversation(last_actor="agent", last_content="On it!", external_id="ext1") -> PlatformConversation:
    return PlatformConversation.model_validate({
        "conversation_id": external_id,
        "status": "assigned",
        "messages": [
            {"actor_type": "user", "actor_id": "pu1", "message_parts": [{"text": {"content": "I need help"}}]},
            {"actor_type": last_actor, "actor_id": "agent-7", "message_parts": [{"text": {"content": last_content}}]},
        ],
        "users": [{"id": "pu1"}],
    })


@pytest.fixture
def chat_request() -> ChatRequest:
    return ChatRequest(message="I need help", user_id="u1", session_id="s1", auth_token="user-token")


@pytest.fixture
def assistant_gateway():
    gateway = MagicMock(spec=AssistantGateway)
    gateway.send_message.return_value = GatewayResult.ok(make_chat_response())
    return gateway


@pytest.fixture
def human_agent_gateway():
    gateway = MagicMock(spec=HumanAgentGateway)
    gateway.send_message.return_value = GatewayResult.ok(SentMessage(message_id="m1", message_data={"id": "m1"}))
    gateway.get_conversation.return_value = GatewayResult.ok(make_conversation())
    return gateway


@pytest.fixture
def store():
    return InMemoryConversationStateStore()


@pytest.fixture
def identity_resolver():
    return InMemoryIdentityResolver(session_users={"s1": "u1"}, platform_users={"u1": "pu1"})


@pytest.fixture
def router(store, assistant_gateway, human_agent_gateway, identity_resolver):
    return ConversationRouter(
        store=store,
        assistant_gateway=assistant_gateway,
        human_agent_gateway=human_agent_gateway,
        identity_resolver=identity_resolver,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def installed_router(app: Flask, router):
    """ Makes ``router`` the one the API blueprint and Celery task use. """
    app.extensions[ROUTER_EXTENSION_KEY] = router
    return router
