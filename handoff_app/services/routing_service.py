# handoff_app/services/routing_service.py
# -*- coding: utf-8 -*-
"""Builds the ConversationRouter and its collaborators from app configuration."""
import logging
from typing import Any, Mapping

from flask import current_app
from redis import Redis

from .assistant_gateway import AssistantGateway
from .conversation_mapping_service import SqlConversationStateStore
from .human_agent_gateway import HumanAgentGateway
from .identity_service import IdentityResolver, InMemoryIdentityResolver, SqlIdentityResolver
from .router import ConversationRouter
from .state_store import (
    ConversationStateStore,
    InMemoryConversationStateStore,
    RedisConversationStateStore,
)

logger = logging.getLogger(__name__)

ROUTER_EXTENSION_KEY = 'handoff_router'


def _app_redis_client() -> Redis:
    """The app's shared Redis client, created from REDIS_URL when create_app could not build one."""
    client = getattr(current_app, 'redis_client', None)
    if client is None:
        client = Redis.from_url(current_app.config['REDIS_URL'])
        current_app.redis_client = client
        logger.info("Redis client created for the conversation state store.")
    return client


def build_state_store(config: Mapping[str, Any], redis_client=None) -> ConversationStateStore:
    backend = (config.get('STATE_STORE_BACKEND') or 'sql').lower()
    if backend == 'redis':
        if redis_client is None:
            redis_client = _app_redis_client()
        return RedisConversationStateStore(redis_client, key_prefix=config.get('STATE_STORE_KEY_PREFIX', 'handoff:'))
    if backend == 'memory':
        return InMemoryConversationStateStore()
    if backend != 'sql':
        logger.warning(f"Unknown STATE_STORE_BACKEND '{backend}'; using 'sql'.")
    return SqlConversationStateStore()


def build_identity_resolver(config: Mapping[str, Any]) -> IdentityResolver:
    if (config.get('STATE_STORE_BACKEND') or 'sql').lower() == 'memory':
        return InMemoryIdentityResolver()
    return SqlIdentityResolver()


def build_router(config: Mapping[str, Any], redis_client=None) -> ConversationRouter:
    store = build_state_store(config, redis_client=redis_client)
    assistant_gateway = AssistantGateway(
        base_url=config.get('ASSISTANT_API_URL'),
        dev_auth_token=config.get('ASSISTANT_DEV_AUTH_TOKEN', 'demo_token'),
        timeout=config.get('ASSISTANT_TIMEOUT_SECONDS', 30.0),
    )
    human_agent_gateway = HumanAgentGateway(
        base_url=config.get('HUMAN_AGENT_API_URL'),
        api_token=config.get('HUMAN_AGENT_API_TOKEN', ''),
        timeout=config.get('HUMAN_AGENT_TIMEOUT_SECONDS', 30.0),
        assume_identity=config.get('HUMAN_AGENT_ASSUME_IDENTITY', False),
    )
    router = ConversationRouter(
        store=store,
        assistant_gateway=assistant_gateway,
        human_agent_gateway=human_agent_gateway,
        identity_resolver=build_identity_resolver(config),
        external_id_field=config.get('EXTERNAL_CONVERSATION_ID_FIELD', 'freshchat_conversation_id'),
        fallback_response=config.get('HUMAN_AGENT_FALLBACK_RESPONSE', 'Message sent to human agent'),
    )
    logger.info(
        f"ConversationRouter built with {type(store).__name__}, assistant at {assistant_gateway.base_url}, "
        f"human-agent platform at {human_agent_gateway.base_url}."
    )
    return router


def get_router() -> ConversationRouter:
    """Returns the router for the current app, building it on first use."""
    router = current_app.extensions.get(ROUTER_EXTENSION_KEY)
    if router is None:
        router = build_router(current_app.config)
        current_app.extensions[ROUTER_EXTENSION_KEY] = router
    return router
