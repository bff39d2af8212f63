import pytest
from unittest.mock import patch, MagicMock

from handoff_app.models.chat_schemas import ConversationMapping
from handoff_app.services.errors import GatewayResult, NetworkError, UpstreamError

from conftest import make_handoff_response

CHAT_BODY = {"message": "I need help", "user_id": "u1", "session_id": "s1", "auth_token": "user-token"}


def _hand_off(store, session_id="s1"):
    store.put(ConversationMapping.handed_off(session_id, "c1", "ext1", "u1", now="2025-01-01T10:00:00+00:00"))


def test_chat_returns_assistant_response(client, installed_router):
    resp = client.post('/api/v1/chat', json=CHAT_BODY)

    assert resp.status_code == 200
    data = resp.get_json()
    assert data["success"] is True
    assert data["response"] == "Hello from the assistant"
    assert data["handoff_to_human"] is False


def test_chat_validation_error_is_400(client, installed_router, assistant_gateway):
    resp = client.post('/api/v1/chat', json={"message": "hi", "user_id": "u1"})

    assert resp.status_code == 400
    data = resp.get_json()
    assert data["success"] is False
    assert data["error_type"] == "validation_error"
    assert assistant_gateway.send_message.call_count == 0


def test_chat_rejects_non_object_body(client, installed_router):
    resp = client.post('/api/v1/chat', data="not json", content_type="text/plain")
    assert resp.status_code == 400


def test_chat_rejects_wrongly_typed_fields(client, installed_router):
    resp = client.post('/api/v1/chat', json={**CHAT_BODY, "stream": {"nested": True}})
    assert resp.status_code == 400
    assert "stream" in resp.get_json()["error_details"]["invalid_fields"]


@pytest.mark.parametrize("error, status", [
    (UpstreamError("Failed to send chat message", status=500, body="err"), 502),
    (NetworkError("Internal error while sending chat message"), 502),
])
def test_chat_gateway_errors_map_to_502(client, installed_router, assistant_gateway, error, status):
    assistant_gateway.send_message.return_value = GatewayResult.fail(error)

    resp = client.post('/api/v1/chat', json=CHAT_BODY)

    assert resp.status_code == status
    assert resp.get_json()["error_type"] == error.error_type


def test_chat_missing_identity_is_404(client, installed_router, store):
    _hand_off(store, session_id="s-unlinked")

    resp = client.post('/api/v1/chat', json={**CHAT_BODY, "session_id": "s-unlinked", "user_id": "nobody"})

    assert resp.status_code == 404
    assert resp.get_json()["error_type"] == "missing_identity"


def test_chat_partial_success_is_502(client, installed_router, store, human_agent_gateway):
    _hand_off(store)
    human_agent_gateway.get_conversation.return_value = GatewayResult.fail(NetworkError("reset"))

    resp = client.post('/api/v1/chat', json=CHAT_BODY)

    assert resp.status_code == 502
    assert resp.get_json()["error_type"] == "partial_success"


def test_chat_handoff_then_human_reply(client, installed_router, assistant_gateway):
    assistant_gateway.send_message.return_value = GatewayResult.ok(make_handoff_response("ext1"))

    first = client.post('/api/v1/chat', json=CHAT_BODY).get_json()
    second = client.post('/api/v1/chat', json=CHAT_BODY).get_json()

    assert first["handoff_to_human"] is True
    assert second["response"] == "On it!"
    assert second["metadata"]["freshchat_conversation_id"] == "ext1"
    assert assistant_gateway.send_message.call_count == 1


@patch('handoff_app.celery_tasks.route_chat_message_task.delay')
def test_chat_async_enqueues_task(mock_delay, client, installed_router):
    mock_delay.return_value = MagicMock(id="task-123")

    resp = client.post('/api/v1/chat/async', json=CHAT_BODY)

    assert resp.status_code == 202
    assert resp.get_json()["task_id"] == "task-123"
    payload = mock_delay.call_args.args[0]
    assert payload["session_id"] == "s1"
    assert payload["message"] == "I need help"


@patch('handoff_app.celery_tasks.route_chat_message_task.delay')
def test_chat_async_validates_before_enqueue(mock_delay, client, installed_router):
    resp = client.post('/api/v1/chat/async', json={"message": "hi"})

    assert resp.status_code == 400
    mock_delay.assert_not_called()


def test_mapping_endpoints(client, installed_router, store):
    _hand_off(store)

    assert client.get('/api/v1/mappings').get_json()["count"] == 1
    assert client.get('/api/v1/mappings/session/s1').get_json()["external_conversation_id"] == "ext1"
    assert client.get('/api/v1/mappings/conversation/c1').get_json()["session_id"] == "s1"
    assert client.get('/api/v1/mappings/external/ext1').get_json()["session_id"] == "s1"
    assert client.get('/api/v1/mappings/external/nope').status_code == 404
    assert client.get('/api/v1/mappings/session/s1/handoff').get_json() == {
        "session_id": "s1", "handoff_to_human": True,
    }


def test_delete_mapping(client, installed_router, store):
    _hand_off(store)

    assert client.delete('/api/v1/mappings/session/s1').status_code == 200
    assert client.delete('/api/v1/mappings/session/s1').status_code == 404
    assert store.get_by_external("ext1") is None


def test_clear_all_mappings(client, installed_router, store):
    _hand_off(store, "s1")
    store.put(ConversationMapping.handed_off("s2", "c2", "ext2", "u2"))

    resp = client.delete('/api/v1/mappings')

    assert resp.get_json() == {"status": "ok", "cleared": 2}
    assert store.all() == []


def test_link_identities(client, installed_router, identity_resolver):
    resp = client.post('/api/v1/identities', json={"session_id": "s9", "user_id": "u9", "platform_user_id": "pu9"})

    assert resp.status_code == 201
    assert resp.get_json()["linked"] == {"session": True, "platform_user": True}
    assert identity_resolver.resolve_platform_user_id("s9") == "pu9"


def test_link_identities_requires_user(client, installed_router):
    resp = client.post('/api/v1/identities', json={"session_id": "s9"})
    assert resp.status_code == 400


def test_health(client):
    resp = client.get('/api/health')

    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok", "database_connected": True}
