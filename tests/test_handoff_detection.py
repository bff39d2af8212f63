from handoff_app.models.chat_schemas import ConversationMapping, HumanHandling
from handoff_app.services.handoff_detection import MappingUpdate, apply_mapping_update, extract_mapping_update

from conftest import make_chat_response, make_handoff_response

FIELD = "freshchat_conversation_id"


def test_no_update_without_handoff_flag():
    response = make_chat_response(metadata={FIELD: "ext1"})
    assert extract_mapping_update(response, FIELD) is None


def test_no_update_without_external_id():
    response = make_chat_response(handoff_to_human=True, metadata={"other": "x"})
    assert extract_mapping_update(response, FIELD) is None


def test_update_carries_all_ids():
    update = extract_mapping_update(make_handoff_response("ext1"), FIELD)

    assert update == MappingUpdate(
        session_id="s1",
        internal_conversation_id="c1",
        external_conversation_id="ext1",
        user_id="u1",
        last_message_timestamp="2025-01-01T11:59:00+00:00",
    )


def test_external_id_field_is_configurable():
    response = make_chat_response(handoff_to_human=True, metadata={"zendesk_ticket": 42})
    update = extract_mapping_update(response, "zendesk_ticket")
    assert update.external_conversation_id == "42"


def test_apply_creates_handed_off_mapping():
    update = extract_mapping_update(make_handoff_response("ext1"), FIELD)

    mapping = apply_mapping_update(None, update, now="2025-01-01T12:00:00+00:00")

    assert mapping.handoff_to_human is True
    assert mapping.state == HumanHandling(external_conversation_id="ext1")
    assert mapping.created_at == "2025-01-01T12:00:00+00:00"
    assert mapping.updated_at == "2025-01-01T12:00:00+00:00"
    assert mapping.last_message_timestamp == "2025-01-01T11:59:00+00:00"


def test_apply_keeps_created_at_of_existing_mapping():
    existing = ConversationMapping.handed_off("s1", "c0", "ext0", "u1", now="2024-12-31T09:00:00+00:00")
    update = extract_mapping_update(make_handoff_response("ext1"), FIELD)

    mapping = apply_mapping_update(existing, update, now="2025-01-01T12:00:00+00:00")

    assert mapping.created_at == "2024-12-31T09:00:00+00:00"
    assert mapping.internal_conversation_id == "c1"
    assert mapping.external_conversation_id == "ext1"
