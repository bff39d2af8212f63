import pytest
from sqlalchemy.exc import IntegrityError

from handoff_app.models.chat_schemas import ConversationMapping
from handoff_app.models.conversation_mapping import ConversationMappingRecord
from handoff_app.services.conversation_mapping_service import SqlConversationStateStore
from handoff_app.utils import db_utils


def _mapping(session_id="s1", internal="c1", external="ext1", user_id="u1", now="2025-01-01T10:00:00+00:00"):
    return ConversationMapping.handed_off(session_id, internal, external, user_id, now=now)


@pytest.fixture
def sql_store(app):
    return SqlConversationStateStore()


def _row_count():
    with db_utils.get_db_session() as session:
        return session.query(ConversationMappingRecord).count()


def test_round_trip_by_every_key(sql_store):
    mapping = _mapping()

    sql_store.put(mapping)

    assert sql_store.get_by_session("s1") == mapping
    assert sql_store.get_by_internal_conversation("c1") == mapping
    assert sql_store.get_by_external("ext1") == mapping
    assert sql_store.is_handed_off("s1") is True


def test_put_overwrites_single_row(sql_store):
    sql_store.put(_mapping(external="ext-old"))
    replacement = _mapping(external="ext-new", now="2025-01-02T10:00:00+00:00")

    sql_store.put(replacement)

    assert _row_count() == 1
    assert sql_store.get_by_external("ext-old") is None
    assert sql_store.get_by_external("ext-new") == replacement


def test_conflicting_put_leaves_no_partial_index(sql_store):
    sql_store.put(_mapping("s1", "c1", "ext1"))

    # Reuses c1 under a new session: the unique index rejects the whole row.
    with pytest.raises(IntegrityError):
        sql_store.put(_mapping("s2", "c1", "ext2"))

    assert sql_store.get_by_session("s2") is None
    assert sql_store.get_by_external("ext2") is None
    assert sql_store.get_by_internal_conversation("c1").session_id == "s1"
    assert _row_count() == 1


def test_clear_and_clear_all(sql_store):
    sql_store.put(_mapping("s1", "c1", "ext1"))
    sql_store.put(_mapping("s2", "c2", "ext2", now="2025-01-01T11:00:00+00:00"))

    assert [m.session_id for m in sql_store.all()] == ["s1", "s2"]
    assert sql_store.clear("s1") is True
    assert sql_store.clear("s1") is False
    assert sql_store.get_by_internal_conversation("c1") is None
    assert sql_store.clear_all() == 1
    assert sql_store.all() == []


def test_handoff_flag_never_drops(sql_store):
    handed_off = _mapping()
    sql_store.put(handed_off)

    sql_store.put(handed_off.model_copy(update={"handoff_to_human": False}))

    assert sql_store.is_handed_off("s1") is True
