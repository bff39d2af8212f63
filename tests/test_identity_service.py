import pytest

from handoff_app.services.identity_service import InMemoryIdentityResolver, SqlIdentityResolver


@pytest.fixture(params=["memory", "sql"])
def resolver(request, app):
    if request.param == "memory":
        return InMemoryIdentityResolver()
    return SqlIdentityResolver()


def test_resolves_through_session_link(resolver):
    assert resolver.link_session_user("s1", "u1") is True
    assert resolver.link_platform_user("u1", "pu1") is True

    assert resolver.resolve_platform_user_id("s1") == "pu1"


def test_session_link_wins_over_request_user(resolver):
    resolver.link_session_user("s1", "u1")
    resolver.link_platform_user("u1", "pu1")
    resolver.link_platform_user("u2", "pu2")

    assert resolver.resolve_platform_user_id("s1", user_id="u2") == "pu1"


def test_request_user_used_when_session_unlinked(resolver):
    resolver.link_platform_user("u2", "pu2")

    assert resolver.resolve_platform_user_id("s-unknown", user_id="u2") == "pu2"


def test_unresolved_identity_is_none(resolver):
    resolver.link_session_user("s1", "u1")

    assert resolver.resolve_platform_user_id("s1") is None
    assert resolver.resolve_platform_user_id("s-unknown") is None


def test_relinking_replaces_platform_user(resolver):
    resolver.link_platform_user("u1", "pu1")
    resolver.link_platform_user("u1", "pu1-new")

    assert resolver.platform_user_for_user("u1") == "pu1-new"


def test_empty_ids_are_rejected(resolver):
    assert resolver.link_session_user("", "u1") is False
    assert resolver.link_platform_user("u1", "") is False
