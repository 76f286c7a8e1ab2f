import pytest
from telegram.error import NetworkError

from authorization import AuthorizationGate

from conftest import GROUP_ID, FakePlatform


@pytest.fixture
def gate(platform):
    return AuthorizationGate(platform.get_membership_role)


async def test_private_chat_is_always_allowed(gate, platform):
    assert await gate.can_mutate(555, "private", 3)
    assert platform.role_queries == []


async def test_anonymous_admin_acting_as_the_chat(gate, platform):
    assert await gate.can_mutate(GROUP_ID, "supergroup", 1087968824, sender_chat_id=GROUP_ID)
    assert platform.role_queries == []


async def test_foreign_sender_chat_is_not_enough(gate):
    assert not await gate.can_mutate(GROUP_ID, "supergroup", 3, sender_chat_id=-100555)


@pytest.mark.parametrize("user_id, expected", [(1, True), (2, True), (3, False), (99, False)])
async def test_membership_role(gate, user_id, expected):
    assert await gate.can_mutate(GROUP_ID, "group", user_id) is expected


async def test_missing_actor_is_denied(gate):
    assert not await gate.can_mutate(GROUP_ID, "supergroup", None)


async def test_membership_query_failure_denies():
    platform = FakePlatform(roles={1: "administrator"}, role_error=NetworkError("timeout"))
    gate = AuthorizationGate(platform.get_membership_role)
    assert not await gate.can_mutate(GROUP_ID, "supergroup", 1)


async def test_status_open_to_everyone_by_default(gate, platform):
    assert await gate.can_view_status(GROUP_ID, "supergroup", 3)
    assert platform.role_queries == []


async def test_status_gated_when_configured(platform):
    gate = AuthorizationGate(platform.get_membership_role, status_requires_admin=True)
    assert not await gate.can_view_status(GROUP_ID, "supergroup", 3)
    assert await gate.can_view_status(GROUP_ID, "supergroup", 1)
    assert await gate.can_view_status(555, "private", 3)
