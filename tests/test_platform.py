from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from telegram import ChatMemberMember, ChatMemberOwner, User
from telegram.constants import ChatMemberStatus
from telegram.error import NetworkError

from autodelete.platform import TelegramPlatform

from conftest import GROUP_ID

BOT_ID = 999


def make_bot(member=None, error=None):
    get_chat_member = AsyncMock(return_value=member, side_effect=error)
    return SimpleNamespace(id=BOT_ID, get_chat_member=get_chat_member, delete_message=AsyncMock())


def user(user_id):
    return User(id=user_id, first_name="Test", is_bot=False)


async def test_delete_message_passes_ids():
    bot = make_bot()
    await TelegramPlatform(bot).delete_message(GROUP_ID, 7)
    bot.delete_message.assert_awaited_once_with(chat_id=GROUP_ID, message_id=7)


@pytest.mark.parametrize("member, expected", [
    (ChatMemberOwner(user=user(2), is_anonymous=False), "creator"),
    (ChatMemberMember(user=user(3)), "member"),
])
async def test_membership_role_is_plain_status_string(member, expected):
    bot = make_bot(member)

    role = await TelegramPlatform(bot).get_membership_role(GROUP_ID, member.user.id)

    assert role == expected
    bot.get_chat_member.assert_awaited_once_with(GROUP_ID, member.user.id)


async def test_membership_role_error_propagates():
    platform = TelegramPlatform(make_bot(error=NetworkError("down")))
    with pytest.raises(NetworkError):
        await platform.get_membership_role(GROUP_ID, 1)


@pytest.mark.parametrize("member, expected", [
    (ChatMemberOwner(user=user(BOT_ID), is_anonymous=False), True),
    (SimpleNamespace(status=ChatMemberStatus.ADMINISTRATOR, can_delete_messages=True), True),
    (SimpleNamespace(status=ChatMemberStatus.ADMINISTRATOR, can_delete_messages=False), False),
    (ChatMemberMember(user=user(BOT_ID)), False),
])
async def test_can_delete_messages(member, expected):
    bot = make_bot(member)

    assert await TelegramPlatform(bot).can_delete_messages(GROUP_ID) is expected
    bot.get_chat_member.assert_awaited_once_with(GROUP_ID, BOT_ID)


async def test_can_delete_messages_unknown_on_error():
    platform = TelegramPlatform(make_bot(error=NetworkError("down")))
    assert await platform.can_delete_messages(GROUP_ID) is None
