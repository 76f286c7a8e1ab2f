# autodelete/platform.py

import logging
from typing import Optional

from telegram import Bot
from telegram.constants import ChatMemberStatus
from telegram.error import TelegramError

logger = logging.getLogger(__name__)


class TelegramPlatform:
    """Тонкая обёртка над Bot: только те вызовы, которые нужны ядру."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        await self.bot.delete_message(chat_id=chat_id, message_id=message_id)

    async def get_membership_role(self, chat_id: int, user_id: int) -> str:
        member = await self.bot.get_chat_member(chat_id, user_id)
        return str(member.status)

    async def can_delete_messages(self, chat_id: int) -> Optional[bool]:
        """
        Проверяет, может ли бот удалять сообщения в чате.

        Returns:
            True/False, либо None если узнать не удалось
        """
        try:
            member = await self.bot.get_chat_member(chat_id, self.bot.id)
        except TelegramError as e:
            logger.warning(f"⚠️ Не удалось проверить права бота в чате {chat_id}: {e}")
            return None
        if member.status == ChatMemberStatus.OWNER:
            return True
        if member.status != ChatMemberStatus.ADMINISTRATOR:
            return False
        return bool(getattr(member, "can_delete_messages", False))
