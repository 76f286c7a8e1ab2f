# authorization.py
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

ADMIN_ROLES = ("administrator", "creator")

RoleLookup = Callable[[int, int], Awaitable[str]]


class AuthorizationGate:
    """
    Решает, может ли участник менять настройки чата.

    status_requires_admin переключает политику для /status: открыт всем
    участникам (False) или только администраторам, как изменяющие команды (True).
    """

    def __init__(self, get_membership_role: RoleLookup, status_requires_admin: bool = False):
        self.get_membership_role = get_membership_role
        self.status_requires_admin = status_requires_admin

    async def can_mutate(
        self,
        chat_id: int,
        chat_type: str,
        actor_id: Optional[int],
        sender_chat_id: Optional[int] = None
    ) -> bool:
        if chat_type == "private":
            return True

        # Анонимный админ пишет от имени самого чата
        if sender_chat_id is not None and sender_chat_id == chat_id:
            return True

        if actor_id is None:
            return False

        try:
            role = await self.get_membership_role(chat_id, actor_id)
        except Exception as e:
            logger.error(f"❌ Ошибка проверки прав пользователя {actor_id} в чате {chat_id}: {e}")
            return False
        return role in ADMIN_ROLES

    async def can_view_status(
        self,
        chat_id: int,
        chat_type: str,
        actor_id: Optional[int],
        sender_chat_id: Optional[int] = None
    ) -> bool:
        if not self.status_requires_admin:
            return True
        return await self.can_mutate(chat_id, chat_type, actor_id, sender_chat_id)
