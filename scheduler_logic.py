# scheduler_logic.py
import logging
import datetime
import uuid
from typing import Awaitable, Callable, Dict, List, Optional

import pytz
from apscheduler.schedulers.base import BaseScheduler
from telegram.error import BadRequest, Forbidden, TelegramError

from autodelete import metrics
from autodelete.database import ChatConfigStore
from autodelete.models import DeletionOutcome, EffectiveDelay, MediaEvent, PendingDeletion
from timer_policy import TimerPolicy

logger = logging.getLogger(__name__)

DeleteAction = Callable[[int, int], Awaitable[None]]


def classify_deletion_error(error: BaseException) -> DeletionOutcome:
    """
    BadRequest ('message to delete not found', 'message can't be deleted') и
    Forbidden (бота лишили прав) не временные: сообщение уже не удалить.
    Всё остальное (сеть, таймауты, RetryAfter) считается сбоем.
    """
    if isinstance(error, (BadRequest, Forbidden)):
        return DeletionOutcome.ALREADY_GONE
    return DeletionOutcome.FAILED


class DeletionScheduler:
    """
    Одноразовые таймеры удаления сообщений.

    Каждое сообщение получает свою задачу в APScheduler, задержка
    фиксируется в момент постановки. Отмены нет: задача либо удаляет
    сообщение, либо логирует неудачу. Повторных попыток нет.
    """

    def __init__(
        self,
        delete_action: DeleteAction,
        job_scheduler: BaseScheduler,
        now: Optional[Callable[[], datetime.datetime]] = None
    ):
        self.delete_action = delete_action
        self.job_scheduler = job_scheduler
        self.now = now or (lambda: datetime.datetime.now(pytz.UTC))
        self._pending: Dict[str, PendingDeletion] = {}

    @property
    def pending(self) -> List[PendingDeletion]:
        return list(self._pending.values())

    def schedule(self, chat_id: int, message_id: int, delay: EffectiveDelay) -> Optional[PendingDeletion]:
        """
        Ставит удаление сообщения через delay.

        Returns:
            PendingDeletion или None, если таймер не поставлен ('off', 0 или
            срок за пределами datetime)
        """
        if delay.is_off:
            logger.info(f"⏹️ Чат {chat_id}: автоудаление выключено, сообщение {message_id} остаётся")
            return None

        if delay.ms <= 0:
            metrics.DELETIONS_SUPPRESSED.inc()
            logger.warning(
                f"⚠️ Чат {chat_id}: нулевой таймер \"{delay.label}\" для сообщения {message_id}. "
                f"Удаление не планируется."
            )
            return None

        try:
            fire_at = self.now() + datetime.timedelta(milliseconds=delay.ms)
        except OverflowError:
            metrics.DELETIONS_SUPPRESSED.inc()
            logger.warning(
                f"⚠️ Чат {chat_id}: таймер \"{delay.label}\" слишком велик для сообщения {message_id}. "
                f"Удаление не планируется."
            )
            return None

        pending = PendingDeletion(
            job_id=f"del_{chat_id}_{message_id}_{uuid.uuid4().hex[:8]}",
            chat_id=chat_id,
            message_id=message_id,
            fire_at=fire_at,
            delay=delay
        )
        self.job_scheduler.add_job(
            self.fire,
            trigger="date",
            run_date=fire_at,
            args=[pending],
            id=pending.job_id,
            misfire_grace_time=None
        )
        self._pending[pending.job_id] = pending
        metrics.DELETIONS_ARMED.inc()
        metrics.PENDING_DELETIONS.set(len(self._pending))
        logger.info(
            f"⏳ Чат {chat_id}: сообщение {message_id} будет удалено через {delay.label} "
            f"({delay.ms} мс, источник: {delay.source})"
        )
        return pending

    async def fire(self, pending: PendingDeletion) -> DeletionOutcome:
        """Удаляет сообщение по истечении таймера и классифицирует результат."""
        chat_id, message_id = pending.chat_id, pending.message_id
        try:
            await self.delete_action(chat_id, message_id)
            outcome = DeletionOutcome.DELETED
            logger.info(f"🗑️ Чат {chat_id}: сообщение {message_id} удалено спустя {pending.delay.label}")
        except Exception as e:
            outcome = classify_deletion_error(e)
            if outcome is DeletionOutcome.ALREADY_GONE:
                logger.info(f"ℹ️ Чат {chat_id}: сообщение {message_id} уже не удалить: {e}")
            elif isinstance(e, TelegramError):
                logger.error(f"❌ Чат {chat_id}: не удалось удалить сообщение {message_id}: {e!r}")
            else:
                logger.exception(f"❌ Неожиданная ошибка при удалении сообщения {message_id} в чате {chat_id}: {e}")
        finally:
            self._pending.pop(pending.job_id, None)
            metrics.PENDING_DELETIONS.set(len(self._pending))

        metrics.DELETIONS_COMPLETED.labels(outcome=outcome.value).inc()
        return outcome


def process_media(
    event: MediaEvent,
    store: ChatConfigStore,
    policy: TimerPolicy,
    deletion_scheduler: DeletionScheduler
) -> Optional[PendingDeletion]:
    """
    Обрабатывает входящее медиа: проверяет белый список, выбирает задержку
    и ставит удаление.
    """
    if event.author_id is not None and store.is_whitelisted(event.chat_id, event.author_id):
        metrics.MEDIA_PROCESSED.labels(source="whitelist").inc()
        logger.info(
            f"🛡️ Чат {event.chat_id}: пользователь {event.author_id} в белом списке, "
            f"сообщение {event.message_id} не удаляется"
        )
        return None

    delay = policy.resolve(event.chat_id, event.caption)
    metrics.MEDIA_PROCESSED.labels(source=delay.source).inc()
    return deletion_scheduler.schedule(event.chat_id, event.message_id, delay)
