# timer_policy.py
import logging
import math
from typing import Callable, Optional

from autodelete.database import ChatConfigStore
from autodelete.models import EffectiveDelay, ScheduleWindow
from autodelete.utils import find_caption_duration, minute_of_day, parse_duration_ms

logger = logging.getLogger(__name__)

# Возвращает текущую минуту суток в смещении расписания
MinuteProvider = Callable[[], int]


def is_window_active(window: Optional[ScheduleWindow], current_minute: int) -> bool:
    """
    Проверяет, попадает ли current_minute в ежедневное окно [start, end).

    Незаполненное окно (нет начала или длительности) никогда не активно.
    Без времени окончания окно открыто до конца суток и дальше. Если
    start > end, окно переходит через полночь (22:00-08:00). При start == end
    окно нулевой ширины и не активно.
    """
    if window is None or not window.is_complete:
        return False
    start = window.start_minute
    end = window.end_minute if window.end_minute is not None else math.inf
    if start <= end:
        return start <= current_minute < end
    return current_minute >= start or current_minute < end


class TimerPolicy:
    """
    Выбирает задержку удаления для одного медиа-сообщения.

    Порядок, первое совпадение побеждает: длительность в подписи, активное
    расписание, общий таймер чата ('off' останавливает цепочку), системное
    значение по умолчанию.
    """

    def __init__(self, store: ChatConfigStore, clock: Optional[MinuteProvider] = None):
        self.store = store
        self.clock = clock or (lambda: minute_of_day(store.utc_offset_hours))

    def resolve(self, chat_id: int, caption: Optional[str], clock: Optional[MinuteProvider] = None) -> EffectiveDelay:
        caption_token = find_caption_duration(caption)
        if caption_token is not None:
            logger.info(f"📝 Чат {chat_id}: таймер из подписи \"{caption_token}\"")
            return EffectiveDelay(ms=parse_duration_ms(caption_token), source="caption", label=caption_token)

        schedule = self.store.get_schedule(chat_id)
        if schedule is not None and schedule.is_complete:
            current = (clock or self.clock)()
            if is_window_active(schedule, current):
                logger.info(f"🗓️ Чат {chat_id}: активно расписание, таймер \"{schedule.delete_duration}\"")
                return EffectiveDelay(
                    ms=schedule.active_duration_ms,
                    source="schedule",
                    label=schedule.delete_duration
                )

        timer = self.store.get_general_timer(chat_id)
        if timer.is_off:
            return EffectiveDelay.off()
        if timer.duration_ms is not None:
            return EffectiveDelay(ms=timer.duration_ms, source="chat", label=timer.value)

        default = self.store.default_duration
        return EffectiveDelay(ms=parse_duration_ms(default), source="default", label=default)
