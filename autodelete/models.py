# autodelete/models.py

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from autodelete.utils import format_clock_time, parse_clock_time, parse_duration_ms

OFF = "off"


@dataclass(frozen=True)
class GeneralTimer:
    """Общий таймер чата: None (не задан, берётся системный), 'off' или длительность ('15m')."""
    value: Optional[str] = None

    @property
    def is_unset(self) -> bool:
        return self.value is None

    @property
    def is_off(self) -> bool:
        return self.value == OFF

    @property
    def duration_ms(self) -> Optional[int]:
        if self.value is None or self.is_off:
            return None
        return parse_duration_ms(self.value)

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "GeneralTimer":
        if not data:
            return cls()
        return cls(value=data.get("value"))


@dataclass
class ScheduleWindow:
    """
    Ежедневное окно активности в фиксированном смещении от UTC.

    Поля заполняются двумя независимыми командами и сливаются по одному,
    поэтому любое из них может отсутствовать.
    """
    start_minute: Optional[int] = None  # минута суток
    end_minute: Optional[int] = None  # None: окно без конца
    delete_duration: Optional[str] = None  # '5m', '30s', ...
    utc_offset_hours: int = 6

    @property
    def active_duration_ms(self) -> Optional[int]:
        if self.delete_duration is None:
            return None
        return parse_duration_ms(self.delete_duration)

    @property
    def is_complete(self) -> bool:
        return self.start_minute is not None and self.active_duration_ms is not None

    @property
    def timezone_label(self) -> str:
        return f"GMT{self.utc_offset_hours:+d}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": format_clock_time(self.start_minute) if self.start_minute is not None else None,
            "end_time": format_clock_time(self.end_minute) if self.end_minute is not None else None,
            "delete_duration": self.delete_duration,
            "timezone": self.timezone_label,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], utc_offset_hours: int = 6) -> "ScheduleWindow":
        start = data.get("start_time")
        end = data.get("end_time")
        return cls(
            start_minute=parse_clock_time(start) if start else None,
            end_minute=parse_clock_time(end) if end else None,
            delete_duration=data.get("delete_duration"),
            utc_offset_hours=utc_offset_hours,
        )


@dataclass(frozen=True)
class EffectiveDelay:
    """Итоговая задержка удаления одного сообщения. ms=None означает 'off'."""
    ms: Optional[int]
    source: str  # 'caption', 'schedule', 'chat', 'default', 'off', 'command'
    label: str = OFF

    @property
    def is_off(self) -> bool:
        return self.ms is None

    @classmethod
    def off(cls, source: str = "off") -> "EffectiveDelay":
        return cls(ms=None, source=source, label=OFF)


@dataclass(frozen=True)
class MediaEvent:
    chat_id: int
    message_id: int
    author_id: Optional[int]
    caption: str = ""


@dataclass(frozen=True)
class PendingDeletion:
    job_id: str
    chat_id: int
    message_id: int
    fire_at: datetime.datetime
    delay: EffectiveDelay


class DeletionOutcome(str, Enum):
    DELETED = "deleted"
    ALREADY_GONE = "already_gone"  # сообщения нет или удалять нельзя
    FAILED = "failed"  # сеть, таймаут, прочее


@dataclass
class ChatStatus:
    chat_id: int
    general_timer: GeneralTimer
    default_duration: str
    schedule: Optional[ScheduleWindow]
    whitelist: FrozenSet[int] = field(default_factory=frozenset)

    @property
    def effective_general_timer(self) -> str:
        if self.general_timer.is_unset:
            return self.default_duration
        return self.general_timer.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chat_id": self.chat_id,
            "general_timer": self.general_timer.value,
            "effective_general_timer": self.effective_general_timer,
            "schedule": self.schedule.to_dict() if self.schedule else None,
            "schedule_active_config": bool(self.schedule and self.schedule.is_complete),
            "whitelist_size": len(self.whitelist),
        }
