# autodelete/utils.py

import datetime
import re
from typing import Optional

import pytz

_DURATION_RE = re.compile(r"(\d+)([smh])", re.IGNORECASE | re.ASCII)
_CAPTION_DURATION_RE = re.compile(r"\b(\d+[smh])\b", re.IGNORECASE | re.ASCII)
_CLOCK_RE = re.compile(r"(\d{2}):(\d{2})", re.ASCII)

_UNIT_MS = {
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
}

_MARKDOWN_V2_SPECIAL = "_*[]()~`>#+-=|{}.!\\"


def parse_duration_ms(text: Optional[str]) -> Optional[int]:
    """
    Разбирает длительность вида '10s', '5m', '1h' (регистр не важен).

    Returns:
        Количество миллисекунд (0 допустим) или None, если строка некорректна.
    """
    if not text or not isinstance(text, str):
        return None
    match = _DURATION_RE.fullmatch(text)
    if not match:
        return None
    value, unit = match.groups()
    return int(value) * _UNIT_MS[unit.lower()]


# Самый долгий таймер, который принимают команды: 10 лет
MAX_SCHEDULABLE_MS = 10 * 365 * 24 * 60 * 60 * 1000


def is_schedulable_duration(text: Optional[str]) -> bool:
    """Корректная длительность, которую можно поставить таймером (не дольше MAX_SCHEDULABLE_MS)."""
    ms = parse_duration_ms(text)
    return ms is not None and ms <= MAX_SCHEDULABLE_MS


def find_caption_duration(caption: Optional[str]) -> Optional[str]:
    """Возвращает первую длительность из подписи ('pic 30s' -> '30s') или None."""
    if not caption:
        return None
    match = _CAPTION_DURATION_RE.search(caption)
    if not match:
        return None
    token = match.group(1).lower()
    if parse_duration_ms(token) is None:
        return None
    return token


def parse_clock_time(text: Optional[str]) -> Optional[int]:
    """'HH:MM' -> минута суток, None если формат или значения неверны."""
    if not text:
        return None
    match = _CLOCK_RE.fullmatch(text.strip())
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def format_clock_time(minute_of_day: int) -> str:
    return f"{minute_of_day // 60:02d}:{minute_of_day % 60:02d}"


def minute_of_day(utc_offset_hours: int, now: Optional[datetime.datetime] = None) -> int:
    """
    Текущая минута суток в фиксированном смещении от UTC (без перехода на летнее время).

    Args:
        utc_offset_hours: смещение в часах, например 6 для GMT+6
        now: момент времени (aware или naive UTC), по умолчанию сейчас
    """
    if now is None:
        now = datetime.datetime.now(pytz.UTC)
    elif now.tzinfo is None:
        now = pytz.UTC.localize(now)
    local = now.astimezone(pytz.FixedOffset(utc_offset_hours * 60))
    return local.hour * 60 + local.minute


def escape_markdown_v2(text: Optional[str]) -> str:
    """Экранирует спецсимволы Telegram MarkdownV2."""
    if not isinstance(text, str):
        return ""
    return "".join(f"\\{ch}" if ch in _MARKDOWN_V2_SPECIAL else ch for ch in text)
