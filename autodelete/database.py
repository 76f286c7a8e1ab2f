# autodelete/database.py

import json
import sqlite3
import threading
import datetime
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Dict, FrozenSet, Optional, Tuple, TypeVar

from autodelete.models import OFF, ChatStatus, GeneralTimer, ScheduleWindow
from autodelete.utils import format_clock_time, parse_duration_ms

logger = logging.getLogger(__name__)

T = TypeVar("T")
Record = Optional[Dict[str, Any]]

TIMER_KEY = "timer"
SCHEDULE_KEY = "schedule"
WHITELIST_KEY = "whitelist"


class ChatConfigStore(ABC):
    """
    Настройки чатов: общий таймер, расписание и белый список.

    Наследники реализуют три примитива по ключу (chat_id, key): чтение,
    атомарное чтение-изменение-запись и удаление. Отсутствующая запись
    читается как 'не задано', а не как ошибка.
    """

    def __init__(self, default_duration: str = "15m", utc_offset_hours: int = 6):
        if parse_duration_ms(default_duration) is None:
            raise ValueError(f"Некорректная длительность по умолчанию: {default_duration!r}")
        self.default_duration = default_duration
        self.utc_offset_hours = utc_offset_hours

    # === Примитивы ===

    @abstractmethod
    def _read(self, chat_id: int, key: str) -> Record:
        ...

    @abstractmethod
    def _modify(self, chat_id: int, key: str, fn: Callable[[Record], Tuple[Record, T]]) -> T:
        """Атомарно применяет fn к записи; fn возвращает (новая запись, результат)."""

    @abstractmethod
    def _delete(self, chat_id: int, key: str) -> None:
        ...

    # === Общий таймер ===

    def get_general_timer(self, chat_id: int) -> GeneralTimer:
        return GeneralTimer.from_dict(self._read(chat_id, TIMER_KEY))

    def set_general_timer(self, chat_id: int, value: str) -> GeneralTimer:
        """
        Сохраняет 'off' или длительность.

        Raises:
            ValueError: если value не 'off' и не длительность
        """
        value = value.strip().lower()
        if value != OFF and parse_duration_ms(value) is None:
            raise ValueError(f"Некорректная длительность: {value!r}")
        timer = GeneralTimer(value=value)
        self._modify(chat_id, TIMER_KEY, lambda _: (timer.to_dict(), None))
        logger.info(f"⏰ Чат {chat_id}: общий таймер = {value}")
        return timer

    def reset_general_timer(self, chat_id: int) -> None:
        self._delete(chat_id, TIMER_KEY)
        logger.info(f"⏰ Чат {chat_id}: общий таймер сброшен на системный ({self.default_duration})")

    # === Расписание ===

    def get_schedule(self, chat_id: int) -> Optional[ScheduleWindow]:
        data = self._read(chat_id, SCHEDULE_KEY)
        if not data:
            return None
        return ScheduleWindow.from_dict(data, utc_offset_hours=self.utc_offset_hours)

    def merge_schedule_start(self, chat_id: int, start_minute: int, delete_duration: str) -> ScheduleWindow:
        """Задаёт начало окна и длительность удаления, не трогая время окончания."""
        delete_duration = delete_duration.strip().lower()
        if parse_duration_ms(delete_duration) is None:
            raise ValueError(f"Некорректная длительность: {delete_duration!r}")

        def merge(record: Record):
            data = dict(record or {})
            data["start_time"] = format_clock_time(start_minute)
            data["delete_duration"] = delete_duration
            data["timezone"] = f"GMT{self.utc_offset_hours:+d}"
            return data, data

        merged = self._modify(chat_id, SCHEDULE_KEY, merge)
        logger.info(f"🗓️ Чат {chat_id}: начало расписания {merged['start_time']}, удаление через {delete_duration}")
        return ScheduleWindow.from_dict(merged, utc_offset_hours=self.utc_offset_hours)

    def merge_schedule_end(self, chat_id: int, end_minute: int) -> ScheduleWindow:
        """Задаёт время окончания окна, не трогая начало и длительность."""
        def merge(record: Record):
            data = dict(record or {})
            data["end_time"] = format_clock_time(end_minute)
            data.setdefault("timezone", f"GMT{self.utc_offset_hours:+d}")
            return data, data

        merged = self._modify(chat_id, SCHEDULE_KEY, merge)
        logger.info(f"🗓️ Чат {chat_id}: окончание расписания {merged['end_time']}")
        return ScheduleWindow.from_dict(merged, utc_offset_hours=self.utc_offset_hours)

    # === Белый список ===

    def get_whitelist(self, chat_id: int) -> FrozenSet[int]:
        data = self._read(chat_id, WHITELIST_KEY)
        return frozenset(int(x) for x in (data or {}).get("user_ids", []))

    def is_whitelisted(self, chat_id: int, user_id: int) -> bool:
        return user_id in self.get_whitelist(chat_id)

    def add_to_whitelist(self, chat_id: int, user_id: int) -> bool:
        """Returns: True, если пользователь уже был в списке."""
        def add(record: Record):
            ids = set((record or {}).get("user_ids", []))
            already_present = user_id in ids
            ids.add(user_id)
            return {"user_ids": sorted(ids)}, already_present

        already_present = self._modify(chat_id, WHITELIST_KEY, add)
        if not already_present:
            logger.info(f"✅ Чат {chat_id}: пользователь {user_id} добавлен в белый список")
        return already_present

    def remove_from_whitelist(self, chat_id: int, user_id: int) -> bool:
        """Returns: True, если пользователь был в списке."""
        def remove(record: Record):
            ids = set((record or {}).get("user_ids", []))
            was_present = user_id in ids
            ids.discard(user_id)
            return {"user_ids": sorted(ids)}, was_present

        was_present = self._modify(chat_id, WHITELIST_KEY, remove)
        if was_present:
            logger.info(f"🗑️ Чат {chat_id}: пользователь {user_id} удалён из белого списка")
        return was_present

    # === Сводка ===

    def get_status(self, chat_id: int) -> ChatStatus:
        return ChatStatus(
            chat_id=chat_id,
            general_timer=self.get_general_timer(chat_id),
            default_duration=self.default_duration,
            schedule=self.get_schedule(chat_id),
            whitelist=self.get_whitelist(chat_id),
        )


class InMemoryChatConfigStore(ChatConfigStore):
    """Хранилище в памяти процесса; настройки теряются при перезапуске."""

    def __init__(self, default_duration: str = "15m", utc_offset_hours: int = 6):
        super().__init__(default_duration, utc_offset_hours)
        self._records: Dict[Tuple[int, str], Dict[str, Any]] = {}
        self._lock = threading.RLock()

    def _read(self, chat_id: int, key: str) -> Record:
        with self._lock:
            record = self._records.get((chat_id, key))
            return json.loads(json.dumps(record)) if record is not None else None

    def _modify(self, chat_id, key, fn):
        with self._lock:
            current = self._read(chat_id, key)
            new_record, result = fn(current)
            if new_record is None:
                self._records.pop((chat_id, key), None)
            else:
                self._records[(chat_id, key)] = new_record
            return result

    def _delete(self, chat_id: int, key: str) -> None:
        with self._lock:
            self._records.pop((chat_id, key), None)


class SqliteChatConfigStore(ChatConfigStore):
    """Хранилище в SQLite: по одной JSON-записи на (chat_id, key)."""

    def __init__(self, database_path: str, default_duration: str = "15m", utc_offset_hours: int = 6):
        super().__init__(default_duration, utc_offset_hours)
        self.database_path = database_path
        # Глобальный lock для SQLite (на случай многопоточности)
        self._db_lock = threading.RLock()
        self.init_db()

    def init_db(self):
        """Создаёт таблицу настроек при необходимости."""
        with self.get_db_connection() as conn:
            conn.execute('PRAGMA journal_mode=WAL;')
            conn.execute('''
                CREATE TABLE IF NOT EXISTS chat_settings (
                    chat_id INTEGER NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (chat_id, key)
                )
            ''')
        logger.info(f"База данных {self.database_path} инициализирована.")

    @contextmanager
    def get_db_connection(self):
        """Контекстный менеджер для подключения к SQLite в режиме autocommit."""
        with self._db_lock:
            conn = sqlite3.connect(
                self.database_path,
                check_same_thread=False,
                timeout=20,
                isolation_level=None
            )
            conn.execute('PRAGMA busy_timeout = 20000;')
            try:
                yield conn
            finally:
                conn.close()

    @staticmethod
    def _select(conn: sqlite3.Connection, chat_id: int, key: str) -> Record:
        row = conn.execute(
            "SELECT value FROM chat_settings WHERE chat_id = ? AND key = ?",
            (chat_id, key)
        ).fetchone()
        return json.loads(row[0]) if row else None

    def _read(self, chat_id: int, key: str) -> Record:
        with self.get_db_connection() as conn:
            return self._select(conn, chat_id, key)

    def _modify(self, chat_id, key, fn):
        with self.get_db_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                new_record, result = fn(self._select(conn, chat_id, key))
                if new_record is None:
                    conn.execute(
                        "DELETE FROM chat_settings WHERE chat_id = ? AND key = ?",
                        (chat_id, key)
                    )
                else:
                    conn.execute('''
                        INSERT INTO chat_settings (chat_id, key, value, updated_at)
                        VALUES (?, ?, ?, ?)
                        ON CONFLICT(chat_id, key) DO UPDATE SET
                            value = excluded.value,
                            updated_at = excluded.updated_at
                    ''', (
                        chat_id, key, json.dumps(new_record),
                        datetime.datetime.utcnow().isoformat()
                    ))
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
            return result

    def _delete(self, chat_id: int, key: str) -> None:
        with self.get_db_connection() as conn:
            conn.execute(
                "DELETE FROM chat_settings WHERE chat_id = ? AND key = ?",
                (chat_id, key)
            )


def create_store(
    backend: str,
    database_path: str = "autodelete.db",
    default_duration: str = "15m",
    utc_offset_hours: int = 6
) -> ChatConfigStore:
    """Создаёт хранилище по имени бэкенда ('memory' или 'sqlite')."""
    if backend == "memory":
        return InMemoryChatConfigStore(default_duration, utc_offset_hours)
    if backend == "sqlite":
        return SqliteChatConfigStore(database_path, default_duration, utc_offset_hours)
    raise ValueError(f"Неизвестный STORAGE_BACKEND: {backend!r}")
