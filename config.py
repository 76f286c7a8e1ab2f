# config.py
import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    return default


# --- Секреты ---
BOT_TOKEN = (os.getenv("TELEGRAM_BOT_TOKEN") or os.getenv("BOT_TOKEN") or "").strip()
WEBHOOK_SECRET = os.getenv("WEBHOOK_SECRET", "").strip()
WEB_API_SECRET = os.getenv("WEB_API_SECRET", "").strip()

# --- Деплой ---
APP_URL = (os.getenv("APP_URL") or os.getenv("RAILWAY_STATIC_URL") or "").strip().rstrip("/")
PORT = int(os.getenv("PORT", "8081"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# --- Хранилище ---
# 'memory' или 'sqlite'
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory").strip().lower()
DATABASE_PATH = os.getenv("DATABASE_PATH", "autodelete.db")

# --- Таймеры ---
DEFAULT_TIMER_DURATION = os.getenv("DEFAULT_TIMER_DURATION", "15m").strip().lower()
SCHEDULE_UTC_OFFSET_HOURS = int(os.getenv("SCHEDULE_UTC_OFFSET_HOURS", "6"))
# Через сколько удалять сами команды ('off': не удалять)
COMMAND_CLEANUP_DELAY = os.getenv("COMMAND_CLEANUP_DELAY", "10s").strip().lower()

# --- Права ---
STATUS_REQUIRES_ADMIN = _env_bool("STATUS_REQUIRES_ADMIN", False)
REPLY_TO_UNAUTHORIZED = _env_bool("REPLY_TO_UNAUTHORIZED", True)

# Добавляется к каждому ответу бота (уже в MarkdownV2)
REPLY_FOOTER = os.getenv("REPLY_FOOTER", "")
