# bot.py

import logging
from dataclasses import dataclass
from functools import wraps
from typing import Optional

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.base import BaseScheduler
from telegram import Update
from telegram.constants import ParseMode
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

import config
from authorization import AuthorizationGate
from autodelete.database import ChatConfigStore, create_store
from autodelete.models import OFF, ChatStatus, EffectiveDelay, MediaEvent
from autodelete.platform import TelegramPlatform
from autodelete.utils import (
    MAX_SCHEDULABLE_MS, escape_markdown_v2, format_clock_time, is_schedulable_duration,
    parse_clock_time, parse_duration_ms
)
from scheduler_logic import DeletionScheduler, process_media
from timer_policy import MinuteProvider, TimerPolicy

logger = logging.getLogger(__name__)

MEDIA_FILTER = (
    filters.PHOTO | filters.VIDEO | filters.ANIMATION | filters.Document.ALL | filters.VIDEO_NOTE
)

WELCOME_TEXT = """👋 Welcome to Auto-Delete Media Bot!

📌 To use this bot:
1. Add it to your group.
2. Make it admin with delete permissions.
3. Use /settimer 15m or /settimer off (admins only)
4. Use /status to view settings

⚙️ Commands:
  /settimer <duration|off|default> – Set auto-delete timer (e.g., 10s, 5m, 1h) (Admins only)
  /schedule <HH:MM_start> <delete_duration> – Schedule active timer ({tz}) (Admins only)
  /scheduleoff <HH:MM_end> – Schedule timer off ({tz}) (Admins only)
  /whitelist_add, /whitelist_remove – Reply to a user's message to exempt them (Admins only)
  /status – Show current configuration

📸 Media with a time in caption (e.g., 'my pic 30s') will use that specific time for deletion (works for all users)."""

TOO_LONG_TEXT = f'⚠️ Duration is too long. The maximum is {MAX_SCHEDULABLE_MS // 3_600_000}h.'


@dataclass
class Services:
    store: ChatConfigStore
    policy: TimerPolicy
    deletion_scheduler: DeletionScheduler
    gate: AuthorizationGate
    platform: TelegramPlatform
    job_scheduler: BaseScheduler
    command_cleanup: EffectiveDelay
    reply_to_unauthorized: bool = True
    footer: str = ""


def command_cleanup_delay(value: str) -> EffectiveDelay:
    """'off' или длительность из COMMAND_CLEANUP_DELAY."""
    value = value.strip().lower()
    if value == OFF:
        return EffectiveDelay.off(source="command")
    ms = parse_duration_ms(value)
    if ms is None:
        raise ValueError(f"Некорректный COMMAND_CLEANUP_DELAY: {value!r}")
    return EffectiveDelay(ms=ms, source="command", label=value)


def build_services(
    platform: TelegramPlatform,
    store: ChatConfigStore,
    job_scheduler: BaseScheduler,
    status_requires_admin: bool = False,
    reply_to_unauthorized: bool = True,
    command_cleanup: str = "10s",
    footer: str = "",
    clock: Optional[MinuteProvider] = None
) -> Services:
    return Services(
        store=store,
        policy=TimerPolicy(store, clock=clock),
        deletion_scheduler=DeletionScheduler(platform.delete_message, job_scheduler),
        gate=AuthorizationGate(platform.get_membership_role, status_requires_admin),
        platform=platform,
        job_scheduler=job_scheduler,
        command_cleanup=command_cleanup_delay(command_cleanup),
        reply_to_unauthorized=reply_to_unauthorized,
        footer=footer,
    )


# === Вспомогательные функции ===

def get_services(context: ContextTypes.DEFAULT_TYPE) -> Services:
    return context.bot_data["services"]


async def reply(context: ContextTypes.DEFAULT_TYPE, chat_id: int, text: str):
    services = get_services(context)
    await context.bot.send_message(
        chat_id=chat_id,
        text=escape_markdown_v2(text) + services.footer,
        parse_mode=ParseMode.MARKDOWN_V2
    )


def cleanup_command(services: Services, update: Update):
    """Ставит удаление самого сообщения с командой."""
    message = update.effective_message
    if message is None:
        return
    services.deletion_scheduler.schedule(update.effective_chat.id, message.message_id, services.command_cleanup)


def sender_chat_id(update: Update) -> Optional[int]:
    message = update.effective_message
    if message is not None and message.sender_chat is not None:
        return message.sender_chat.id
    return None


def admin_required(func):
    """Пускает к команде только админов группы; сообщение с командой удаляется в любом случае."""
    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE):
        services = get_services(context)
        chat = update.effective_chat
        user = update.effective_user
        cleanup_command(services, update)

        allowed = await services.gate.can_mutate(
            chat.id, chat.type, user.id if user else None, sender_chat_id(update)
        )
        if not allowed:
            logger.info(f"🚫 Чат {chat.id}: пользователю {user.id if user else None} отказано в /{func.__name__}")
            if services.reply_to_unauthorized:
                await reply(context, chat.id, "🚫 Only admins can use this command.")
            return
        return await func(update, context)
    return wrapper


def format_status(status: ChatStatus, bot_can_delete: Optional[bool] = True) -> str:
    lines = ["📊 Current Bot Configuration:", ""]

    timer = status.general_timer
    if timer.is_off:
        lines.append("⏰ General Timer: OFF")
    elif timer.is_unset:
        lines.append(f"⏰ General Timer: Deletes after {status.default_duration} (default)")
    else:
        lines.append(f"⏰ General Timer: Deletes after {timer.value}")

    schedule = status.schedule
    if schedule is not None and schedule.is_complete:
        ends = format_clock_time(schedule.end_minute) if schedule.end_minute is not None \
            else "Not set (runs indefinitely or until /scheduleoff)"
        lines.append(f"🗓️ Scheduled Active Period ({schedule.timezone_label}):")
        lines.append(f"   - Starts: {format_clock_time(schedule.start_minute)}")
        lines.append(f"   - Deletion during schedule: After {schedule.delete_duration}")
        lines.append(f"   - Ends: {ends}")
    else:
        lines.append("🗓️ Scheduled Active Period: Not configured or OFF.")

    lines.append(f"🛡️ Whitelisted users: {len(status.whitelist)}")

    if bot_can_delete is False:
        lines.append("⚠️ I can't delete messages here. Make me an admin with delete permission.")
    elif bot_can_delete is None:
        lines.append("❔ Delete permission: unknown")

    lines.append("")
    lines.append("📸 Media with a time in caption (e.g., 'pic 30s') will use that specific time.")
    return "\n".join(lines)


# === Команды ===

async def start(update: Update, context: ContextTypes.DEFAULT_TYPE):
    services = get_services(context)
    tz = f"GMT{services.store.utc_offset_hours:+d}"
    await reply(context, update.effective_chat.id, WELCOME_TEXT.format(tz=tz))


@admin_required
async def settimer(update: Update, context: ContextTypes.DEFAULT_TYPE):
    services = get_services(context)
    chat_id = update.effective_chat.id

    if len(context.args) != 1:
        await reply(context, chat_id, '⚠️ Usage: /settimer <duration|off|default>, e.g. /settimer 15m')
        return

    value = context.args[0].strip().lower()
    if value == "default":
        services.store.reset_general_timer(chat_id)
        text = f'⏰ Auto-delete timer reset to the default ({services.store.default_duration}).'
    elif value == OFF:
        services.store.set_general_timer(chat_id, OFF)
        text = '⏰ Auto-delete timer is now OFF.'
    elif is_schedulable_duration(value):
        services.store.set_general_timer(chat_id, value)
        text = f'⏰ Auto-delete timer set to {value}.'
    elif parse_duration_ms(value) is not None:
        text = TOO_LONG_TEXT
    else:
        text = '⚠️ Invalid duration format. Use "10s", "5m", "1h", or "off".'
    await reply(context, chat_id, text)


@admin_required
async def schedule(update: Update, context: ContextTypes.DEFAULT_TYPE):
    services = get_services(context)
    chat_id = update.effective_chat.id

    if len(context.args) != 2:
        await reply(
            context, chat_id,
            '⚠️ Invalid format. Use: /schedule <HH:MM_start> <delete_duration>\nExample: /schedule 22:00 5m'
        )
        return

    start_minute = parse_clock_time(context.args[0])
    delete_duration = context.args[1].lower()
    if start_minute is None or parse_duration_ms(delete_duration) is None:
        await reply(
            context, chat_id,
            '⚠️ Invalid time or duration format.\nStart time: HH:MM. Delete duration: 5m, 10s, 1h.'
        )
        return
    if not is_schedulable_duration(delete_duration):
        await reply(context, chat_id, TOO_LONG_TEXT)
        return

    window = services.store.merge_schedule_start(chat_id, start_minute, delete_duration)
    tz = window.timezone_label
    text = f'🗓️ Timer scheduled to be active from {format_clock_time(window.start_minute)} ({tz}).'
    if window.end_minute is not None:
        text += f' It will turn off at {format_clock_time(window.end_minute)} ({tz}).'
    else:
        text += ' No specific off time set yet (use /scheduleoff HH:MM).'
    text += f'\nDuring this active period, media will be deleted after {delete_duration}.'
    await reply(context, chat_id, text)


@admin_required
async def scheduleoff(update: Update, context: ContextTypes.DEFAULT_TYPE):
    services = get_services(context)
    chat_id = update.effective_chat.id

    end_minute = parse_clock_time(context.args[0]) if len(context.args) == 1 else None
    if end_minute is None:
        await reply(context, chat_id, '⚠️ Invalid time format. End time should be HH:MM (e.g., 08:00).')
        return

    window = services.store.merge_schedule_end(chat_id, end_minute)
    tz = window.timezone_label
    text = f'🗓️ Scheduled timer will now turn off at {format_clock_time(end_minute)} ({tz}).'
    if window.is_complete:
        text += (
            f'\nIt is active from {format_clock_time(window.start_minute)} ({tz}) '
            f'deleting media after {window.delete_duration}.'
        )
    else:
        text += '\nℹ️ Note: Schedule start time and delete duration are not set. Use /schedule HH:MM <duration>.'
    await reply(context, chat_id, text)


def whitelist_target(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Optional[int]:
    """Автор сообщения, на которое ответили, иначе числовой аргумент."""
    replied = update.effective_message.reply_to_message
    if replied is not None and replied.from_user is not None:
        return replied.from_user.id
    if context.args and context.args[0].lstrip('-').isdigit():
        return int(context.args[0])
    return None


@admin_required
async def whitelist_add(update: Update, context: ContextTypes.DEFAULT_TYPE):
    services = get_services(context)
    chat_id = update.effective_chat.id
    user_id = whitelist_target(update, context)
    if user_id is None:
        await reply(context, chat_id, '⚠️ Reply to a message of the user you want to whitelist.')
        return

    if services.store.add_to_whitelist(chat_id, user_id):
        await reply(context, chat_id, f'ℹ️ User {user_id} is already whitelisted.')
    else:
        await reply(context, chat_id, f'✅ User {user_id} added to the whitelist. Their media will not be deleted.')


@admin_required
async def whitelist_remove(update: Update, context: ContextTypes.DEFAULT_TYPE):
    services = get_services(context)
    chat_id = update.effective_chat.id
    user_id = whitelist_target(update, context)
    if user_id is None:
        await reply(context, chat_id, '⚠️ Reply to a message of the user you want to remove from the whitelist.')
        return

    if services.store.remove_from_whitelist(chat_id, user_id):
        await reply(context, chat_id, f'🗑️ User {user_id} removed from the whitelist.')
    else:
        await reply(context, chat_id, f'ℹ️ User {user_id} is not in the whitelist.')


async def status(update: Update, context: ContextTypes.DEFAULT_TYPE):
    services = get_services(context)
    chat = update.effective_chat
    user = update.effective_user
    cleanup_command(services, update)

    allowed = await services.gate.can_view_status(
        chat.id, chat.type, user.id if user else None, sender_chat_id(update)
    )
    if not allowed:
        if services.reply_to_unauthorized:
            await reply(context, chat.id, "🚫 Only admins can use this command.")
        return

    bot_can_delete = True
    if chat.type != "private":
        bot_can_delete = await services.platform.can_delete_messages(chat.id)
    await reply(context, chat.id, format_status(services.store.get_status(chat.id), bot_can_delete))


# === Медиа ===

async def handle_media(update: Update, context: ContextTypes.DEFAULT_TYPE):
    services = get_services(context)
    message = update.effective_message
    user = update.effective_user
    event = MediaEvent(
        chat_id=update.effective_chat.id,
        message_id=message.message_id,
        author_id=user.id if user else None,
        caption=(message.caption or "").strip()
    )
    process_media(event, services.store, services.policy, services.deletion_scheduler)


async def on_error(update: object, context: ContextTypes.DEFAULT_TYPE):
    logger.error(f"❌ Ошибка при обработке обновления {update}", exc_info=context.error)


# === Запуск ===

def register_handlers(application: Application):
    application.add_handler(CommandHandler(["start", "help"], start))
    application.add_handler(CommandHandler("settimer", settimer))
    application.add_handler(CommandHandler("schedule", schedule))
    application.add_handler(CommandHandler("scheduleoff", scheduleoff))
    application.add_handler(CommandHandler("whitelist_add", whitelist_add))
    application.add_handler(CommandHandler("whitelist_remove", whitelist_remove))
    application.add_handler(CommandHandler("status", status))
    application.add_handler(MessageHandler(MEDIA_FILTER & filters.UpdateType.MESSAGE, handle_media))
    application.add_error_handler(on_error)


async def _post_init(application: Application):
    get_services_from_app(application).job_scheduler.start()
    logger.info("⏱️ Планировщик удалений запущен")


async def _post_shutdown(application: Application):
    job_scheduler = get_services_from_app(application).job_scheduler
    if job_scheduler.running:
        job_scheduler.shutdown(wait=False)


def get_services_from_app(application: Application) -> Services:
    return application.bot_data["services"]


def build_application(token: str, store: Optional[ChatConfigStore] = None) -> Application:
    application = (
        Application.builder()
        .token(token)
        .post_init(_post_init)
        .post_shutdown(_post_shutdown)
        .build()
    )
    if store is None:
        store = create_store(
            config.STORAGE_BACKEND,
            database_path=config.DATABASE_PATH,
            default_duration=config.DEFAULT_TIMER_DURATION,
            utc_offset_hours=config.SCHEDULE_UTC_OFFSET_HOURS
        )
    application.bot_data["services"] = build_services(
        TelegramPlatform(application.bot),
        store,
        AsyncIOScheduler(timezone=pytz.UTC),
        status_requires_admin=config.STATUS_REQUIRES_ADMIN,
        reply_to_unauthorized=config.REPLY_TO_UNAUTHORIZED,
        command_cleanup=config.COMMAND_CLEANUP_DELAY,
        footer=config.REPLY_FOOTER,
    )
    register_handlers(application)
    return application


def configure_logging():
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    # httpx пишет URL с токеном бота
    logging.getLogger("httpx").setLevel(logging.WARNING)


def main():
    configure_logging()
    if not config.BOT_TOKEN:
        raise RuntimeError("TELEGRAM_BOT_TOKEN не задан")

    application = build_application(config.BOT_TOKEN)
    logger.info("🤖 Запуск бота в режиме polling...")
    application.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
