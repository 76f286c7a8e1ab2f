# web_api.py

import datetime
import hmac
import logging
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Request, status
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, validator
from telegram import Update

import config
from autodelete.models import OFF
from autodelete.utils import MAX_SCHEDULABLE_MS, is_schedulable_duration, parse_duration_ms
from bot import Services, build_application, configure_logging

configure_logging()
logger = logging.getLogger(__name__)

# === Инициализация FastAPI ===
app = FastAPI(title="Telegram Media Auto-Delete Bot")
app.state.application = None
app.state.services = None


# === Модели данных ===
class TimerUpdate(BaseModel):
    value: str

    @validator('value')
    def validate_value(cls, v):
        v = v.strip().lower()
        if v in (OFF, "default"):
            return v
        if parse_duration_ms(v) is None:
            raise ValueError('Must be a duration like 10s, 5m, 1h, or "off" / "default"')
        if not is_schedulable_duration(v):
            raise ValueError(f'Duration is too long, the maximum is {MAX_SCHEDULABLE_MS // 3_600_000}h')
        return v


class ScheduleInfo(BaseModel):
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    delete_duration: Optional[str] = None
    timezone: str


class ChatStatusResponse(BaseModel):
    chat_id: int
    general_timer: Optional[str] = None
    effective_general_timer: str
    schedule: Optional[ScheduleInfo] = None
    schedule_active_config: bool
    whitelist_size: int


# === Вспомогательные функции ===
def require_services() -> Services:
    services = app.state.services
    if services is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Bot is not initialised")
    return services


def check_secret(x_secret: Optional[str]):
    if config.WEB_API_SECRET and not hmac.compare_digest((x_secret or "").encode(), config.WEB_API_SECRET.encode()):
        raise HTTPException(status_code=403, detail="Invalid secret")


def webhook_path_secret() -> str:
    return config.WEBHOOK_SECRET or config.BOT_TOKEN


# === Жизненный цикл ===
@app.on_event("startup")
async def on_startup():
    if app.state.services is not None:
        return
    if not config.BOT_TOKEN:
        raise RuntimeError("TELEGRAM_BOT_TOKEN не задан")

    application = build_application(config.BOT_TOKEN)
    await application.initialize()
    services = application.bot_data["services"]
    services.job_scheduler.start()
    app.state.application = application
    app.state.services = services
    logger.info("🤖 Бот инициализирован для работы через webhook")

    if config.APP_URL:
        webhook_url = f"https://{config.APP_URL}/webhook/{webhook_path_secret()}"
        try:
            await application.bot.set_webhook(
                url=webhook_url,
                secret_token=config.WEBHOOK_SECRET or None,
                allowed_updates=Update.ALL_TYPES
            )
            logger.info(f"✅ Webhook установлен на https://{config.APP_URL}/webhook/***")
        except Exception as e:
            logger.error(f"❌ Ошибка установки webhook: {e}")
    else:
        logger.warning("⚠️ APP_URL не задан, webhook не регистрируется")


@app.on_event("shutdown")
async def on_shutdown():
    application = app.state.application
    services = app.state.services
    if services is not None and services.job_scheduler.running:
        services.job_scheduler.shutdown(wait=False)
    if application is not None:
        await application.shutdown()


# === Эндпоинты ===
@app.post("/webhook/{secret}", summary="Telegram webhook")
async def telegram_webhook(
    secret: str,
    request: Request,
    x_telegram_bot_api_secret_token: Optional[str] = Header(None)
):
    """Принимает обновление от Telegram и передаёт его обработчикам бота."""
    expected = webhook_path_secret()
    if not expected or not hmac.compare_digest(secret.encode(), expected.encode()):
        raise HTTPException(status_code=403, detail="Invalid webhook path")
    if config.WEBHOOK_SECRET and not hmac.compare_digest(
        (x_telegram_bot_api_secret_token or "").encode(), config.WEBHOOK_SECRET.encode()
    ):
        raise HTTPException(status_code=403, detail="Invalid secret token")

    application = app.state.application
    if application is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Bot is not initialised")

    update = Update.de_json(await request.json(), application.bot)
    await application.process_update(update)
    return {"ok": True}


@app.get("/health", summary="Health check")
async def health_check():
    services = app.state.services
    return {
        "status": "ok" if services is not None else "starting",
        "pending_deletions": len(services.deletion_scheduler.pending) if services is not None else 0,
        "timestamp": datetime.datetime.utcnow().isoformat()
    }


@app.get("/metrics", summary="Prometheus metrics")
async def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/chats/{chat_id}/status", response_model=ChatStatusResponse, summary="Chat configuration")
async def chat_status(chat_id: int, x_secret: Optional[str] = Header(None)):
    check_secret(x_secret)
    services = require_services()
    return services.store.get_status(chat_id).to_dict()


@app.put("/chats/{chat_id}/timer", response_model=ChatStatusResponse, summary="Set general timer")
async def set_chat_timer(chat_id: int, request: TimerUpdate, x_secret: Optional[str] = Header(None)):
    check_secret(x_secret)
    services = require_services()
    if request.value == "default":
        services.store.reset_general_timer(chat_id)
    else:
        services.store.set_general_timer(chat_id, request.value)
    logger.info(f"⏰ Web API: чат {chat_id}, таймер = {request.value}")
    return services.store.get_status(chat_id).to_dict()


# === Запуск сервера ===
if __name__ == "__main__":
    import uvicorn
    logger.info(f"🚀 Запуск веб-API на порту {config.PORT}...")
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
