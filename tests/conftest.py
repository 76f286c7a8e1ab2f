import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
import pytz

from autodelete.database import InMemoryChatConfigStore
from bot import build_services

GROUP_ID = -1001234567890
NOON = 12 * 60


class FakeJobScheduler:
    """Записывает задачи вместо запуска таймеров; run_all() выполняет их вручную."""

    def __init__(self):
        self.jobs = []
        self.running = False

    def add_job(self, func, trigger=None, run_date=None, args=None, id=None, **kwargs):
        job = SimpleNamespace(func=func, trigger=trigger, run_date=run_date, args=list(args or []), id=id, kwargs=kwargs)
        self.jobs.append(job)
        return job

    def start(self):
        self.running = True

    def shutdown(self, wait=True):
        self.running = False

    async def run_all(self):
        jobs, self.jobs = self.jobs, []
        return [await job.func(*job.args) for job in jobs]


class FakePlatform:
    def __init__(self, roles=None, delete_error=None, role_error=None, can_delete=True):
        self.roles = roles or {}
        self.delete_error = delete_error
        self.role_error = role_error
        self.can_delete = can_delete
        self.deleted = []
        self.role_queries = []

    async def delete_message(self, chat_id, message_id):
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append((chat_id, message_id))

    async def get_membership_role(self, chat_id, user_id):
        self.role_queries.append((chat_id, user_id))
        if self.role_error is not None:
            raise self.role_error
        return self.roles.get(user_id, "member")

    async def can_delete_messages(self, chat_id):
        return self.can_delete


class FixedClock:
    def __init__(self, now):
        self.value = now

    def __call__(self):
        return self.value


@pytest.fixture
def store():
    return InMemoryChatConfigStore(default_duration="15m", utc_offset_hours=6)


@pytest.fixture
def platform():
    return FakePlatform(roles={1: "administrator", 2: "creator", 3: "member"})


@pytest.fixture
def job_scheduler():
    return FakeJobScheduler()


@pytest.fixture
def fixed_now():
    return FixedClock(datetime.datetime(2024, 5, 1, 6, 0, tzinfo=pytz.UTC))


@pytest.fixture
def services(platform, store, job_scheduler):
    return build_services(platform, store, job_scheduler, clock=lambda: NOON)


def make_update(
    chat_id=GROUP_ID,
    chat_type="supergroup",
    user_id=1,
    message_id=100,
    caption=None,
    reply_to=None,
    sender_chat=None
):
    message = SimpleNamespace(
        message_id=message_id,
        caption=caption,
        reply_to_message=reply_to,
        sender_chat=sender_chat
    )
    return SimpleNamespace(
        effective_chat=SimpleNamespace(id=chat_id, type=chat_type),
        effective_user=SimpleNamespace(id=user_id) if user_id is not None else None,
        effective_message=message
    )


def make_context(services, args=None):
    return SimpleNamespace(
        bot=SimpleNamespace(send_message=AsyncMock()),
        bot_data={"services": services},
        args=list(args or [])
    )


def sent_texts(context):
    return [call.kwargs["text"] for call in context.bot.send_message.await_args_list]
