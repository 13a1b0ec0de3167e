import asyncio
from typing import Optional

import pytest

from arsychat.services.broadcast_service import BroadcastEngine
from arsychat.services.directory.base import UserDirectory
from arsychat.services.llm.base import CompletionProvider, LLMResponse
from arsychat.services.membership_service import MembershipGate
from arsychat.services.model_registry import ModelRegistry
from arsychat.services.session_store import InMemorySessionStore
from arsychat.services.update_router import UpdateRouter

ADMIN_ID = "999"
CHANNEL = "@arsy_channel"


class FakeTelegram:
    """Records every Bot API call; copy/edit/membership outcomes are configurable."""

    def __init__(self, member_status: str = "member", membership_error: bool = False, edit_ok: bool = True):
        self.calls = []
        self.member_status = member_status
        self.membership_error = membership_error
        self.edit_ok = edit_ok
        self.blocked_chats = set()

    def _record(self, method, **kwargs):
        self.calls.append((method, kwargs))

    def calls_to(self, method):
        return [kwargs for name, kwargs in self.calls if name == method]

    def texts_to(self, chat_id):
        return [
            kwargs["text"]
            for name, kwargs in self.calls
            if name == "send_message" and str(kwargs["chat_id"]) == str(chat_id)
        ]

    async def send_message(self, chat_id, text, reply_markup=None, parse_mode="HTML", plain_fallback=False):
        self._record("send_message", chat_id=chat_id, text=text, reply_markup=reply_markup, parse_mode=parse_mode)
        return {"ok": True, "result": {"message_id": len(self.calls)}}

    async def edit_message(self, chat_id, message_id, text, reply_markup=None, parse_mode="HTML"):
        self._record("edit_message", chat_id=chat_id, message_id=message_id, text=text, reply_markup=reply_markup)
        if not self.edit_ok:
            return {"ok": False, "description": "Bad Request: message can't be edited"}
        return {"ok": True, "result": {"message_id": message_id}}

    async def delete_message(self, chat_id, message_id):
        self._record("delete_message", chat_id=chat_id, message_id=message_id)
        return {"ok": True, "result": True}

    async def answer_callback_query(self, callback_query_id, text=None, show_alert=False):
        self._record("answer_callback_query", callback_query_id=callback_query_id, text=text, show_alert=show_alert)
        return {"ok": True, "result": True}

    async def copy_message(self, chat_id, from_chat_id, message_id):
        self._record("copy_message", chat_id=chat_id, from_chat_id=from_chat_id, message_id=message_id)
        if str(chat_id) in self.blocked_chats:
            return {"ok": False, "error_code": 403, "description": "Forbidden: bot was blocked by the user"}
        return {"ok": True, "result": {"message_id": 1}}

    async def send_chat_action(self, chat_id, action="typing"):
        self._record("send_chat_action", chat_id=chat_id, action=action)
        return {"ok": True, "result": True}

    async def get_chat_member(self, chat_id, user_id):
        self._record("get_chat_member", chat_id=chat_id, user_id=user_id)
        if self.membership_error:
            raise RuntimeError("Bad Request: user not found")
        return {"ok": True, "result": {"status": self.member_status, "user": {"id": int(user_id)}}}


class MemoryUserDirectory(UserDirectory):
    """Dict-backed directory; merge semantics come from the base class."""

    def __init__(self, records: Optional[dict] = None):
        super().__init__()
        self.records = {key: dict(value) for key, value in (records or {}).items()}

    async def _get(self, user_id):
        record = self.records.get(user_id)
        return dict(record) if record is not None else None

    async def _patch(self, user_id, fields):
        self.records.setdefault(user_id, {}).update(fields)

    async def _list(self):
        return list(self.records)


class FakeProvider(CompletionProvider):
    def __init__(self, replies=None):
        self.replies = list(replies or ["Hello from the model"])
        self.prompts = []

    async def generate(self, prompt, slug):
        self.prompts.append((prompt, slug))
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return LLMResponse(content=reply, model=slug)


async def no_sleep(_seconds):
    return None


async def yield_once(_seconds):
    await asyncio.sleep(0)


def make_router(
    telegram=None,
    directory=None,
    provider=None,
    session_store=None,
    required_channel=None,
    admin_id=ADMIN_ID,
    default_model="GLM",
    sleep_func=no_sleep,
):
    telegram = telegram or FakeTelegram()
    session_store = session_store or InMemorySessionStore()
    return UpdateRouter(
        telegram=telegram,
        directory=directory if directory is not None else MemoryUserDirectory(),
        membership_gate=MembershipGate(telegram, required_channel),
        registry=ModelRegistry(default_alias=default_model),
        completion_provider=provider or FakeProvider(),
        broadcast_engine=BroadcastEngine(telegram, session_store, delay_seconds=0, sleep_func=sleep_func),
        session_store=session_store,
        admin_id=admin_id,
        completion_max_attempts=2,
        completion_retry_backoff_seconds=0,
    )


@pytest.fixture
def telegram():
    return FakeTelegram()


@pytest.fixture
def directory():
    return MemoryUserDirectory()
