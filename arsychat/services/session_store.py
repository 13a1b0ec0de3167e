"""Pending broadcast sessions and broadcast cursors, keyed by chat id.

A session means "the next non-command message from this chat is broadcast
content". It is set by /broadcast and cleared exactly once by ``consume``.
The cursor records how far a broadcast got so an interrupted one can resume.
"""

import time
from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as redis_async

from arsychat.logging_config import get_logger

logger = get_logger("session_store")


class SessionStore(ABC):
    @abstractmethod
    async def activate(self, chat_id) -> None: ...

    @abstractmethod
    async def is_active(self, chat_id) -> bool: ...

    @abstractmethod
    async def consume(self, chat_id) -> bool:
        """Clear the session and report whether one was active, atomically."""

    @abstractmethod
    async def get_cursor(self, chat_id) -> Optional[int]: ...

    @abstractmethod
    async def set_cursor(self, chat_id, index: int) -> None: ...

    @abstractmethod
    async def clear_cursor(self, chat_id) -> None: ...

    @abstractmethod
    async def claim(self, key) -> bool:
        """Mark ``key`` as taken unless it already is, atomically. True for the first caller."""

    async def aclose(self) -> None:
        return None


class InMemorySessionStore(SessionStore):
    """Process-local store. Lost on restart, not shared between instances."""

    def __init__(self, ttl_seconds: int = 3600, claim_ttl_seconds: int = 7 * 24 * 3600, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.claim_ttl_seconds = claim_ttl_seconds
        self._clock = clock
        self._sessions: dict[str, float] = {}
        self._cursors: dict[str, int] = {}
        self._claims: dict[str, float] = {}

    async def activate(self, chat_id) -> None:
        self._sessions[str(chat_id)] = self._clock() + self.ttl_seconds

    async def is_active(self, chat_id) -> bool:
        expires_at = self._sessions.get(str(chat_id))
        if expires_at is None:
            return False
        if expires_at <= self._clock():
            self._sessions.pop(str(chat_id), None)
            return False
        return True

    async def consume(self, chat_id) -> bool:
        expires_at = self._sessions.pop(str(chat_id), None)
        return expires_at is not None and expires_at > self._clock()

    async def get_cursor(self, chat_id) -> Optional[int]:
        return self._cursors.get(str(chat_id))

    async def set_cursor(self, chat_id, index: int) -> None:
        self._cursors[str(chat_id)] = index

    async def clear_cursor(self, chat_id) -> None:
        self._cursors.pop(str(chat_id), None)

    async def claim(self, key) -> bool:
        if self._is_claimed(key):
            return False
        self._claims[str(key)] = self._clock() + self.claim_ttl_seconds
        return True

    def _is_claimed(self, key) -> bool:
        expires_at = self._claims.get(str(key))
        if expires_at is None:
            return False
        if expires_at <= self._clock():
            self._claims.pop(str(key), None)
            return False
        return True


class RedisSessionStore(SessionStore):
    """Redis-backed store shared by every process pointing at the same server."""

    SESSION_KEY = "arsychat:broadcast_session:{chat_id}"
    CURSOR_KEY = "arsychat:broadcast_cursor:{chat_id}"
    CLAIM_KEY = "arsychat:broadcast_claim:{key}"

    def __init__(self, client, ttl_seconds: int = 3600, cursor_ttl_seconds: int = 7 * 24 * 3600):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.cursor_ttl_seconds = cursor_ttl_seconds

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int = 3600, socket_timeout: float = 2.0) -> "RedisSessionStore":
        client = redis_async.from_url(url, decode_responses=True, socket_timeout=socket_timeout)
        return cls(client, ttl_seconds=ttl_seconds)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def activate(self, chat_id) -> None:
        await self.client.set(self.SESSION_KEY.format(chat_id=chat_id), "1", ex=self.ttl_seconds)

    async def is_active(self, chat_id) -> bool:
        return bool(await self.client.exists(self.SESSION_KEY.format(chat_id=chat_id)))

    async def consume(self, chat_id) -> bool:
        return await self.client.getdel(self.SESSION_KEY.format(chat_id=chat_id)) is not None

    async def get_cursor(self, chat_id) -> Optional[int]:
        value = await self.client.get(self.CURSOR_KEY.format(chat_id=chat_id))
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            logger.warning("Ignoring malformed broadcast cursor", extra={"context": {"chat_id": chat_id, "value": value}})
            return None

    async def set_cursor(self, chat_id, index: int) -> None:
        await self.client.set(self.CURSOR_KEY.format(chat_id=chat_id), str(index), ex=self.cursor_ttl_seconds)

    async def clear_cursor(self, chat_id) -> None:
        await self.client.delete(self.CURSOR_KEY.format(chat_id=chat_id))

    async def claim(self, key) -> bool:
        return bool(await self.client.set(self.CLAIM_KEY.format(key=key), "1", ex=self.cursor_ttl_seconds, nx=True))


def build_session_store(settings) -> SessionStore:
    if settings.redis_url:
        return RedisSessionStore.from_url(settings.redis_url, ttl_seconds=settings.broadcast_session_ttl_seconds)
    return InMemorySessionStore(ttl_seconds=settings.broadcast_session_ttl_seconds)
