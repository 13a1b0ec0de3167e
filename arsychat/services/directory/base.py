import asyncio
import time
from abc import ABC, abstractmethod
from typing import Optional

from arsychat.logging_config import get_logger
from arsychat.schemas.user import UserRecord, to_store_fields

logger = get_logger("directory")

REGISTER_LOCK_STRIPES = 64


def now_millis() -> int:
    return int(time.time() * 1000)


class UserDirectory(ABC):
    """Key-value store of user records.

    Subclasses implement the raw ``_get``/``_patch``/``_list`` calls and may raise.
    The public methods never raise: a failing store reads as empty and writes
    report ``False``.
    """

    def __init__(self):
        self._register_locks = [asyncio.Lock() for _ in range(REGISTER_LOCK_STRIPES)]

    @abstractmethod
    async def _get(self, user_id: str) -> Optional[dict]:
        """Raw stored record or None."""

    @abstractmethod
    async def _patch(self, user_id: str, fields: dict) -> None:
        """Merge ``fields`` (stored key names) into the record, creating it if absent."""

    @abstractmethod
    async def _list(self) -> list[str]:
        """All stored user ids."""

    async def aclose(self) -> None:
        return None

    async def get_user(self, user_id) -> Optional[UserRecord]:
        try:
            raw = await self._get(str(user_id))
        except Exception as e:
            logger.warning(f"Directory read failed: {e!r}", extra={"context": {"user_id": user_id}})
            return None
        if not raw:
            return None
        return UserRecord.model_validate({**raw, "id": str(user_id)})

    async def patch_user(self, user_id, fields: dict) -> bool:
        """Merge update. Fields not named in ``fields`` are never touched."""
        stored = to_store_fields(fields)
        if not stored:
            return True
        try:
            await self._patch(str(user_id), stored)
        except Exception as e:
            logger.warning(
                f"Directory write failed: {e!r}",
                extra={"context": {"user_id": user_id, "fields": sorted(stored)}},
            )
            return False
        return True

    async def list_user_ids(self) -> list[str]:
        try:
            return [str(user_id) for user_id in await self._list()]
        except Exception as e:
            logger.warning(f"Directory listing failed: {e!r}")
            return []

    async def set_selected_model(self, user_id, alias: str) -> bool:
        return await self.patch_user(user_id, {"selected_model": alias})

    async def register_user(self, user_id, display_name: str) -> bool:
        """Upsert on /start. True only when this call created the record.

        Serialized per user id so two concurrent registrations of the same new
        user report "created" once.
        """
        key = str(user_id)
        lock = self._register_locks[hash(key) % REGISTER_LOCK_STRIPES]
        async with lock:
            try:
                existing = await self._get(key)
                await self._patch(
                    key,
                    to_store_fields({"id": key, "display_name": display_name or "", "last_seen": now_millis()}),
                )
            except Exception as e:
                logger.warning(f"User registration failed: {e!r}", extra={"context": {"user_id": key}})
                return False
        return not existing


class DisabledUserDirectory(UserDirectory):
    """Used when no store is configured: reads are empty, writes are dropped."""

    async def _get(self, user_id: str) -> Optional[dict]:
        return None

    async def _patch(self, user_id: str, fields: dict) -> None:
        return None

    async def _list(self) -> list[str]:
        return []

    async def register_user(self, user_id, display_name: str) -> bool:
        return False
