import asyncio
from dataclasses import dataclass
from typing import Optional, Sequence

from arsychat.logging_config import get_logger
from arsychat.services.telegram_service import format_broadcast_report

logger = get_logger("broadcast_service")


@dataclass
class BroadcastReport:
    sent: int = 0
    failed: int = 0
    skipped: int = 0  # already attempted before a resume

    @property
    def attempted(self) -> int:
        return self.sent + self.failed


def cursor_key(sender_chat_id, message_id) -> str:
    return f"{sender_chat_id}:{message_id}"


class BroadcastEngine:
    """Copies one message to every recipient, one at a time.

    A failed recipient is counted and skipped. Runs from the same admin chat
    are serialized. Each broadcast message is claimed once, so a redelivered
    update never starts a second run. After each attempt the position is saved;
    a resume run continues where an interrupted run stopped and does nothing
    when that run already finished.
    """

    def __init__(self, telegram, session_store, delay_seconds: float = 0.03, sleep_func=asyncio.sleep):
        self.telegram = telegram
        self.session_store = session_store
        self.delay_seconds = delay_seconds
        self._sleep = sleep_func
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, sender_chat_id) -> asyncio.Lock:
        return self._locks.setdefault(str(sender_chat_id), asyncio.Lock())

    async def claim(self, sender_chat_id, message_id) -> bool:
        """Take ownership of a broadcast message. False when it was claimed before.

        An unreachable store cannot tell duplicates apart; the message is then
        treated as new.
        """
        try:
            return await self.session_store.claim(cursor_key(sender_chat_id, message_id))
        except Exception as e:
            logger.warning(f"Broadcast claim failed: {e!r}")
            return True

    async def has_pending_run(self, sender_chat_id, message_id) -> bool:
        try:
            return await self.session_store.get_cursor(cursor_key(sender_chat_id, message_id)) is not None
        except Exception as e:
            logger.warning(f"Broadcast cursor lookup failed: {e!r}")
            return False

    async def run(
        self, sender_chat_id, message_id: int, recipient_ids: Sequence, resume: bool = False
    ) -> Optional[BroadcastReport]:
        """Send and report. With ``resume`` only an interrupted run is continued; returns None otherwise."""
        async with self._lock_for(sender_chat_id):
            if resume and not await self.has_pending_run(sender_chat_id, message_id):
                logger.info(
                    "Broadcast already finished, skipping",
                    extra={"context": {"chat_id": sender_chat_id, "message_id": message_id}},
                )
                return None
            report = await self._run_locked(sender_chat_id, message_id, list(recipient_ids))

        await self.telegram.send_message(sender_chat_id, format_broadcast_report(report.sent, report.failed))
        return report

    async def _run_locked(self, sender_chat_id, message_id: int, recipient_ids: list) -> BroadcastReport:
        key = cursor_key(sender_chat_id, message_id)
        start = await self._load_cursor(key, len(recipient_ids))
        report = BroadcastReport(skipped=start)

        logger.info(
            "Broadcast started",
            extra={"context": {"chat_id": sender_chat_id, "recipients": len(recipient_ids), "resume_from": start}},
        )

        for index in range(start, len(recipient_ids)):
            recipient_id = recipient_ids[index]
            if await self._copy_to(recipient_id, sender_chat_id, message_id):
                report.sent += 1
            else:
                report.failed += 1

            await self._save_cursor(key, index + 1)
            if index + 1 < len(recipient_ids):
                await self._sleep(self.delay_seconds)

        await self._clear_cursor(key)
        logger.info(
            "Broadcast finished",
            extra={"context": {"chat_id": sender_chat_id, "sent": report.sent, "failed": report.failed}},
        )
        return report

    async def _copy_to(self, recipient_id, sender_chat_id, message_id: int) -> bool:
        try:
            result = await self.telegram.copy_message(recipient_id, sender_chat_id, message_id)
        except Exception as e:
            logger.warning(f"Broadcast copy raised: {e!r}", extra={"context": {"recipient_id": recipient_id}})
            return False
        if not result or not result.get("ok"):
            logger.info(
                "Broadcast copy rejected",
                extra={"context": {"recipient_id": recipient_id, "description": (result or {}).get("description")}},
            )
            return False
        return True

    async def _load_cursor(self, key: str, total: int) -> int:
        try:
            cursor = await self.session_store.get_cursor(key)
        except Exception as e:
            logger.warning(f"Broadcast cursor lookup failed: {e!r}")
            return 0
        if cursor is None or cursor < 0 or cursor > total:
            return 0
        return cursor

    async def _save_cursor(self, key: str, index: int) -> None:
        try:
            await self.session_store.set_cursor(key, index)
        except Exception as e:
            logger.warning(f"Broadcast cursor save failed: {e!r}")

    async def _clear_cursor(self, key: str) -> None:
        try:
            await self.session_store.clear_cursor(key)
        except Exception as e:
            logger.warning(f"Broadcast cursor clear failed: {e!r}")
