import asyncio
from typing import Optional

from arsychat.logging_config import get_logger
from arsychat.schemas.telegram import TelegramChatMember

logger = get_logger("membership_service")

MEMBER_STATUSES = {"creator", "administrator", "member"}


class MembershipGate:
    """Required-channel check. No channel configured means the gate is open.

    Any failure resolves to "not a member". Nothing is cached: every call asks
    the transport again.
    """

    def __init__(self, telegram, required_channel: Optional[str], timeout: float = 10.0):
        self.telegram = telegram
        self.required_channel = required_channel or None
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return self.required_channel is not None

    async def is_member(self, user_id) -> bool:
        if not self.enabled:
            return True

        try:
            result = await asyncio.wait_for(
                self.telegram.get_chat_member(self.required_channel, user_id), timeout=self.timeout
            )
        except Exception as e:
            logger.warning(
                f"Membership check failed: {e!r}",
                extra={"context": {"user_id": user_id, "channel": self.required_channel}},
            )
            return False

        if not result or not result.get("ok"):
            return False

        try:
            member = TelegramChatMember(**result["result"])
        except Exception as e:
            logger.warning(f"Unexpected getChatMember payload: {e}", extra={"context": {"user_id": user_id}})
            return False

        return member.status in MEMBER_STATUSES
