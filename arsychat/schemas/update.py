"""Inbound updates as a tagged union.

The transport delivers either a message or a callback query per update, never
both. ``to_inbound`` narrows the raw Bot API payload to one of the two shapes the
router dispatches on.
"""

from typing import Literal, Optional, Union

from pydantic import BaseModel

from arsychat.schemas.telegram import TelegramUpdate


class CallbackEvent(BaseModel):
    kind: Literal["callback_query"] = "callback_query"
    id: str
    from_user_id: int
    chat_id: Optional[int] = None
    message_id: Optional[int] = None
    data: Optional[str] = None


class MessageEvent(BaseModel):
    kind: Literal["message"] = "message"
    chat_id: int
    from_user_id: Optional[int] = None
    from_display_name: str = ""
    message_id: int
    text: Optional[str] = None

    @property
    def is_command(self) -> bool:
        return bool(self.text) and self.text.startswith("/")

    @property
    def command(self) -> Optional[str]:
        """``/start@SomeBot payload`` -> ``/start``."""
        if not self.is_command:
            return None
        head = self.text.split(maxsplit=1)[0]
        return head.split("@", 1)[0].lower()


InboundUpdate = Union[CallbackEvent, MessageEvent]


def to_inbound(update: TelegramUpdate) -> Optional[InboundUpdate]:
    """Return the event carried by ``update`` or None when it has nothing we route."""
    if update.callback_query is not None:
        query = update.callback_query
        message = query.message
        return CallbackEvent(
            id=query.id,
            from_user_id=query.from_user.id,
            chat_id=message.chat.id if message else None,
            message_id=message.message_id if message else None,
            data=query.data,
        )

    if update.message is not None:
        message = update.message
        sender = message.from_user
        return MessageEvent(
            chat_id=message.chat.id,
            from_user_id=sender.id if sender else None,
            from_display_name=sender.first_name if sender else "",
            message_id=message.message_id,
            text=message.text,
        )

    return None
