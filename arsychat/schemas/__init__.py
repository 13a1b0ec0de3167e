from arsychat.schemas.telegram import TelegramUpdate, WebhookAck
from arsychat.schemas.update import CallbackEvent, InboundUpdate, MessageEvent, to_inbound
from arsychat.schemas.user import UserRecord
