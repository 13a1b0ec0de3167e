from html import escape
from typing import Iterable, Optional

import httpx

from arsychat.logging_config import get_logger

logger = get_logger("telegram_service")

CHECK_JOIN = "check_join"
BACK_TO_MODELS = "back_to_models"


class TelegramService:
    """Async client for the Telegram Bot API.

    Every method returns the decoded API response. Failures (network, non-JSON
    body, ``ok: false``) never raise; they come back as ``{"ok": False, ...}``.
    """

    BASE_URL = "https://api.telegram.org/bot{token}"

    def __init__(self, bot_token: str, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.bot_token = bot_token
        self.base_url = self.BASE_URL.format(token=bot_token)
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _make_request(self, method: str, data: Optional[dict] = None) -> dict:
        url = f"{self.base_url}/{method}"
        try:
            response = await self._client.post(url, json=data or {})
            result = response.json()
        except Exception as e:
            logger.error(f"Telegram API error: {e}", extra={"context": {"method": method}})
            return {"ok": False, "error": str(e)}

        if not result.get("ok"):
            logger.warning(
                "Telegram API call rejected",
                extra={"context": {"method": method, "description": result.get("description")}},
            )
        return result

    async def send_message(
        self,
        chat_id,
        text: str,
        reply_markup: Optional[dict] = None,
        parse_mode: Optional[str] = "HTML",
        plain_fallback: bool = False,
    ) -> dict:
        """Send message. With ``plain_fallback`` a rejected formatted text is re-sent as-is."""
        data = {"chat_id": chat_id, "text": text}
        if parse_mode:
            data["parse_mode"] = parse_mode
        if reply_markup:
            data["reply_markup"] = reply_markup

        result = await self._make_request("sendMessage", data)
        if not result.get("ok") and plain_fallback and parse_mode:
            data.pop("parse_mode")
            result = await self._make_request("sendMessage", data)
        return result

    async def edit_message(
        self,
        chat_id,
        message_id: int,
        text: str,
        reply_markup: Optional[dict] = None,
        parse_mode: Optional[str] = "HTML",
    ) -> dict:
        data = {"chat_id": chat_id, "message_id": message_id, "text": text}
        if parse_mode:
            data["parse_mode"] = parse_mode
        if reply_markup:
            data["reply_markup"] = reply_markup

        return await self._make_request("editMessageText", data)

    async def delete_message(self, chat_id, message_id: int) -> dict:
        return await self._make_request("deleteMessage", {"chat_id": chat_id, "message_id": message_id})

    async def answer_callback_query(
        self, callback_query_id: str, text: Optional[str] = None, show_alert: bool = False
    ) -> dict:
        data = {"callback_query_id": callback_query_id}
        if text:
            data["text"] = text
        if show_alert:
            data["show_alert"] = True
        return await self._make_request("answerCallbackQuery", data)

    async def copy_message(self, chat_id, from_chat_id, message_id: int) -> dict:
        """Replicate a message verbatim into another chat."""
        data = {"chat_id": chat_id, "from_chat_id": from_chat_id, "message_id": message_id}
        return await self._make_request("copyMessage", data)

    async def send_chat_action(self, chat_id, action: str = "typing") -> dict:
        return await self._make_request("sendChatAction", {"chat_id": chat_id, "action": action})

    async def get_chat_member(self, chat_id, user_id) -> dict:
        return await self._make_request("getChatMember", {"chat_id": chat_id, "user_id": user_id})

    async def set_webhook(self, url: str) -> dict:
        return await self._make_request("setWebhook", {"url": url})


def channel_url(channel: str) -> str:
    return f"https://t.me/{channel.lstrip('@')}"


def build_join_keyboard(channel: Optional[str]) -> dict:
    """Join prompt: link to the required channel plus a verify button."""
    rows = []
    if channel:
        rows.append([{"text": "📢 Join Official Channel", "url": channel_url(channel)}])
    rows.append([{"text": "✅ Verify / I have Joined", "callback_data": CHECK_JOIN}])
    return {"inline_keyboard": rows}


def build_model_keyboard(models: Iterable, per_row: int = 2) -> dict:
    """Model chooser, ``per_row`` aliases per row."""
    buttons = [{"text": model.label or model.alias, "callback_data": model.alias} for model in models]
    rows = [buttons[i : i + per_row] for i in range(0, len(buttons), per_row)]
    return {"inline_keyboard": rows}


def build_back_keyboard() -> dict:
    return {"inline_keyboard": [[{"text": "🔄 Change Model", "callback_data": BACK_TO_MODELS}]]}


def format_new_user_notice(display_name: str, user_id, total_users: int) -> str:
    """Admin notice for a first-time /start."""
    return f"""➕ <b>New User</b>
👤 {escape(display_name or "")}
🆔 <code>{user_id}</code>
📊 Total: {total_users}"""


def format_broadcast_report(sent: int, failed: int) -> str:
    return f"✅ <b>Done</b>\nSent: {sent}\nFailed: {failed}"
