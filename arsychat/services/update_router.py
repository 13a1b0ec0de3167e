"""Update dispatch: one inbound event in, side effects out, always an ack back.

Dispatch is table driven. Message commands and callback control tokens each
have an explicit handler table; callback data that names a registered model
selects it. Anything else is logged as unhandled and dropped without a reply.

Handlers answer with the state the chat is left in, derived from membership,
the stored model choice and the broadcast session. ``ignored`` marks updates
that caused no transition.
"""

import asyncio
from typing import Optional, Union

from arsychat.logging_config import LoggerAdapter, get_logger
from arsychat.schemas.telegram import WebhookAck
from arsychat.schemas.update import CallbackEvent, InboundUpdate, MessageEvent
from arsychat.services.alert_service import alert_error
from arsychat.services.completion_service import generate_reply, reply_text
from arsychat.services.model_registry import ModelRegistry
from arsychat.services.state_machine import ChatState, derive_state
from arsychat.services.telegram_service import (
    BACK_TO_MODELS,
    CHECK_JOIN,
    build_back_keyboard,
    build_join_keyboard,
    build_model_keyboard,
    format_new_user_notice,
)

logger = get_logger("update_router")

IGNORED = "ignored"

JOIN_REQUIRED_TEXT = "👋 *Hello {name}*\n\n🔒 To use this bot, you must join our channel first."
WELCOME_TEXT = "👋 *Welcome Back!*\n\n🧠 Choose an AI Model:"
ACCESS_DENIED_TEXT = "⚠️ *Access Denied*\nPlease verify subscription:"
VERIFIED_TEXT = "🎉 *Verification Successful!*\n\n🧠 *Select an AI Model:*"
SWITCH_MODEL_TEXT = "🔄 *Switch Model:*"
CHOOSE_MODEL_TEXT = "🧠 *Choose an AI Model:*"
SELECT_MODEL_FIRST_TEXT = "🧠 Please select a model first:"
MODEL_SET_EDIT_TEXT = "✅ *Model set to: {alias}*\n\n👇 You can now chat!"
MODEL_SET_SEND_TEXT = "✅ *Model set to: {alias}*\n\n👇 Start chatting!"
BROADCAST_MODE_TEXT = "📣 <b>Broadcast Mode</b>\n\nSend message to broadcast."
BROADCAST_START_TEXT = "🚀 Starting broadcast..."


class UpdateRouter:
    def __init__(
        self,
        telegram,
        directory,
        membership_gate,
        registry: ModelRegistry,
        completion_provider,
        broadcast_engine,
        session_store,
        admin_id: Optional[str] = None,
        completion_max_attempts: int = 2,
        completion_retry_backoff_seconds: float = 0.5,
    ):
        self.telegram = telegram
        self.directory = directory
        self.gate = membership_gate
        self.registry = registry
        self.completion_provider = completion_provider
        self.broadcast_engine = broadcast_engine
        self.session_store = session_store
        self.admin_id = str(admin_id) if admin_id else None
        self.completion_max_attempts = completion_max_attempts
        self.completion_retry_backoff_seconds = completion_retry_backoff_seconds
        self._background_tasks: set[asyncio.Task] = set()

        self.update_handlers = {
            "message": self._dispatch_message,
            "callback_query": self._dispatch_callback,
        }
        self.command_handlers = {
            "/start": self.on_start,
            "/model": self.on_model,
            "/broadcast": self.on_broadcast,
        }
        self.callback_handlers = {
            CHECK_JOIN: self.on_check_join,
            BACK_TO_MODELS: self.on_back_to_models,
        }

    def is_admin(self, user_id) -> bool:
        return self.admin_id is not None and user_id is not None and str(user_id) == self.admin_id

    async def handle(self, event: Optional[InboundUpdate]) -> WebhookAck:
        """Process one update. Never raises; internal failures still ack."""
        if event is None:
            return WebhookAck(handled=IGNORED)

        dispatch = self.update_handlers.get(event.kind)
        if dispatch is None:
            logger.warning("Unhandled update kind", extra={"context": {"kind": event.kind}})
            return WebhookAck(handled=IGNORED)

        try:
            handled = await dispatch(event)
        except Exception as e:
            logger.error(f"Update processing failed: {e}", exc_info=True)
            await alert_error("Update processing failed", {"kind": event.kind, "error": str(e)})
            return WebhookAck(handled="error")
        return WebhookAck(handled=handled)

    async def drain(self) -> None:
        """Wait for broadcasts started by earlier updates."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    # --- state ---

    def _valid_alias(self, selected: Optional[str]) -> Optional[str]:
        return selected if self.registry.get(selected) is not None else None

    async def _current_state(
        self, event: Union[MessageEvent, CallbackEvent], is_member: Optional[bool] = None
    ) -> ChatState:
        if is_member is None:
            is_member = await self.gate.is_member(event.from_user_id)

        selected = None
        if is_member:
            user = await self.directory.get_user(event.from_user_id)
            selected = self._valid_alias(user.selected_model if user else None)

        is_admin = self.is_admin(event.from_user_id)
        broadcast_pending = is_admin and event.chat_id is not None and await self.session_store.is_active(event.chat_id)
        return derive_state(is_member, selected, broadcast_pending=broadcast_pending, is_admin=is_admin)

    # --- messages ---

    async def _dispatch_message(self, event: MessageEvent) -> str:
        log = LoggerAdapter(logger, {"chat_id": event.chat_id, "user_id": event.from_user_id})

        handler = self.command_handlers.get(event.command)
        if handler is not None:
            log.info("Command received", context={"command": event.command})
            return await handler(event)

        if self.is_admin(event.from_user_id):
            handled = await self._route_admin_message(event, log)
            if handled is not None:
                return handled

        if event.text and not event.is_command:
            return await self.on_free_text(event)

        log.debug("Message ignored", context={"command": event.command, "has_text": bool(event.text)})
        return IGNORED

    async def _route_admin_message(self, event: MessageEvent, log: LoggerAdapter) -> Optional[str]:
        """Broadcast handling for a non-command admin message; None for ordinary input.

        Every admin message is claimed on first delivery. A redelivered one is
        a duplicate: it only continues a broadcast whose run was interrupted.
        """
        if not await self.broadcast_engine.claim(event.chat_id, event.message_id):
            if await self.broadcast_engine.has_pending_run(event.chat_id, event.message_id):
                log.info("Resuming interrupted broadcast", context={"message_id": event.message_id})
                self._spawn_broadcast(event, resume=True)
            else:
                log.info("Duplicate admin message ignored", context={"message_id": event.message_id})
            return IGNORED

        if not await self.session_store.consume(event.chat_id):
            return None

        await self.telegram.send_message(event.chat_id, BROADCAST_START_TEXT, parse_mode=None)
        self._spawn_broadcast(event, resume=False)
        return (await self._current_state(event)).value

    def _spawn_broadcast(self, event: MessageEvent, resume: bool) -> None:
        # Runs after the ack so the webhook answers before the recipient loop
        task = asyncio.create_task(self._run_broadcast(event.chat_id, event.message_id, resume))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _run_broadcast(self, chat_id, message_id: int, resume: bool) -> None:
        try:
            recipient_ids = await self.directory.list_user_ids()
            await self.broadcast_engine.run(chat_id, message_id, recipient_ids, resume=resume)
        except Exception as e:
            logger.error(f"Broadcast failed: {e}", exc_info=True)
            await alert_error("Broadcast failed", {"chat_id": chat_id, "message_id": message_id, "error": str(e)})

    async def on_start(self, event: MessageEvent) -> str:
        created = await self.directory.register_user(event.from_user_id, event.from_display_name)
        if created and self.admin_id:
            total_users = len(await self.directory.list_user_ids())
            await self.telegram.send_message(
                self.admin_id,
                format_new_user_notice(event.from_display_name, event.from_user_id, total_users),
            )

        if not await self.gate.is_member(event.from_user_id):
            await self.telegram.send_message(
                event.chat_id,
                JOIN_REQUIRED_TEXT.format(name=event.from_display_name),
                reply_markup=build_join_keyboard(self.gate.required_channel),
                parse_mode="Markdown",
                plain_fallback=True,
            )
            return ChatState.UNVERIFIED.value

        await self.telegram.send_message(
            event.chat_id,
            WELCOME_TEXT,
            reply_markup=build_model_keyboard(self.registry),
            parse_mode="Markdown",
        )
        return (await self._current_state(event, is_member=True)).value

    async def on_model(self, event: MessageEvent) -> str:
        await self.telegram.send_message(
            event.chat_id,
            SWITCH_MODEL_TEXT,
            reply_markup=build_model_keyboard(self.registry),
            parse_mode="Markdown",
        )
        return (await self._current_state(event)).value

    async def on_broadcast(self, event: MessageEvent) -> str:
        # Same outcome as an unknown command for anyone but the admin
        if not self.is_admin(event.from_user_id):
            return IGNORED

        await self.session_store.activate(event.chat_id)
        await self.telegram.send_message(event.chat_id, BROADCAST_MODE_TEXT)
        return (await self._current_state(event)).value

    async def on_free_text(self, event: MessageEvent) -> str:
        is_member = await self.gate.is_member(event.from_user_id)
        if not is_member:
            await self._send_join_prompt(event.chat_id, ACCESS_DENIED_TEXT)
            return ChatState.UNVERIFIED.value

        user = await self.directory.get_user(event.from_user_id)
        selected = user.selected_model if user else None
        state = derive_state(is_member, self._valid_alias(selected), is_admin=self.is_admin(event.from_user_id))

        model = self.registry.resolve(selected)
        if model is None:
            await self.telegram.send_message(
                event.chat_id,
                SELECT_MODEL_FIRST_TEXT,
                reply_markup=build_model_keyboard(self.registry),
                parse_mode=None,
            )
            return state.value

        await self.telegram.send_chat_action(event.chat_id, "typing")
        result = await generate_reply(
            self.completion_provider,
            self.registry,
            event.text,
            model.alias,
            max_attempts=self.completion_max_attempts,
            retry_backoff_seconds=self.completion_retry_backoff_seconds,
        )
        if not result.ok:
            logger.warning(
                "Completion fell back",
                extra={"context": {"chat_id": event.chat_id, "model": model.alias, "code": result.error_code}},
            )
        await self.telegram.send_message(event.chat_id, reply_text(result), parse_mode="Markdown", plain_fallback=True)
        return state.value

    async def _send_join_prompt(self, chat_id, text: str) -> None:
        await self.telegram.send_message(
            chat_id,
            text,
            reply_markup=build_join_keyboard(self.gate.required_channel),
            parse_mode="Markdown",
        )

    # --- callbacks ---

    async def _dispatch_callback(self, event: CallbackEvent) -> str:
        handler = self.callback_handlers.get(event.data)
        if handler is not None:
            return await handler(event)

        if event.data in self.registry:
            return await self.on_model_selected(event)

        logger.info(
            "Unhandled callback data",
            extra={"context": {"data": event.data, "user_id": event.from_user_id}},
        )
        return IGNORED

    async def on_check_join(self, event: CallbackEvent) -> str:
        if not await self.gate.is_member(event.from_user_id):
            await self.telegram.answer_callback_query(event.id, "❌ Not Joined Yet!", show_alert=True)
            return ChatState.UNVERIFIED.value

        if event.chat_id is not None and event.message_id is not None:
            await self.telegram.delete_message(event.chat_id, event.message_id)
        await self.telegram.answer_callback_query(event.id, "✅ Verified!")
        if event.chat_id is not None:
            await self.telegram.send_message(
                event.chat_id,
                VERIFIED_TEXT,
                reply_markup=build_model_keyboard(self.registry),
                parse_mode="Markdown",
            )
        return (await self._current_state(event, is_member=True)).value

    async def on_model_selected(self, event: CallbackEvent) -> str:
        alias = event.data
        if not await self.gate.is_member(event.from_user_id):
            await self.telegram.answer_callback_query(event.id, "⚠️ Join Channel First!", show_alert=True)
            return ChatState.UNVERIFIED.value

        if not await self.directory.set_selected_model(event.from_user_id, alias):
            await self.telegram.answer_callback_query(event.id, "❌ Could not save, try again.", show_alert=True)
            return (await self._current_state(event, is_member=True)).value

        await self._edit_or_send(
            event,
            MODEL_SET_EDIT_TEXT.format(alias=alias),
            MODEL_SET_SEND_TEXT.format(alias=alias),
            build_back_keyboard(),
        )
        await self.telegram.answer_callback_query(event.id, f"Selected: {alias}")
        return (await self._current_state(event, is_member=True)).value

    async def on_back_to_models(self, event: CallbackEvent) -> str:
        await self._edit_or_send(event, CHOOSE_MODEL_TEXT, CHOOSE_MODEL_TEXT, build_model_keyboard(self.registry))
        await self.telegram.answer_callback_query(event.id)
        return (await self._current_state(event)).value

    async def _edit_or_send(self, event: CallbackEvent, edit_text: str, send_text: str, reply_markup: dict) -> None:
        """Edit the message carrying the button, or post a new one when that fails."""
        if event.chat_id is None:
            return
        if event.message_id is not None:
            result = await self.telegram.edit_message(
                event.chat_id, event.message_id, edit_text, reply_markup=reply_markup, parse_mode="Markdown"
            )
            if result.get("ok"):
                return
        await self.telegram.send_message(event.chat_id, send_text, reply_markup=reply_markup, parse_mode="Markdown")
