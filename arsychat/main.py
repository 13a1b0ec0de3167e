from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from arsychat.config import Settings, settings
from arsychat.logging_config import get_logger, setup_logging
from arsychat.routers import telegram_webhook
from arsychat.services.broadcast_service import BroadcastEngine
from arsychat.services.directory import build_user_directory
from arsychat.services.llm import ArsyChatProvider
from arsychat.services.membership_service import MembershipGate
from arsychat.services.model_registry import ModelRegistry
from arsychat.services.session_store import build_session_store
from arsychat.services.telegram_service import TelegramService
from arsychat.services.update_router import UpdateRouter

setup_logging(settings.log_level, json_logs=settings.log_json)

logger = get_logger("main")

app = FastAPI(
    title="ArsyChat Bot",
    description="Telegram front-end for the ArsyChat completion backends",
    version="0.1.0",
    debug=settings.debug,
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(telegram_webhook.router)


def build_update_router(config: Settings) -> UpdateRouter:
    """Wire the transport, stores and backends into one router."""
    telegram = TelegramService(config.telegram_bot_token, timeout=config.telegram_timeout_seconds)
    session_store = build_session_store(config)
    return UpdateRouter(
        telegram=telegram,
        directory=build_user_directory(config),
        membership_gate=MembershipGate(
            telegram, config.required_channel, timeout=config.telegram_timeout_seconds
        ),
        registry=ModelRegistry(default_alias=config.default_model or None),
        completion_provider=ArsyChatProvider(
            config.completion_api_base, timeout=config.completion_timeout_seconds
        ),
        broadcast_engine=BroadcastEngine(telegram, session_store, delay_seconds=config.broadcast_delay_seconds),
        session_store=session_store,
        admin_id=config.admin_id,
        completion_max_attempts=config.completion_max_attempts,
        completion_retry_backoff_seconds=config.completion_retry_backoff_seconds,
    )


@app.on_event("startup")
async def start_bot() -> None:
    update_router = build_update_router(settings)
    app.state.update_router = update_router

    if settings.webhook_url:
        result = await update_router.telegram.set_webhook(settings.webhook_url)
        if result.get("ok"):
            logger.info(f"Webhook set to: {settings.webhook_url}")
        else:
            logger.error("Webhook registration failed", extra={"context": {"result": result}})

    logger.info(
        "Bot started",
        extra={
            "context": {
                "membership_gate": update_router.gate.enabled,
                "admin_configured": update_router.admin_id is not None,
                "default_model": update_router.registry.default_alias,
            }
        },
    )


@app.on_event("shutdown")
async def stop_bot() -> None:
    update_router = getattr(app.state, "update_router", None)
    if update_router is None:
        return
    await update_router.drain()
    for resource in (
        update_router.telegram,
        update_router.directory,
        update_router.completion_provider,
        update_router.session_store,
    ):
        try:
            await resource.aclose()
        except Exception as exc:
            logger.warning(f"Failed to close {type(resource).__name__}: {exc}")


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("arsychat.main:app", host="0.0.0.0", port=8000, log_level=settings.log_level.lower())
