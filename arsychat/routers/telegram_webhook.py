import json
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from arsychat.logging_config import get_logger
from arsychat.schemas.telegram import TelegramUpdate, WebhookAck
from arsychat.schemas.update import to_inbound
from arsychat.services.update_router import IGNORED, UpdateRouter

logger = get_logger("telegram_webhook")

router = APIRouter()


def get_update_router(request: Request) -> UpdateRouter:
    return request.app.state.update_router


async def parse_telegram_update(request: Request) -> Optional[dict]:
    """
    Parse Telegram update with tolerant decoding to avoid utf-8 crashes.
    Returns dict or None.
    """
    try:
        return await request.json()
    except Exception as e:
        logger.warning(f"Standard request.json() failed: {e}, fallback decoding")

    raw = await request.body()
    for enc in ("utf-8", "latin-1"):
        try:
            decoded = raw.decode(enc, errors="replace")
            return json.loads(decoded)
        except Exception:
            continue

    logger.error("Failed to decode Telegram webhook payload after fallbacks")
    return None


@router.post("/", response_model=WebhookAck)
@router.post("/telegram-webhook", response_model=WebhookAck)
async def handle_telegram_webhook(request: Request, update_router: UpdateRouter = Depends(get_update_router)):
    """
    Handle one Telegram update. Always answers 200 so the platform does not
    redeliver: messages -> commands, broadcast content or completion prompts;
    callback queries -> verification, model selection, model list.
    """
    body = await parse_telegram_update(request)
    if not isinstance(body, dict):
        return WebhookAck(handled=IGNORED)

    try:
        update = TelegramUpdate(**body)
    except Exception as e:
        logger.warning(f"Unsupported Telegram update: {e}", extra={"context": {"keys": sorted(body)}})
        return WebhookAck(handled=IGNORED)

    logger.debug(f"Telegram webhook received: update_id={update.update_id}")
    return await update_router.handle(to_inbound(update))


@router.get("/", response_class=PlainTextResponse)
async def bot_active():
    return "Bot Active"
