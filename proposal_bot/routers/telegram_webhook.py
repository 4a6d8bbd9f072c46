import json
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import PlainTextResponse

from proposal_bot.logging_config import get_logger
from proposal_bot.schemas.webhook import WebhookAck
from proposal_bot.services.channels import TelegramAdapter, get_telegram_adapter
from proposal_bot.services.conversation_service import process_inbound_task

logger = get_logger("telegram_webhook")

router = APIRouter(prefix="/webhook", tags=["webhooks"])


async def parse_telegram_update(request: Request) -> Optional[dict]:
    """Decode the update body; a body that is not utf-8 is retried as latin-1."""
    raw = await request.body()
    for encoding in ("utf-8", "latin-1"):
        try:
            # UnicodeDecodeError is a ValueError
            body = json.loads(raw.decode(encoding))
        except ValueError:
            continue
        return body if isinstance(body, dict) else None

    logger.error("Failed to decode Telegram webhook payload")
    return None


@router.get("/telegram", response_class=PlainTextResponse)
async def telegram_webhook_alive():
    return "Telegram webhook is running"


@router.post("/telegram", response_model=WebhookAck)
async def handle_telegram_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    adapter: TelegramAdapter = Depends(get_telegram_adapter),
):
    """
    Acknowledge the update immediately; the conversation runs in a background task
    so slow extraction or e-mail calls never delay Telegram's webhook.
    """
    body = await parse_telegram_update(request)
    if body is None:
        return WebhookAck(message="Invalid payload")

    inbound = adapter.parse_inbound(body)
    if inbound is None:
        logger.debug(f"Ignored Telegram update {body.get('update_id')}")
        return WebhookAck(message="Ignored")

    background_tasks.add_task(process_inbound_task, adapter, inbound)
    return WebhookAck(message="Accepted")
