"""Admin endpoints for bringing the chat channels up."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel

from proposal_bot.config import settings
from proposal_bot.logging_config import get_logger
from proposal_bot.services.telegram_service import TelegramService, register_webhook

logger = get_logger("admin")

router = APIRouter(prefix="/admin", tags=["admin"])


class TelegramWebhookSetup(BaseModel):
    webhook_url: Optional[str] = None


class TelegramWebhookSetupResponse(BaseModel):
    success: bool
    webhook_url: str
    webhook_info: dict = {}


def _require_admin_token(provided: Optional[str]) -> None:
    expected = settings.notifications_admin_token
    if not expected:
        raise HTTPException(status_code=500, detail="NOTIFICATIONS_ADMIN_TOKEN not configured")
    if not provided or provided != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


def get_telegram_service() -> TelegramService:
    return TelegramService(settings.telegram_bot_token)


def _default_webhook_url() -> Optional[str]:
    if not settings.webhook_base_url:
        return None
    return f"{settings.webhook_base_url.rstrip('/')}/webhook/telegram"


@router.post("/telegram/webhook", response_model=TelegramWebhookSetupResponse)
def setup_telegram_webhook(
    request: Optional[TelegramWebhookSetup] = None,
    service: TelegramService = Depends(get_telegram_service),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)
    if not settings.telegram_bot_token:
        raise HTTPException(status_code=500, detail="TELEGRAM_BOT_TOKEN not configured")

    webhook_url = (request.webhook_url if request else None) or _default_webhook_url()
    if not webhook_url:
        raise HTTPException(status_code=400, detail="webhook_url required (or set WEBHOOK_BASE_URL)")

    result = register_webhook(service, webhook_url)
    if not result.ok:
        raise HTTPException(status_code=502, detail=f"Telegram refused the webhook: {result.error}")

    return TelegramWebhookSetupResponse(success=True, webhook_url=webhook_url, webhook_info=result.value)
