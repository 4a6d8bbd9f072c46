from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import PlainTextResponse, Response

from proposal_bot.logging_config import get_logger
from proposal_bot.services.channels import WhatsAppAdapter, get_whatsapp_adapter
from proposal_bot.services.conversation_service import process_inbound_task

logger = get_logger("whatsapp_webhook")

router = APIRouter(prefix="/webhook", tags=["webhooks"])

# Replies go out through the Messages API, so Twilio gets an empty TwiML document.
EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'


def twiml_ack() -> Response:
    return Response(content=EMPTY_TWIML, media_type="application/xml")


@router.get("/whatsapp", response_class=PlainTextResponse)
async def whatsapp_webhook_alive():
    return "WhatsApp webhook is running"


@router.post("/whatsapp")
async def handle_whatsapp_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    adapter: WhatsAppAdapter = Depends(get_whatsapp_adapter),
):
    form = await request.form()
    inbound = adapter.parse_inbound(dict(form))
    if inbound is None:
        return twiml_ack()

    background_tasks.add_task(process_inbound_task, adapter, inbound)
    return twiml_ack()
