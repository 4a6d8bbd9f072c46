import asyncio
import os

from fastapi import FastAPI

from proposal_bot.config import settings
from proposal_bot.database import SessionLocal
from proposal_bot.logging_config import get_logger, setup_logging
from proposal_bot.routers import admin, notifications, telegram_webhook, whatsapp_webhook
from proposal_bot.services.session_service import purge_expired

setup_logging(settings.log_level)

app = FastAPI(
    title="Proposal Bot API",
    description="Chat webhooks that turn conversations into commercial proposals",
    version="0.1.0",
)

app.include_router(telegram_webhook.router)
app.include_router(whatsapp_webhook.router)
app.include_router(notifications.router)
app.include_router(admin.router)

cleanup_logger = get_logger("session_cleanup")
_cleanup_task: asyncio.Task | None = None


def _is_session_cleanup_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return settings.session_cleanup_enabled


async def _session_cleanup_loop() -> None:
    while True:
        try:
            await asyncio.sleep(max(settings.session_cleanup_interval_seconds, 1.0))
            db = SessionLocal()
            try:
                purged = purge_expired(db)
                if purged["sessions"] or purged["messages"]:
                    cleanup_logger.info("Session cleanup finished", extra={"context": purged})
            finally:
                db.close()
        except asyncio.CancelledError:
            break
        except Exception as exc:
            cleanup_logger.error(
                "Session cleanup loop failed",
                extra={"context": {"error": str(exc)}},
            )


@app.on_event("startup")
async def start_session_cleanup() -> None:
    global _cleanup_task
    if not _is_session_cleanup_enabled():
        return
    if _cleanup_task is None or _cleanup_task.done():
        _cleanup_task = asyncio.create_task(_session_cleanup_loop())
        cleanup_logger.info("Session cleanup started")


@app.on_event("shutdown")
async def stop_session_cleanup() -> None:
    global _cleanup_task
    if _cleanup_task is None:
        return
    _cleanup_task.cancel()
    try:
        await _cleanup_task
    except asyncio.CancelledError:
        pass
    _cleanup_task = None


@app.get("/health")
async def health():
    return {"status": "ok"}
