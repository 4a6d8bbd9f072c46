from typing import Optional

import httpx

from proposal_bot.logging_config import get_logger
from proposal_bot.services.result import Result

logger = get_logger("telegram_service")


class TelegramService:
    """Thin client for the Telegram Bot API methods the bot uses."""

    BASE_URL = "https://api.telegram.org/bot{token}"
    FILE_URL = "https://api.telegram.org/file/bot{token}/{path}"

    def __init__(self, bot_token: str, timeout: float = 15.0):
        self.bot_token = bot_token
        self.base_url = self.BASE_URL.format(token=bot_token)
        self.timeout = timeout

    def _make_request(self, method: str, data: Optional[dict] = None) -> dict:
        url = f"{self.base_url}/{method}"
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(url, json=data or {})
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Telegram API error: method={method} error={e}")
            return {"ok": False, "description": str(e)}

    def send_message(
        self,
        chat_id: str,
        text: str,
        reply_markup: Optional[dict] = None,
        parse_mode: Optional[str] = "Markdown",
    ) -> dict:
        data = {"chat_id": chat_id, "text": text}
        if parse_mode:
            data["parse_mode"] = parse_mode
        if reply_markup:
            data["reply_markup"] = reply_markup
        return self._make_request("sendMessage", data)

    def get_file_path(self, file_id: str) -> Optional[str]:
        result = self._make_request("getFile", {"file_id": file_id})
        if result.get("ok"):
            return (result.get("result") or {}).get("file_path")
        logger.warning(f"getFile failed: {result}")
        return None

    def delete_webhook(self) -> dict:
        return self._make_request("deleteWebhook")

    def set_webhook(self, url: str, allowed_updates: Optional[list[str]] = None, max_connections: int = 40) -> dict:
        data = {
            "url": url,
            "max_connections": max_connections,
            "allowed_updates": allowed_updates or ["message"],
        }
        return self._make_request("setWebhook", data)

    def get_webhook_info(self) -> dict:
        return self._make_request("getWebhookInfo")

    def download_file(self, file_path: str) -> Optional[bytes]:
        url = self.FILE_URL.format(token=self.bot_token, path=file_path)
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.get(url)
        except httpx.HTTPError as e:
            logger.error(f"Telegram file download failed: {e}")
            return None
        if response.status_code != 200:
            logger.warning(f"Telegram file download status={response.status_code}")
            return None
        return response.content


def build_reply_keyboard(labels: list[str]) -> dict:
    """One button per row; the keyboard hides itself after a tap."""
    return {
        "keyboard": [[{"text": label}] for label in labels],
        "resize_keyboard": True,
        "one_time_keyboard": True,
    }


def build_contact_keyboard(label: str) -> dict:
    return {
        "keyboard": [[{"text": label, "request_contact": True}]],
        "resize_keyboard": True,
        "one_time_keyboard": True,
    }


REMOVE_KEYBOARD = {"remove_keyboard": True}


def register_webhook(service: TelegramService, url: str) -> Result[dict]:
    """
    Point the bot at ``url``: drop the previous webhook, set the new one and
    return Telegram's view of it.
    """
    deleted = service.delete_webhook()
    if not deleted.get("ok"):
        logger.warning(f"deleteWebhook failed: {deleted.get('description')}")

    result = service.set_webhook(url)
    if not result.get("ok"):
        logger.error(f"setWebhook failed for {url}: {result.get('description')}")
        return Result.failure(result.get("description") or "setWebhook failed", "telegram_error")

    info = service.get_webhook_info()
    logger.info("Telegram webhook registered", extra={"context": {"url": url}})
    return Result.success(info.get("result") or {})
