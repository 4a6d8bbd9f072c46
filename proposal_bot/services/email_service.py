"""Transactional e-mail through the Resend HTTP API."""

from typing import Optional

import httpx

from proposal_bot.config import settings
from proposal_bot.logging_config import get_logger
from proposal_bot.services.result import Result

logger = get_logger("email_service")

RESEND_API_URL = "https://api.resend.com/emails"
SEND_ATTEMPTS = 2


def send_email(
    to: str,
    subject: str,
    html: str,
    *,
    reply_to: Optional[str] = None,
    timeout_seconds: Optional[float] = None,
) -> Result[str]:
    """Send one e-mail; returns the provider message id. One retry on transport errors and 5xx."""
    if not settings.resend_api_key:
        logger.error("RESEND_API_KEY not configured")
        return Result.failure("E-mail not configured", "not_configured")

    payload = {"from": settings.email_from, "to": [to], "subject": subject, "html": html}
    if reply_to:
        payload["reply_to"] = reply_to
    headers = {"Authorization": f"Bearer {settings.resend_api_key}"}
    timeout = timeout_seconds if timeout_seconds is not None else settings.email_timeout_seconds

    last_error = "unknown error"
    for attempt in range(1, SEND_ATTEMPTS + 1):
        try:
            with httpx.Client(timeout=timeout) as client:
                response = client.post(RESEND_API_URL, json=payload, headers=headers)
        except httpx.HTTPError as e:
            last_error = f"transport error: {e}"
            logger.warning(f"E-mail attempt {attempt} failed: {last_error}")
            continue

        if response.status_code in (200, 201):
            message_id = response.json().get("id", "")
            logger.info(f"E-mail sent: to={to} id={message_id}")
            return Result.success(message_id)

        last_error = f"status {response.status_code}: {response.text[:200]}"
        logger.warning(f"E-mail attempt {attempt} rejected: {last_error}")
        if response.status_code < 500:
            # 4xx will not get better on retry
            break

    return Result.failure(last_error, "email_error")
