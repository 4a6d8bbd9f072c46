from typing import Optional

import httpx

from proposal_bot.logging_config import get_logger

logger = get_logger("twilio_service")


class TwilioWhatsAppService:
    """Twilio Messages API (form-encoded, Basic-Auth with account SID/token)."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_address: str,
        api_url: str = "https://api.twilio.com/2010-04-01",
        timeout: float = 15.0,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_address = from_address
        self.messages_url = f"{api_url}/Accounts/{account_sid}/Messages.json"
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_address)

    def send_message(self, to_address: str, body: str) -> bool:
        if not self.configured:
            logger.error("Twilio credentials missing (TWILIO_ACCOUNT_SID/TWILIO_AUTH_TOKEN/TWILIO_WHATSAPP_FROM)")
            return False
        try:
            with httpx.Client(timeout=self.timeout, auth=(self.account_sid, self.auth_token)) as client:
                response = client.post(
                    self.messages_url,
                    data={"From": self.from_address, "To": to_address, "Body": body},
                )
        except httpx.HTTPError as e:
            logger.error(f"Twilio send failed: to={to_address} error={e}")
            return False

        if response.status_code not in (200, 201):
            logger.warning(f"Twilio send rejected: status={response.status_code} body={response.text[:200]}")
            return False
        return True

    def download_media(self, media_url: str) -> Optional[bytes]:
        try:
            with httpx.Client(
                timeout=self.timeout,
                auth=(self.account_sid, self.auth_token),
                follow_redirects=True,
            ) as client:
                response = client.get(media_url)
        except httpx.HTTPError as e:
            logger.error(f"Twilio media download failed: {e}")
            return None
        if response.status_code != 200:
            logger.warning(f"Twilio media download status={response.status_code}")
            return None
        return response.content
