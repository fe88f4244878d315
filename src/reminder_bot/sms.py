"""Twilio Programmable Messaging over its REST API."""

from __future__ import annotations

import logging

import httpx

from .errors import ProtocolError, TransportError
from .models import SmsResult

logger = logging.getLogger("reminder_bot.sms")

TWILIO_API_BASE = "https://api.twilio.com"


class TwilioClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        account_sid: str,
        auth_token: str,
        api_base: str = TWILIO_API_BASE,
    ):
        self.client = client
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.api_base = api_base.rstrip("/")

    @property
    def messages_url(self) -> str:
        return f"{self.api_base}/2010-04-01/Accounts/{self.account_sid}/Messages.json"

    async def send_sms(self, from_: str, to: str, body: str) -> SmsResult:
        """Queue one outbound SMS.

        Provider-level failures that Twilio reports inside a successful
        response come back in ``SmsResult.error_message``; transport failures
        and error statuses raise.
        """
        try:
            response = await self.client.post(
                self.messages_url,
                data={"From": from_, "To": to, "Body": body},
                auth=(self.account_sid, self.auth_token),
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"Error sending sms: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if response.is_error:
            detail = payload.get("message") if isinstance(payload, dict) else None
            raise ProtocolError(f"Twilio returned HTTP {response.status_code}: {detail or response.text[:200]}")
        if not isinstance(payload, dict):
            raise ProtocolError("Twilio returned a non-object body")

        return SmsResult(
            sid=payload.get("sid"),
            status=payload.get("status"),
            error_message=payload.get("error_message"),
            raw=payload,
        )
