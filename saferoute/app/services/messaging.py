"""
Messaging provider boundary.

The dispatcher only knows ``MessagingProvider.send``. The shipped
implementation talks to Twilio's Messages REST resource over httpx;
without credentials the application runs with ``UnconfiguredProvider``
and records deliveries as failed instead of sending.
"""

import enum
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from saferoute.app.core.config import settings
from saferoute.app.core.exceptions import DeliveryError, ProviderUnavailableError

logger = logging.getLogger("saferoute.messaging")


class Channel(str, enum.Enum):
    WHATSAPP = "WHATSAPP"
    SMS = "SMS"


# Tried in order for each recipient
CHANNEL_ORDER = (Channel.WHATSAPP, Channel.SMS)


def to_e164(number: str) -> str:
    number = number.strip()
    return number if number.startswith("+") else f"+{number}"


class MessagingProvider(ABC):
    """Sends one text message to one address on one channel."""

    @property
    def available(self) -> bool:
        return True

    @abstractmethod
    async def send(self, address: str, body: str, channel: Channel) -> str:
        """
        Send a message.

        Returns:
            Provider message id

        Raises:
            DeliveryError: if this attempt failed
        """

    async def aclose(self) -> None:
        return None


class UnconfiguredProvider(MessagingProvider):
    @property
    def available(self) -> bool:
        return False

    async def send(self, address: str, body: str, channel: Channel) -> str:
        raise ProviderUnavailableError()


class TwilioMessagingProvider(MessagingProvider):
    """Twilio Programmable Messaging (WhatsApp and SMS)."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        whatsapp_from: Optional[str],
        sms_from: Optional[str],
        api_base: str = "https://api.twilio.com/2010-04-01",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.account_sid = account_sid
        self.whatsapp_from = whatsapp_from
        self.sms_from = sms_from
        self._url = f"{api_base}/Accounts/{account_sid}/Messages.json"
        self._client = client or httpx.AsyncClient(
            auth=(account_sid, auth_token),
            timeout=httpx.Timeout(timeout, connect=5.0),
        )

    def _sender(self, channel: Channel) -> str:
        if channel == Channel.WHATSAPP:
            if not self.whatsapp_from:
                raise DeliveryError("No WhatsApp sender configured", channel=channel.value, retryable=False)
            sender = self.whatsapp_from
            return sender if sender.startswith("whatsapp:") else f"whatsapp:{sender}"
        if not self.sms_from:
            raise DeliveryError("No SMS sender configured", channel=channel.value, retryable=False)
        return self.sms_from

    async def send(self, address: str, body: str, channel: Channel) -> str:
        to = to_e164(address)
        payload = {
            "From": self._sender(channel),
            "To": f"whatsapp:{to}" if channel == Channel.WHATSAPP else to,
            "Body": body,
        }

        try:
            response = await self._client.post(self._url, data=payload)
        except httpx.HTTPError as exc:
            raise DeliveryError(f"{channel.value} request failed: {exc}", channel=channel.value) from exc

        if response.status_code >= 400:
            try:
                detail = response.json().get("message", response.text)
            except ValueError:
                detail = response.text
            raise DeliveryError(
                f"{channel.value} rejected ({response.status_code}): {detail}",
                channel=channel.value,
                retryable=response.status_code >= 500 or response.status_code == 429,
            )

        sid = response.json().get("sid", "")
        logger.debug("%s message %s sent to %s", channel.value, sid, to)
        return sid

    async def aclose(self) -> None:
        await self._client.aclose()


def twilio_configured(s=settings) -> bool:
    return bool(
        s.twilio_account_sid
        and s.twilio_auth_token
        and s.twilio_account_sid.startswith("AC")
    )


def build_provider(s=settings) -> MessagingProvider:
    """Create the messaging provider the settings describe."""
    if not twilio_configured(s):
        logger.warning("Twilio not configured; alerts will be recorded but not delivered")
        return UnconfiguredProvider()
    return TwilioMessagingProvider(
        account_sid=s.twilio_account_sid,
        auth_token=s.twilio_auth_token,
        whatsapp_from=s.twilio_whatsapp_number,
        sms_from=s.twilio_phone_number,
        api_base=s.twilio_api_base,
        timeout=s.message_timeout_seconds,
    )
