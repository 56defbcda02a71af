"""
WhatsApp transport: outbound senders and inbound payload parsing.

One sender is chosen from configuration at startup (create_sender) and
handed to the conversation layer. Senders never raise on delivery
problems; they report them through SendResult.
"""

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from .config import Settings
from .errors import ConfigError
from .logging_utils import mask_phone
from .schemas import InboundMessage, SendResult

logger = logging.getLogger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01"
META_API_URL = "https://graph.facebook.com/v18.0"


class OutboundSender:
    """Interface for delivering one text message to one phone."""

    provider = "abstract"

    async def send(self, to: str, text: str) -> SendResult:
        raise NotImplementedError

    async def aclose(self) -> None:
        pass


class ConsoleSender(OutboundSender):
    """Development sender: logs the reply instead of delivering it."""

    provider = "console"

    async def send(self, to: str, text: str) -> SendResult:
        message_id = f"console-{uuid.uuid4().hex[:12]}"
        logger.info(f"[console] message {message_id} to {mask_phone(to)} ({len(text)} chars)")
        return SendResult(success=True, message_id=message_id)


class TwilioSender(OutboundSender):
    provider = "twilio"

    def __init__(self, account_sid: str, auth_token: str, from_number: str,
                 client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0):
        if not account_sid or not auth_token or not from_number:
            raise ConfigError("Twilio configuration is incomplete")
        self.account_sid = account_sid
        self.from_number = from_number
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.auth = (account_sid, auth_token)

    async def send(self, to: str, text: str) -> SendResult:
        try:
            response = await self.client.post(
                f"{TWILIO_API_URL}/Accounts/{self.account_sid}/Messages.json",
                auth=self.auth,
                data={
                    "From": self.from_number,
                    "To": f"whatsapp:{to}",
                    "Body": text,
                },
            )
            if response.status_code >= 400:
                logger.error(f"Twilio API error: status={response.status_code}")
                return SendResult(success=False, error=f"Twilio error: {response.status_code}")

            message_id = response.json().get("sid")
            logger.info(f"Message sent via Twilio: id={message_id} to={mask_phone(to)}")
            return SendResult(success=True, message_id=message_id)

        except Exception as e:
            logger.error(f"Error sending Twilio message: {e}")
            return SendResult(success=False, error=str(e))

    async def aclose(self) -> None:
        await self.client.aclose()


class MetaSender(OutboundSender):
    provider = "meta"

    def __init__(self, phone_number_id: str, access_token: str, verify_token: str,
                 client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0):
        if not phone_number_id or not access_token or not verify_token:
            raise ConfigError("Meta configuration is incomplete")
        self.phone_number_id = phone_number_id
        self.access_token = access_token
        self.verify_token = verify_token
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def send(self, to: str, text: str) -> SendResult:
        try:
            response = await self.client.post(
                f"{META_API_URL}/{self.phone_number_id}/messages",
                headers={"Authorization": f"Bearer {self.access_token}"},
                json={
                    "messaging_product": "whatsapp",
                    "to": to.lstrip("+"),
                    "type": "text",
                    "text": {"body": text},
                },
            )
            if response.status_code >= 400:
                logger.error(f"Meta API error: status={response.status_code}")
                return SendResult(success=False, error=f"Meta error: {response.status_code}")

            messages = response.json().get("messages") or [{}]
            message_id = messages[0].get("id")
            logger.info(f"Message sent via Meta: id={message_id} to={mask_phone(to)}")
            return SendResult(success=True, message_id=message_id)

        except Exception as e:
            logger.error(f"Error sending Meta message: {e}")
            return SendResult(success=False, error=str(e))

    async def aclose(self) -> None:
        await self.client.aclose()


def create_sender(settings: Settings) -> OutboundSender:
    provider = settings.whatsapp_provider
    if provider == "twilio":
        return TwilioSender(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_whatsapp_from,
            timeout=settings.send_timeout_secs,
        )
    if provider == "meta":
        return MetaSender(
            settings.meta_phone_number_id,
            settings.meta_access_token,
            settings.meta_verify_token,
            timeout=settings.send_timeout_secs,
        )
    if provider == "console":
        return ConsoleSender()
    raise ConfigError(f"Unsupported WhatsApp provider: {provider}")


def normalize_phone_number(phone: str) -> str:
    normalized = re.sub(r"[\s\-\(\)]", "", phone or "")
    if not normalized.startswith("+"):
        normalized = "+" + normalized
    return normalized


def _parse_twilio(payload: Dict[str, Any]) -> Optional[InboundMessage]:
    sender = (payload.get("From") or "").replace("whatsapp:", "")
    return InboundMessage(
        from_=sender,
        body=payload.get("Body") or "",
        timestamp=datetime.now(timezone.utc),
    )


def _parse_meta(payload: Dict[str, Any]) -> Optional[InboundMessage]:
    entry = (payload.get("entry") or [{}])[0]
    change = (entry.get("changes") or [{}])[0]
    messages = (change.get("value") or {}).get("messages") or []
    if not messages:
        return None

    message = messages[0]
    timestamp = None
    if message.get("timestamp"):
        timestamp = datetime.fromtimestamp(int(message["timestamp"]), tz=timezone.utc)

    return InboundMessage(
        from_=message.get("from") or "",
        body=(message.get("text") or {}).get("body") or "",
        timestamp=timestamp,
    )


def parse_incoming_message(provider: str, payload: Any) -> Optional[InboundMessage]:
    """Normalize a provider webhook payload; anything unparseable yields None."""
    try:
        if not isinstance(payload, dict):
            return None
        if provider == "meta":
            return _parse_meta(payload)
        # console shares Twilio's flat From/Body shape
        return _parse_twilio(payload)
    except Exception as e:
        logger.error(f"Error parsing incoming WhatsApp message: {e}")
        return None
