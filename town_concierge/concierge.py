"""
Conversation orchestration for inbound WhatsApp messages.

Every message is handled on its own: there is no session and no memory of
earlier turns, so a reply like "sí" is classified without context. The
pipeline is screen -> parse -> respond -> send, with a single apology
attempt when anything after screening fails.
"""

import enum
import logging
from typing import Optional

from .intents import is_spam_message, parse_message
from .logging_utils import mask_phone
from .responses import APOLOGY_TEXT, ResponseGenerator
from .schemas import InboundMessage
from .whatsapp import OutboundSender, normalize_phone_number

logger = logging.getLogger(__name__)


class Outcome(str, enum.Enum):
    RESPONDED = "responded"
    IGNORED = "ignored"
    SPAM_FILTERED = "spam_filtered"
    APOLOGIZED = "apologized"
    FAILED = "failed"


class ConversationOrchestrator:
    def __init__(self, responder: ResponseGenerator, sender: OutboundSender):
        self.responder = responder
        self.sender = sender

    def screen(self, message: Optional[InboundMessage]) -> Optional[Outcome]:
        """Return the reason to drop a message, or None when it should be processed."""
        if message is None:
            logger.warning("Could not parse incoming message")
            return Outcome.IGNORED

        if not message.from_ or not message.body:
            logger.warning(
                f"Invalid message format: has_from={bool(message.from_)} has_body={bool(message.body)}"
            )
            return Outcome.IGNORED

        if is_spam_message(message.body):
            logger.warning(f"Spam message detected from {mask_phone(message.from_)}")
            return Outcome.SPAM_FILTERED

        return None

    async def build_reply(self, text: str) -> str:
        parsed = parse_message(text)
        logger.info(
            f"Intent {parsed.intent} (confidence {parsed.confidence:.2f}, {len(parsed.keywords)} keywords)"
        )
        return await self.responder.generate(parsed.intent, parsed.keywords)

    async def process(self, message: InboundMessage) -> Outcome:
        """Reply to a screened message. Never raises."""
        phone = normalize_phone_number(message.from_)
        masked = mask_phone(phone)

        try:
            reply = await self.build_reply(message.body)
            result = await self.sender.send(phone, reply)
            if result.success:
                logger.info(f"Response sent: id={result.message_id} to={masked}")
                return Outcome.RESPONDED
            logger.error(f"Failed to send response to {masked}: {result.error}")
        except Exception as e:
            logger.error(f"Error in message processing for {masked}: {e}")

        return await self._apologize(phone)

    async def _apologize(self, phone: str) -> Outcome:
        try:
            result = await self.sender.send(phone, APOLOGY_TEXT)
        except Exception as e:
            logger.error(f"Failed to send error message: {e}")
            return Outcome.FAILED

        if not result.success:
            logger.error(f"Failed to send error message: {result.error}")
            return Outcome.FAILED
        return Outcome.APOLOGIZED

    async def handle(self, message: Optional[InboundMessage]) -> Outcome:
        dropped = self.screen(message)
        if dropped is not None:
            return dropped
        logger.info(
            f"Processing WhatsApp message from {mask_phone(message.from_)} ({len(message.body)} chars)"
        )
        return await self.process(message)
