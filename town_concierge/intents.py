"""
Rule-based intent classification for inbound chat messages.

Intents are checked against an ordered rule table. The first pattern that
matches wins and later rules are never consulted, so the order of
INTENT_RULES decides messages that mention several topics (e.g. a price
question about delivery is classified as PRICE).
"""

import enum
import logging
import re
from typing import List, Pattern, Tuple

from .keywords import extract_keywords
from .schemas import ParsedMessage

logger = logging.getLogger(__name__)


class Intent(str, enum.Enum):
    GREETING = "GREETING"
    HELP = "HELP"
    MENU = "MENU"
    PAYMENT = "PAYMENT"
    DELIVERY = "DELIVERY"
    PRICE = "PRICE"
    STOCK = "STOCK"
    PRODUCT_SEARCH = "PRODUCT_SEARCH"
    UNKNOWN = "UNKNOWN"


SEARCH_INTENTS = frozenset({Intent.PRICE, Intent.STOCK, Intent.PRODUCT_SEARCH})

MAX_CONFIDENCE = 0.9
MATCH_CONFIDENCE_BASE = 0.3
PRODUCT_SEARCH_CONFIDENCE = 0.6
UNKNOWN_CONFIDENCE = 0.1


def _compile(*patterns: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


# Evaluated top to bottom
INTENT_RULES: Tuple[Tuple[Intent, Tuple[Pattern, ...]], ...] = (
    (Intent.PRICE, _compile(
        r"\b(precio|cuánto|cuanto|cuesta|vale|valor|\$|pesos?|cop)\b",
        r"\b(qué.*precio|cuál.*precio|precio.*de)\b",
    )),
    (Intent.STOCK, _compile(
        r"\b(stock|queda|quedan|disponible|disponibles|hay|tienen)\b",
        r"\b(cuánto.*queda|cuanto.*queda|qué.*hay|que.*hay)\b",
    )),
    (Intent.PAYMENT, _compile(
        r"\b(pago|pagos?|pagar|transfer|transferencia|efectivo|cash|dinero)\b",
        r"\b(cómo.*pago|como.*pago|formas.*pago|métodos.*pago)\b",
    )),
    (Intent.DELIVERY, _compile(
        r"\b(delivery|envío|envio|entrega|domicilio|llevar|traer)\b",
        r"\b(cuánto.*envío|cuanto.*envio|costo.*envío|precio.*envío)\b",
    )),
    (Intent.MENU, _compile(
        r"\b(menú|menu|carta|catálogo|catalogo|categoría|categoria|categorias|productos?)\b",
        r"\b(qué.*tienen|que.*tienen|qué.*venden|que.*venden|mostrar.*todo)\b",
    )),
    (Intent.HELP, _compile(
        r"\b(ayuda|help|auxilio|asistencia|soporte)\b",
        r"\b(cómo.*funciona|como.*funciona|qué.*puedo|que.*puedo)\b",
    )),
    (Intent.GREETING, _compile(
        r"\b(hola|buenas?|buenos?|saludos?|hey|hi|hello)\b",
        r"\b(buenos.*días|buenas.*tardes|buenas.*noches|buen.*día)\b",
    )),
)

SPAM_PATTERNS = _compile(
    r"\b(viagra|casino|lottery|winner|congratulations)\b",
    r"\b(click.*here|visit.*now|limited.*time)\b",
    r"\$\$\$|💰💰💰|🎰",
    r"(.)\1{10,}",
)

MIN_MESSAGE_LENGTH = 2
MAX_MESSAGE_LENGTH = 500

_PHONE_PATTERN = re.compile(r"(\+?[1-9]\d{1,14}|\+?[1-9]\d{0,3}[\s\-]?\d{3,4}[\s\-]?\d{3,4})")


def classify_intent(text: str) -> Tuple[Intent, float]:
    """Return the first matching intent and its confidence."""
    normalized = (text or "").lower().strip()

    if normalized:
        for intent, patterns in INTENT_RULES:
            for pattern in patterns:
                match = pattern.search(normalized)
                if match:
                    confidence = min(
                        MAX_CONFIDENCE,
                        len(match.group(0)) / len(normalized) + MATCH_CONFIDENCE_BASE,
                    )
                    return intent, confidence

    if extract_keywords(text or ""):
        return Intent.PRODUCT_SEARCH, PRODUCT_SEARCH_CONFIDENCE

    return Intent.UNKNOWN, UNKNOWN_CONFIDENCE


def parse_message(text: str) -> ParsedMessage:
    text = text or ""
    keywords = extract_keywords(text)
    intent, confidence = classify_intent(text)

    parsed = ParsedMessage(
        original_text=text,
        normalized_text=text.lower().strip(),
        keywords=keywords,
        intent=intent.value,
        confidence=confidence,
    )

    # never log the text itself
    logger.debug(
        f"Message parsed: intent={parsed.intent} keywords={len(keywords)} confidence={confidence:.2f}"
    )
    return parsed


def is_spam_message(text: str) -> bool:
    """Flag spam phrases, currency-symbol runs, long character repeats and out-of-range lengths."""
    normalized = (text or "").lower()

    if len(normalized) < MIN_MESSAGE_LENGTH or len(normalized) > MAX_MESSAGE_LENGTH:
        return True

    return any(pattern.search(normalized) for pattern in SPAM_PATTERNS)


def extract_phone_numbers(text: str) -> List[str]:
    phones = []
    for match in _PHONE_PATTERN.findall(text or ""):
        if len(re.sub(r"\D", "", match)) >= 7:
            phones.append(re.sub(r"[\s\-]", "", match))
    return phones
