import logging
from typing import List

from .intents import SEARCH_INTENTS, Intent
from .schemas import ProductSearchResult, SearchOptions
from .search import ProductSearchEngine

logger = logging.getLogger(__name__)

CURRENCY_SYMBOL = "$"
THOUSANDS_SEPARATOR = "."
LOW_STOCK_THRESHOLD = 5
SEARCH_RESULT_LIMIT = 3
SUGGESTED_CATEGORIES = 5
MENU_MAX_CATEGORIES = 6
MENU_PRODUCTS_PER_CATEGORY = 3
SHORT_DESCRIPTION_LENGTH = 100

GREETING_TEXT = (
    "¡Hola! 👋 Bienvenido a Town. Te puedo ayudar a encontrar productos, "
    "consultar precios, stock y más. ¿Qué buscas hoy?"
)

HELP_TEXT = """¡Estoy aquí para ayudarte! 🤖

Puedes preguntarme sobre:
• 💰 *Precios* - "¿Cuánto cuesta la pizza?"
• 📦 *Stock* - "¿Hay empanadas disponibles?"
• 💳 *Pagos* - "¿Cómo puedo pagar?"
• 🚚 *Entregas* - "¿Hacen delivery?"
• 📋 *Menú* - "¿Qué productos tienen?"

Solo escribe lo que buscas y te ayudo a encontrarlo."""

MENU_HEADER_TEXT = "📋 Te muestro nuestro catálogo de productos disponibles. Aquí tienes las categorías principales:"

PAYMENT_TEXT = """💳 *Métodos de pago disponibles:*

• 💵 Efectivo (al recibir)
• 💸 Transferencia bancaria

¿Hay algún producto específico que te interese? Te ayudo a hacer el pedido."""

DELIVERY_TEXT = """🚚 *Información de entregas:*

• Delivery disponible en la zona
• Tiempo estimado: 30-45 minutos
• Costo según ubicación

¿Me das tu dirección para calcular el costo exacto?"""

UNKNOWN_TEXT = """No entendí bien tu mensaje. 🤔

Puedes preguntarme sobre:
• Precios de productos
• Stock disponible
• Métodos de pago
• Información de delivery
• Ver el menú completo

¿En qué te puedo ayudar?"""

APOLOGY_TEXT = (
    "Disculpa, hubo un problema procesando tu mensaje. "
    "Por favor intenta de nuevo en unos minutos."
)

NO_PRODUCTS_TEXT = "Lo siento, no tenemos productos disponibles en este momento. 😔\n\nPor favor intenta más tarde."

MENU_ERROR_TEXT = "Error al cargar el menú. Por favor intenta escribiendo el nombre de un producto específico."

SEARCH_FOOTER = (
    "💳 *Pagos:* Efectivo o transferencia\n"
    "📱 ¿Quieres reservar alguno? ¡Solo dime cuál te interesa!"
)


def format_price(price_cents: int) -> str:
    """Render minor units as whole pesos, e.g. 1250000 -> '$12.500'."""
    sign = "-" if price_cents < 0 else ""
    # round half up on integers, no float money
    pesos = (abs(price_cents) + 50) // 100
    grouped = f"{pesos:,}".replace(",", THOUSANDS_SEPARATOR)
    return f"{sign}{CURRENCY_SYMBOL}{grouped}"


def stock_note(stock: int) -> str:
    if stock <= 0:
        return "(agotado)"
    if stock <= LOW_STOCK_THRESHOLD:
        return f"(¡Últimas {stock} unidades!)"
    return f"(stock: {stock})"


def contextual_response(intent: Intent, keywords: List[str]) -> str:
    """Static reply for an intent; search intents get a placeholder naming the top keyword."""
    intent = Intent(intent)

    if intent == Intent.GREETING:
        return GREETING_TEXT
    if intent == Intent.HELP:
        return HELP_TEXT
    if intent == Intent.MENU:
        return MENU_HEADER_TEXT
    if intent == Intent.PAYMENT:
        return PAYMENT_TEXT
    if intent == Intent.DELIVERY:
        return DELIVERY_TEXT
    if intent == Intent.PRICE:
        if keywords:
            return f"💰 Te ayudo a consultar precios. Buscando información sobre: *{keywords[0]}*..."
        return "💰 ¿De qué producto quieres saber el precio? Escribe el nombre y te doy la información."
    if intent == Intent.STOCK:
        if keywords:
            return f"📦 Consultando disponibilidad de: *{keywords[0]}*..."
        return "📦 ¿De qué producto quieres saber la disponibilidad? Escribe el nombre y verifico el stock."
    if intent == Intent.PRODUCT_SEARCH:
        if keywords:
            return f"🔍 Buscando productos relacionados con: *{', '.join(keywords[:2])}*..."
        return "🔍 ¿Qué producto buscas? Escribe el nombre y te muestro las opciones disponibles."
    return UNKNOWN_TEXT


class ResponseGenerator:
    def __init__(self, search_engine: ProductSearchEngine, app_base_url: str = "https://town.tld"):
        self.search_engine = search_engine
        self.app_base_url = app_base_url.rstrip("/")

    def format_product(self, product: ProductSearchResult) -> str:
        message = f"*{product.title}* — {format_price(product.price_cents)} {stock_note(product.stock)}"

        if product.description and len(product.description) < SHORT_DESCRIPTION_LENGTH:
            message += f"\n{product.description}"

        message += f"\n🔗 Ver más: {self.app_base_url}/product/{product.id}"
        return message

    async def search_response(self, keywords: List[str], intent: Intent) -> str:
        """Search-backed reply; STOCK questions also list sold-out products."""
        options = SearchOptions(
            limit=SEARCH_RESULT_LIMIT,
            include_out_of_stock=Intent(intent) == Intent.STOCK,
        )
        products = await self.search_engine.search_products(keywords, options)

        if not products:
            categories = await self.search_engine.get_available_categories()
            category_list = ", ".join(categories[:SUGGESTED_CATEGORIES])
            response = f"🔍 No encontré productos con \"{' '.join(keywords)}\"\n\n"
            if category_list:
                response += f"¿Te interesa alguna de estas categorías?\n📋 {category_list}\n\n"
            response += "O escribe *menú* para ver todo el catálogo."
            return response

        plural = "s" if len(products) > 1 else ""
        response = f"🔍 Encontré {len(products)} producto{plural}:\n\n"
        for i, product in enumerate(products, 1):
            response += f"{i}. {self.format_product(product)}\n\n"

        response += SEARCH_FOOTER
        return response

    async def menu_response(self) -> str:
        try:
            categories = await self.search_engine.get_available_categories()
            if not categories:
                return NO_PRODUCTS_TEXT

            response = "📋 *Nuestro Menú por Categorías:*\n\n"

            for category in categories[:MENU_MAX_CATEGORIES]:
                products = await self.search_engine.get_products_by_category(
                    category, MENU_PRODUCTS_PER_CATEGORY
                )
                if not products:
                    continue

                response += f"🏷️ *{category.upper()}*\n"
                for product in products:
                    response += f"• {product.title} - {format_price(product.price_cents)}"
                    if product.stock <= LOW_STOCK_THRESHOLD:
                        response += f" (¡Últimas {product.stock}!)"
                    response += "\n"
                response += "\n"

            response += "💬 Escribe el nombre de cualquier producto para más información.\n"
            response += "📱 ¿Te interesa algo? ¡Solo dime qué quieres pedir!"
            return response

        except Exception as e:
            logger.error(f"Error generating menu response: {e}")
            return MENU_ERROR_TEXT

    async def generate(self, intent: Intent, keywords: List[str]) -> str:
        """Route an intent to its reply path."""
        intent = Intent(intent)

        if intent == Intent.MENU:
            return await self.menu_response()
        if intent in SEARCH_INTENTS:
            if not keywords:
                return contextual_response(intent, keywords)
            return await self.search_response(keywords, intent)
        return contextual_response(intent, keywords)
