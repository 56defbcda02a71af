import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from . import __version__
from .catalog import CatalogService
from .checkout import CheckoutService
from .coins import CoinService
from .concierge import ConversationOrchestrator, Outcome
from .config import Settings, get_settings
from .db import create_engine, init_models, make_session_factory, ping
from .errors import TownError
from .logging_utils import configure_logging, mask_phone, sanitize_for_log
from .orders import OrderService
from .responses import ResponseGenerator
from .schemas import (
    CheckoutRequest,
    CoinBalance,
    DevMessageRequest,
    InboundMessage,
    OrderPage,
    OrderReceipt,
    OrderStatusUpdate,
    ProductCreate,
    ProductOut,
    ProductSearchResult,
    ProductUpdate,
    SearchRequest,
    SellerCreate,
    SellerOut,
    UserCreate,
    UserOut,
)
from .search import ProductSearchEngine
from .whatsapp import OutboundSender, create_sender, normalize_phone_number, parse_incoming_message

logger = logging.getLogger(__name__)


def _http_error(e: TownError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)


def create_app(settings: Optional[Settings] = None, sender: Optional[OutboundSender] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    engine = create_engine(settings.database_url)
    session_factory = make_session_factory(engine)
    sender = sender or create_sender(settings)

    search_engine = ProductSearchEngine(session_factory)
    responder = ResponseGenerator(search_engine, settings.app_base_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.create_tables:
            await init_models(engine)
        logger.info(f"Town concierge started (provider={sender.provider}, env={settings.app_env})")
        yield
        await sender.aclose()
        await engine.dispose()

    app = FastAPI(title="Town Concierge API", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.allow_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.sender = sender
    app.state.search = search_engine
    app.state.concierge = ConversationOrchestrator(responder, sender)
    app.state.catalog = CatalogService(session_factory)
    app.state.checkout = CheckoutService(session_factory)
    app.state.orders = OrderService(session_factory)
    app.state.coins = CoinService(session_factory)

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:

    @app.get("/")
    async def root():
        return {
            "service": "Town Concierge",
            "version": __version__,
            "status": "running",
            "endpoints": [
                "/webhook/whatsapp", "/search", "/products", "/checkout",
                "/orders", "/coins/balance", "/health", "/docs",
            ],
        }

    @app.get("/health")
    async def health_check(request: Request):
        db_ok = await ping(request.app.state.engine)
        return {
            "status": "healthy" if db_ok else "degraded",
            "service": "town-concierge",
            "version": __version__,
            "database": "ok" if db_ok else "down",
            "whatsapp_provider": request.app.state.sender.provider,
        }

    # WhatsApp
    @app.get("/webhook/whatsapp")
    async def verify_webhook(request: Request):
        settings: Settings = request.app.state.settings
        mode = request.query_params.get("hub.mode")
        token = request.query_params.get("hub.verify_token")
        challenge = request.query_params.get("hub.challenge", "")

        logger.info(f"Webhook verification attempt: mode={mode} token_provided={bool(token)}")

        if settings.whatsapp_provider == "meta":
            if mode == "subscribe" and token and token == settings.meta_verify_token:
                logger.info("Webhook verified successfully")
                return PlainTextResponse(challenge)
            logger.warning("Webhook verification failed")
            raise HTTPException(status_code=403, detail="Forbidden")

        return {"message": "Webhook endpoint active"}

    @app.post("/webhook/whatsapp")
    async def incoming_message(request: Request, background_tasks: BackgroundTasks):
        settings: Settings = request.app.state.settings
        concierge: ConversationOrchestrator = request.app.state.concierge

        try:
            content_type = request.headers.get("content-type", "")
            if "application/json" in content_type:
                payload = await request.json()
            else:
                payload = dict(await request.form())
        except Exception as e:
            logger.warning(f"Unreadable webhook body: {e}")
            return {"message": "Message ignored"}

        if isinstance(payload, dict):
            logger.info(f"Incoming WhatsApp webhook: provider={settings.whatsapp_provider} keys={sorted(sanitize_for_log(payload))}")

        message = parse_incoming_message(settings.whatsapp_provider, payload)
        dropped = concierge.screen(message)
        if dropped == Outcome.IGNORED:
            return {"message": "Message ignored"}
        if dropped == Outcome.SPAM_FILTERED:
            return {"message": "Spam filtered"}

        logger.info(f"Queued WhatsApp message from {mask_phone(message.from_)} ({len(message.body)} chars)")
        # the reply is produced after the acknowledgment is sent
        background_tasks.add_task(concierge.process, message)
        return {"message": "Message received"}

    @app.post("/webhook/whatsapp/test")
    async def dev_message(body: DevMessageRequest, request: Request):
        settings: Settings = request.app.state.settings
        if settings.is_production:
            raise HTTPException(status_code=404, detail="Not found")

        message = InboundMessage(
            from_=normalize_phone_number(body.phone),
            body=body.message,
            timestamp=datetime.now(timezone.utc),
        )
        outcome = await request.app.state.concierge.handle(message)
        return {"message": "Test message processed", "outcome": outcome.value}

    # Search
    @app.post("/search", response_model=List[ProductSearchResult])
    async def search_products(body: SearchRequest, request: Request):
        return await request.app.state.search.search_products(body.keywords, body.options)

    # Users and sellers
    @app.post("/users", response_model=UserOut, status_code=201)
    async def register_user(body: UserCreate, request: Request):
        try:
            return await request.app.state.catalog.register_user(body)
        except TownError as e:
            raise _http_error(e)

    @app.post("/sellers", response_model=SellerOut, status_code=201)
    async def register_seller(body: SellerCreate, request: Request):
        try:
            return await request.app.state.catalog.register_seller(body)
        except TownError as e:
            raise _http_error(e)

    # Products
    @app.get("/products", response_model=List[ProductOut])
    async def list_products(
        request: Request,
        query: Optional[str] = None,
        category: Optional[str] = None,
        active: Optional[bool] = None,
        page: int = Query(1, ge=1),
        limit: int = Query(50, ge=1, le=100),
    ):
        return await request.app.state.catalog.list_products(query, category, active, page, limit)

    @app.post("/products", response_model=ProductOut, status_code=201)
    async def create_product(body: ProductCreate, request: Request):
        try:
            return await request.app.state.catalog.create_product(body)
        except TownError as e:
            raise _http_error(e)

    @app.get("/products/{product_id}", response_model=ProductOut)
    async def get_product(product_id: str, request: Request):
        try:
            return await request.app.state.catalog.get_product(product_id)
        except TownError as e:
            raise _http_error(e)

    @app.patch("/products/{product_id}", response_model=ProductOut)
    async def update_product(product_id: str, body: ProductUpdate, request: Request):
        try:
            return await request.app.state.catalog.update_product(product_id, body)
        except TownError as e:
            raise _http_error(e)

    @app.delete("/products/{product_id}", response_model=ProductOut)
    async def delete_product(product_id: str, request: Request):
        try:
            return await request.app.state.catalog.deactivate_product(product_id)
        except TownError as e:
            raise _http_error(e)

    # Checkout and orders
    @app.post("/checkout", response_model=OrderReceipt, status_code=201)
    async def checkout(body: CheckoutRequest, request: Request):
        try:
            return await request.app.state.checkout.checkout(body)
        except TownError as e:
            raise _http_error(e)
        except Exception as e:
            logger.error(f"Error in checkout: {e}")
            raise HTTPException(status_code=500, detail="Internal server error")

    @app.get("/orders", response_model=OrderPage)
    async def list_orders(
        request: Request,
        status: Optional[str] = None,
        user_id: Optional[str] = None,
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
    ):
        try:
            return await request.app.state.orders.list_orders(status, user_id, page, limit)
        except TownError as e:
            raise _http_error(e)

    @app.get("/orders/{order_id}", response_model=OrderReceipt)
    async def get_order(order_id: str, request: Request):
        try:
            return await request.app.state.orders.get_order(order_id)
        except TownError as e:
            raise _http_error(e)

    @app.patch("/orders/{order_id}", response_model=OrderReceipt)
    async def update_order_status(order_id: str, body: OrderStatusUpdate, request: Request):
        try:
            return await request.app.state.orders.update_status(order_id, body.status)
        except TownError as e:
            raise _http_error(e)

    # Coins
    @app.get("/coins/balance", response_model=CoinBalance)
    async def coin_balance(request: Request, user_id: str = Query(..., min_length=1)):
        try:
            return await request.app.state.coins.balance(user_id)
        except TownError as e:
            raise _http_error(e)


def run():
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
