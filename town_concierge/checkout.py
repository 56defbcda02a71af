"""
Checkout: turn a cart into a committed order.

Validation and commit share one database transaction. Stock is decremented
with a conditional UPDATE (``stock >= qty``) so a competing checkout that
already took the units makes this one fail at commit time; the
``stock >= 0`` check constraint on products backs this up. Any failure
rolls back the order, its items, every stock change and the coin grants.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .coins import evaluate_bonuses, grant_coins
from .errors import (
    ConflictError,
    EmptyCartError,
    InsufficientStockError,
    ProductNotFoundError,
    ProductUnavailableError,
    UserNotFoundError,
)
from .models import Order, OrderItem, OrderStatus, Product, User
from .schemas import CheckoutRequest, OrderLine, OrderReceipt

logger = logging.getLogger(__name__)


@dataclass
class _Line:
    product_id: str
    title: str
    qty: int
    unit_price_cents: int

    @property
    def subtotal_cents(self) -> int:
        return self.unit_price_cents * self.qty


def _requested_quantities(request: CheckoutRequest) -> Dict[str, int]:
    # repeated products are merged so the stock check sees the full quantity
    quantities: Dict[str, int] = {}
    for item in request.items:
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.qty
    return quantities


class CheckoutService:
    def __init__(self, session_factory: async_sessionmaker,
                 clock: Callable[[], datetime] = datetime.now):
        self.session_factory = session_factory
        self.clock = clock

    async def _validate(self, session: AsyncSession, request: CheckoutRequest) -> List[_Line]:
        if await session.get(User, request.user_id) is None:
            raise UserNotFoundError(request.user_id)

        quantities = _requested_quantities(request)

        products = {}
        for product_id in quantities:
            product = await session.get(Product, product_id, populate_existing=True)
            if product is None:
                raise ProductNotFoundError(product_id)
            if not product.active:
                raise ProductUnavailableError(product.title)
            products[product_id] = product

        lines = []
        for product_id, qty in quantities.items():
            product = products[product_id]
            if product.stock < qty:
                raise InsufficientStockError(product.title, product.stock, qty)
            lines.append(_Line(product.id, product.title, qty, product.price_cents))
        return lines

    async def _decrement_stock(self, session: AsyncSession, line: _Line, now: datetime) -> None:
        result = await session.execute(
            update(Product)
            .where(Product.id == line.product_id, Product.stock >= line.qty)
            .values(stock=Product.stock - line.qty, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            available = await session.scalar(select(Product.stock).where(Product.id == line.product_id))
            raise InsufficientStockError(line.title, available or 0, line.qty)

    async def checkout(self, request: CheckoutRequest) -> OrderReceipt:
        if not request.user_id or not request.items:
            raise EmptyCartError()

        now = self.clock()

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    lines = await self._validate(session, request)
                    total_cents = sum(line.subtotal_cents for line in lines)
                    bonuses = await evaluate_bonuses(session, request.user_id, now)
                    coins_granted = sum(coins for _, coins in bonuses)

                    order = Order(
                        user_id=request.user_id,
                        status=OrderStatus.PENDING,
                        payment=request.payment,
                        total_cents=total_cents,
                        coins_granted=coins_granted,
                        address=request.address,
                        note=request.note,
                        created_at=now,
                        updated_at=now,
                        items=[
                            OrderItem(
                                product_id=line.product_id,
                                qty=line.qty,
                                price_cents=line.unit_price_cents,
                                title_snapshot=line.title,
                            )
                            for line in lines
                        ],
                    )
                    session.add(order)
                    await session.flush()

                    for line in lines:
                        await self._decrement_stock(session, line, now)

                    for reason, coins in bonuses:
                        grant_coins(session, request.user_id, coins, reason,
                                    order_id=order.id, created_at=now)
        except IntegrityError as e:
            logger.error(f"Checkout rejected by the database for user {request.user_id}: {e.orig}")
            raise ConflictError("Order could not be completed, please review the cart and try again") from e

        logger.info(
            f"Order created: id={order.id} user={request.user_id} total_cents={total_cents} "
            f"coins={coins_granted} items={len(lines)}"
        )

        return OrderReceipt(
            order_id=order.id,
            user_id=order.user_id,
            total_cents=total_cents,
            coins_granted=coins_granted,
            status=order.status,
            payment=order.payment,
            address=order.address,
            note=order.note,
            created_at=order.created_at,
            items=[
                OrderLine(
                    product_id=line.product_id,
                    title=line.title,
                    qty=line.qty,
                    unit_price_cents=line.unit_price_cents,
                    subtotal_cents=line.subtotal_cents,
                )
                for line in lines
            ],
        )
