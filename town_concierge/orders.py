import logging
import math
from datetime import datetime
from typing import Callable, Dict, FrozenSet, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import selectinload

from .errors import InvalidStatusError, InvalidTransitionError, OrderNotFoundError
from .models import Order, OrderStatus
from .schemas import OrderLine, OrderPage, OrderReceipt, Pagination

logger = logging.getLogger(__name__)

# Status only moves forward; cancelled and delivered orders are final
ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.CANCELLED, OrderStatus.DELIVERED}),
    OrderStatus.PAID: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.DELIVERED: frozenset(),
}

MAX_PAGE_SIZE = 100


def parse_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidStatusError(value)


def to_receipt(order: Order) -> OrderReceipt:
    return OrderReceipt(
        order_id=order.id,
        user_id=order.user_id,
        total_cents=order.total_cents,
        coins_granted=order.coins_granted,
        status=order.status,
        payment=order.payment,
        address=order.address,
        note=order.note,
        created_at=order.created_at,
        items=[
            OrderLine(
                product_id=item.product_id,
                title=item.title_snapshot,
                qty=item.qty,
                unit_price_cents=item.price_cents,
                subtotal_cents=item.price_cents * item.qty,
            )
            for item in order.items
        ],
    )


class OrderService:
    def __init__(self, session_factory: async_sessionmaker,
                 clock: Callable[[], datetime] = datetime.now):
        self.session_factory = session_factory
        self.clock = clock

    async def get_order(self, order_id: str) -> OrderReceipt:
        async with self.session_factory() as session:
            order = await session.scalar(
                select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
            )
            if order is None:
                raise OrderNotFoundError(order_id)
            return to_receipt(order)

    async def list_orders(self, status: Optional[str] = None, user_id: Optional[str] = None,
                          page: int = 1, limit: int = 20) -> OrderPage:
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        filters = []
        if status:
            filters.append(Order.status == parse_status(status))
        if user_id:
            filters.append(Order.user_id == user_id)

        async with self.session_factory() as session:
            total = await session.scalar(select(func.count(Order.id)).where(*filters))
            orders = (await session.execute(
                select(Order)
                .options(selectinload(Order.items))
                .where(*filters)
                .order_by(Order.created_at.desc(), Order.id)
                .offset((page - 1) * limit)
                .limit(limit)
            )).scalars().all()

            return OrderPage(
                data=[to_receipt(o) for o in orders],
                pagination=Pagination(
                    page=page,
                    limit=limit,
                    total=total or 0,
                    pages=math.ceil((total or 0) / limit),
                ),
            )

    async def update_status(self, order_id: str, status: str) -> OrderReceipt:
        target = parse_status(status)

        async with self.session_factory() as session:
            async with session.begin():
                order = await session.get(Order, order_id)
                if order is None:
                    raise OrderNotFoundError(order_id)

                current = order.status
                if target not in ALLOWED_TRANSITIONS[current]:
                    raise InvalidTransitionError(current.value, target.value)

                # guarded on the status we validated against
                result = await session.execute(
                    update(Order)
                    .where(Order.id == order_id, Order.status == current)
                    .values(status=target, updated_at=self.clock())
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise InvalidTransitionError(current.value, target.value)

            logger.info(f"Order status updated: id={order_id} {current.value} -> {target.value}")

        return await self.get_order(order_id)
