import pytest

from town_concierge.checkout import CheckoutService
from town_concierge.errors import InvalidStatusError, InvalidTransitionError, OrderNotFoundError
from town_concierge.models import OrderStatus, User
from town_concierge.orders import ALLOWED_TRANSITIONS, OrderService, parse_status
from town_concierge.schemas import CartItem, CheckoutRequest


@pytest.fixture
def orders(session_factory, clock):
    return OrderService(session_factory, clock=clock)


@pytest.fixture
def place_order(session_factory, clock, add_product):
    checkout = CheckoutService(session_factory, clock=clock)

    async def _place(user_id, qty=1):
        product = await add_product("Pizza", stock=20)
        return await checkout.checkout(
            CheckoutRequest(user_id=user_id, items=[CartItem(product_id=product.id, qty=qty)])
        )

    return _place


def test_terminal_statuses_have_no_exits():
    assert ALLOWED_TRANSITIONS[OrderStatus.CANCELLED] == frozenset()
    assert ALLOWED_TRANSITIONS[OrderStatus.DELIVERED] == frozenset()


def test_parse_status_is_exact():
    assert parse_status("PAID") == OrderStatus.PAID
    with pytest.raises(InvalidStatusError):
        parse_status("paid")
    with pytest.raises(InvalidStatusError):
        parse_status("SHIPPED")


async def test_order_moves_forward(orders, customer, place_order):
    receipt = await place_order(customer.id)

    paid = await orders.update_status(receipt.order_id, "PAID")
    delivered = await orders.update_status(receipt.order_id, "DELIVERED")

    assert paid.status == OrderStatus.PAID
    assert delivered.status == OrderStatus.DELIVERED
    assert delivered.items[0].title == "Pizza"


@pytest.mark.parametrize("path, rejected", [
    (["CANCELLED"], "PAID"),
    (["DELIVERED"], "CANCELLED"),
    (["PAID"], "PENDING"),
    ([], "PENDING"),
])
async def test_invalid_transitions(orders, customer, place_order, path, rejected):
    receipt = await place_order(customer.id)
    for status in path:
        await orders.update_status(receipt.order_id, status)

    with pytest.raises(InvalidTransitionError) as excinfo:
        await orders.update_status(receipt.order_id, rejected)

    assert excinfo.value.status_code == 409
    current = await orders.get_order(receipt.order_id)
    assert current.status == OrderStatus(path[-1] if path else "PENDING")


async def test_unknown_status_is_rejected(orders, customer, place_order):
    receipt = await place_order(customer.id)

    with pytest.raises(InvalidStatusError):
        await orders.update_status(receipt.order_id, "SHIPPED")


async def test_missing_order(orders):
    with pytest.raises(OrderNotFoundError):
        await orders.get_order("missing")
    with pytest.raises(OrderNotFoundError):
        await orders.update_status("missing", "PAID")


async def test_list_orders_filters_and_pages(orders, session_factory, customer, clock, place_order):
    async with session_factory() as session:
        async with session.begin():
            other = User(phone="+573005550000", name="Ana")
            session.add(other)

    first = await place_order(customer.id)
    clock.advance(minutes=5)
    second = await place_order(customer.id)
    clock.advance(minutes=5)
    await place_order(other.id)
    await orders.update_status(first.order_id, "PAID")

    page = await orders.list_orders(user_id=customer.id, page=1, limit=1)
    assert page.pagination.total == 2
    assert page.pagination.pages == 2
    assert [o.order_id for o in page.data] == [second.order_id]

    paid = await orders.list_orders(status="PAID")
    assert [o.order_id for o in paid.data] == [first.order_id]

    everything = await orders.list_orders()
    assert everything.pagination.total == 3

    with pytest.raises(InvalidStatusError):
        await orders.list_orders(status="LOST")


async def test_paid_order_blocks_first_purchase_bonus(orders, customer, place_order):
    first = await place_order(customer.id)
    await orders.update_status(first.order_id, "PAID")

    assert first.coins_granted == 150
    second = await place_order(customer.id)
    assert second.coins_granted == 0
