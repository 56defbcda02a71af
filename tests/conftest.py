from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from town_concierge.db import create_engine, init_models, make_session_factory
from town_concierge.models import Product, Role, Seller, User
from town_concierge.schemas import SendResult
from town_concierge.whatsapp import OutboundSender


class RecordingSender(OutboundSender):
    """Outbound sender that remembers every attempt.

    ``results`` is consumed one item per send: a SendResult is returned,
    an exception is raised. Once empty every send succeeds.
    """

    provider = "recording"

    def __init__(self, results=None):
        self.sent = []
        self.results = list(results or [])

    async def send(self, to, text):
        self.sent.append((to, text))
        if self.results:
            outcome = self.results.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return SendResult(success=True, message_id=f"msg-{len(self.sent)}")


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 5, 10, 10, 30))


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'town.db'}")
    await init_models(engine)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def seller(session_factory):
    async with session_factory() as session:
        async with session.begin():
            owner = User(phone="+573001112233", name="Doña Marta", role=Role.SELLER)
            session.add(owner)
            await session.flush()
            store = Seller(user_id=owner.id, store_name="Tienda Marta", tower="Torre A")
            session.add(store)
        return store


@pytest_asyncio.fixture
async def customer(session_factory):
    async with session_factory() as session:
        async with session.begin():
            user = User(phone="+573009998877", name="Carlos")
            session.add(user)
        return user


@pytest.fixture
def add_product(session_factory, seller):
    async def _add(title, stock=10, price_cents=500000, **fields):
        async with session_factory() as session:
            async with session.begin():
                product = Product(
                    seller_id=seller.id, title=title, stock=stock, price_cents=price_cents, **fields
                )
                session.add(product)
            return product

    return _add
