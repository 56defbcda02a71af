import pytest

from town_concierge.catalog import CatalogService
from town_concierge.coins import CoinService
from town_concierge.errors import (
    ConflictError,
    ProductMissingError,
    SellerNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from town_concierge.models import Role
from town_concierge.schemas import ProductCreate, ProductUpdate, SellerCreate, UserCreate
from town_concierge.search import ProductSearchEngine


@pytest.fixture
def catalog(session_factory):
    return CatalogService(session_factory)


async def test_register_user_and_seller(catalog):
    user = await catalog.register_user(UserCreate(phone="+573001234567", name="Lucía"))
    store = await catalog.register_seller(SellerCreate(user_id=user.id, store_name="Panadería Lucía"))

    assert user.role == Role.CUSTOMER
    assert store.user_id == user.id
    assert store.store_name == "Panadería Lucía"


async def test_duplicate_phone(catalog):
    await catalog.register_user(UserCreate(phone="+573001234567"))

    with pytest.raises(ConflictError):
        await catalog.register_user(UserCreate(phone="+573001234567"))


async def test_seller_requires_existing_user(catalog):
    with pytest.raises(UserNotFoundError):
        await catalog.register_seller(SellerCreate(user_id="ghost", store_name="Tienda"))


async def test_one_store_per_user(catalog):
    user = await catalog.register_user(UserCreate(phone="+573001234567"))
    await catalog.register_seller(SellerCreate(user_id=user.id, store_name="Uno"))

    with pytest.raises(ConflictError):
        await catalog.register_seller(SellerCreate(user_id=user.id, store_name="Dos"))


async def test_product_requires_existing_seller(catalog):
    with pytest.raises(SellerNotFoundError):
        await catalog.create_product(ProductCreate(seller_id="ghost", title="Pizza", price_cents=100))


async def test_create_update_and_deactivate_product(catalog, session_factory, seller):
    product = await catalog.create_product(ProductCreate(
        seller_id=seller.id, title="Kuchen de manzana", price_cents=800000, stock=4, category="postres",
    ))
    assert product.active

    updated = await catalog.update_product(product.id, ProductUpdate(stock=9, price_cents=850000))
    assert (updated.stock, updated.price_cents, updated.title) == (9, 850000, "Kuchen de manzana")

    removed = await catalog.deactivate_product(product.id)
    assert not removed.active
    # still readable for order history, gone from chat search
    assert (await catalog.get_product(product.id)).active is False
    assert await ProductSearchEngine(session_factory).search_products(["kuchen"]) == []


@pytest.mark.parametrize("field", ["title", "price_cents", "stock", "active"])
async def test_required_fields_cannot_be_cleared(catalog, seller, field):
    product = await catalog.create_product(ProductCreate(
        seller_id=seller.id, title="Kuchen de manzana", price_cents=800000, stock=4,
    ))

    with pytest.raises(ValidationError) as excinfo:
        await catalog.update_product(product.id, ProductUpdate.model_validate({field: None}))

    assert excinfo.value.status_code == 400
    assert field in excinfo.value.message
    assert (await catalog.get_product(product.id)).price_cents == 800000


async def test_optional_fields_can_be_cleared(catalog, seller):
    product = await catalog.create_product(ProductCreate(
        seller_id=seller.id, title="Kuchen", price_cents=800000, category="postres",
    ))

    updated = await catalog.update_product(product.id, ProductUpdate.model_validate({"category": None}))

    assert updated.category is None


async def test_missing_product(catalog):
    with pytest.raises(ProductMissingError):
        await catalog.get_product("missing")
    with pytest.raises(ProductMissingError):
        await catalog.update_product("missing", ProductUpdate(stock=1))


async def test_list_products(catalog, add_product):
    await add_product("Pan amasado", category="panes", description="Horneado en LEÑA")
    await add_product("Pan de molde", category="panes", active=False)
    await add_product("Jugo natural", category="bebidas")

    assert {p.title for p in await catalog.list_products(query="pan")} == {"Pan amasado", "Pan de molde"}
    assert [p.title for p in await catalog.list_products(query="leña")] == ["Pan amasado"]
    assert [p.title for p in await catalog.list_products(category="panes", active=True)] == ["Pan amasado"]
    assert len(await catalog.list_products(page=2, limit=2)) == 1


async def test_coin_balance_for_unknown_user(session_factory):
    with pytest.raises(UserNotFoundError):
        await CoinService(session_factory).balance("ghost")


async def test_coin_balance_without_activity(session_factory, customer):
    balance = await CoinService(session_factory).balance(customer.id)

    assert balance.balance == 0
    assert balance.transactions == []
