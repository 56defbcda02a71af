"""
Catalog management: users, sellers and product listings.

Products always belong to an explicit, existing seller. Sellers are
registered up front; nothing here creates a placeholder seller on demand.
"""

import logging
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from .errors import (
    ConflictError,
    ProductMissingError,
    SellerNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from .models import Product, Role, Seller, User
from .schemas import ProductCreate, ProductOut, ProductUpdate, SellerCreate, SellerOut, UserCreate, UserOut

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

# PATCH may omit these but never clear them
REQUIRED_PRODUCT_FIELDS = ("title", "price_cents", "stock", "active")


class CatalogService:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def register_user(self, data: UserCreate) -> UserOut:
        async with self.session_factory() as session:
            async with session.begin():
                existing = await session.scalar(select(User.id).where(User.phone == data.phone))
                if existing is not None:
                    raise ConflictError("Phone already registered")
                user = User(phone=data.phone, name=data.name, email=data.email, role=data.role)
                session.add(user)
            logger.info(f"User registered: {user.id}")
            return UserOut.model_validate(user)

    async def register_seller(self, data: SellerCreate) -> SellerOut:
        async with self.session_factory() as session:
            async with session.begin():
                user = await session.get(User, data.user_id)
                if user is None:
                    raise UserNotFoundError(data.user_id)
                existing = await session.scalar(select(Seller.id).where(Seller.user_id == data.user_id))
                if existing is not None:
                    raise ConflictError("User already has a store")

                seller = Seller(user_id=user.id, store_name=data.store_name, tower=data.tower)
                user.role = Role.SELLER
                session.add(seller)
            logger.info(f"Seller registered: {seller.id} for user {user.id}")
            return SellerOut.model_validate(seller)

    async def create_product(self, data: ProductCreate) -> ProductOut:
        async with self.session_factory() as session:
            async with session.begin():
                if await session.get(Seller, data.seller_id) is None:
                    raise SellerNotFoundError(data.seller_id)
                product = Product(**data.model_dump())
                session.add(product)
            logger.info(f"Product created: {product.id} seller={data.seller_id}")
            return ProductOut.model_validate(product)

    async def update_product(self, product_id: str, data: ProductUpdate) -> ProductOut:
        changes = data.model_dump(exclude_unset=True)
        cleared = [f for f in REQUIRED_PRODUCT_FIELDS if f in changes and changes[f] is None]
        if cleared:
            raise ValidationError(f"Fields cannot be null: {', '.join(cleared)}")

        async with self.session_factory() as session:
            async with session.begin():
                product = await session.get(Product, product_id)
                if product is None:
                    raise ProductMissingError(product_id)
                for field, value in changes.items():
                    setattr(product, field, value)
            await session.refresh(product)
            logger.info(f"Product updated: {product_id} fields={sorted(changes)}")
            return ProductOut.model_validate(product)

    async def deactivate_product(self, product_id: str) -> ProductOut:
        """Soft delete: the product stays for order history but leaves the catalog."""
        return await self.update_product(product_id, ProductUpdate(active=False))

    async def get_product(self, product_id: str) -> ProductOut:
        async with self.session_factory() as session:
            product = await session.get(Product, product_id)
            if product is None:
                raise ProductMissingError(product_id)
            return ProductOut.model_validate(product)

    async def list_products(self, query: Optional[str] = None, category: Optional[str] = None,
                            active: Optional[bool] = None, page: int = 1, limit: int = 50) -> List[ProductOut]:
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        stmt = select(Product)
        if query:
            stmt = stmt.where(or_(
                Product.title.icontains(query, autoescape=True),
                Product.description.icontains(query, autoescape=True),
            ))
        if category:
            stmt = stmt.where(Product.category == category)
        if active is not None:
            stmt = stmt.where(Product.active.is_(active))

        stmt = stmt.order_by(Product.created_at.desc(), Product.id).offset((page - 1) * limit).limit(limit)

        async with self.session_factory() as session:
            products = (await session.execute(stmt)).scalars().all()
            return [ProductOut.model_validate(p) for p in products]
