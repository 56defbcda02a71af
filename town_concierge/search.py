import logging
from typing import Iterable, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import selectinload

from .models import Product, Seller
from .schemas import ProductSearchResult, SearchOptions, SellerInfo

logger = logging.getLogger(__name__)

TITLE_MATCH_SCORE = 10
TITLE_PREFIX_BONUS = 5
DESCRIPTION_MATCH_SCORE = 5
CATEGORY_MATCH_SCORE = 3
IN_STOCK_BONUS = 2
HIGH_STOCK_BONUS = 1
HIGH_STOCK_THRESHOLD = 10

OVERFETCH_FACTOR = 2
CATEGORY_RESULT_SCORE = 5


def calculate_relevance_score(product, keywords: Iterable[str]) -> int:
    """Additive score: where each keyword matches, plus availability bonuses."""
    score = 0
    title = (product.title or "").lower()
    description = (product.description or "").lower()
    category = (product.category or "").lower()

    for keyword in keywords:
        keyword = keyword.lower()

        if keyword in title:
            score += TITLE_MATCH_SCORE
            if title.startswith(keyword):
                score += TITLE_PREFIX_BONUS

        if keyword in description:
            score += DESCRIPTION_MATCH_SCORE

        if keyword in category:
            score += CATEGORY_MATCH_SCORE

    if product.stock > 0:
        score += IN_STOCK_BONUS
    if product.stock > HIGH_STOCK_THRESHOLD:
        score += HIGH_STOCK_BONUS

    return score


def to_search_result(product: Product, relevance_score: int = 0) -> ProductSearchResult:
    seller_info = None
    seller = product.seller
    if seller is not None:
        user = seller.user
        seller_info = SellerInfo(
            store_name=seller.store_name,
            tower=seller.tower,
            phone=user.phone if user else None,
            name=user.name if user else None,
        )

    return ProductSearchResult(
        id=product.id,
        title=product.title,
        description=product.description,
        price_cents=product.price_cents,
        stock=product.stock,
        image_url=product.image_url,
        category=product.category,
        seller=seller_info,
        relevance_score=relevance_score,
    )


class ProductSearchEngine:
    """Keyword search over active products, ranked by relevance.

    Data-layer failures never reach the caller: they are logged and the
    search returns no results.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    def _base_query(self):
        return (
            select(Product)
            .options(selectinload(Product.seller).selectinload(Seller.user))
            .where(Product.active.is_(True))
        )

    async def search_products(
        self, keywords: List[str], options: Optional[SearchOptions] = None
    ) -> List[ProductSearchResult]:
        options = options or SearchOptions()
        if not keywords:
            return []

        try:
            # every keyword has to hit title, description or category
            conditions = [
                or_(
                    Product.title.icontains(keyword, autoescape=True),
                    Product.description.icontains(keyword, autoescape=True),
                    Product.category.icontains(keyword, autoescape=True),
                )
                for keyword in keywords
            ]

            stmt = self._base_query().where(*conditions)

            if not options.include_out_of_stock:
                stmt = stmt.where(Product.stock > 0)
            if options.category_filter:
                stmt = stmt.where(Product.category.icontains(options.category_filter, autoescape=True))
            if options.min_price is not None:
                stmt = stmt.where(Product.price_cents >= options.min_price)
            if options.max_price is not None:
                stmt = stmt.where(Product.price_cents <= options.max_price)

            stmt = stmt.order_by(
                Product.stock.desc(), Product.created_at.desc(), Product.id
            ).limit(options.limit * OVERFETCH_FACTOR)

            async with self.session_factory() as session:
                products = (await session.execute(stmt)).scalars().all()
                scored = [
                    to_search_result(p, calculate_relevance_score(p, keywords))
                    for p in products
                ]

            # stable sort, ties keep the stock/recency order of the query
            scored.sort(key=lambda r: r.relevance_score, reverse=True)
            results = scored[:options.limit]

            logger.info(
                f"Product search completed: keywords={keywords[:3]} results={len(results)}"
            )
            return results

        except Exception as e:
            logger.error(f"Error searching products: {e} keywords={keywords[:3]}")
            return []

    async def get_products_by_category(self, category: str, limit: int = 10) -> List[ProductSearchResult]:
        try:
            stmt = (
                self._base_query()
                .where(Product.category == category, Product.stock > 0)
                .order_by(Product.stock.desc(), Product.created_at.desc(), Product.id)
                .limit(limit)
            )
            async with self.session_factory() as session:
                products = (await session.execute(stmt)).scalars().all()
                return [to_search_result(p, CATEGORY_RESULT_SCORE) for p in products]
        except Exception as e:
            logger.error(f"Error getting products by category '{category}': {e}")
            return []

    async def get_available_categories(self) -> List[str]:
        """Distinct categories of active, in-stock products, sorted."""
        try:
            stmt = (
                select(Product.category)
                .where(
                    Product.active.is_(True),
                    Product.stock > 0,
                    Product.category.is_not(None),
                )
                .distinct()
                .order_by(Product.category)
            )
            async with self.session_factory() as session:
                categories = (await session.execute(stmt)).scalars().all()
            return [c for c in categories if c]
        except Exception as e:
            logger.error(f"Error getting categories: {e}")
            return []
