import asyncio
import logging
from typing import List, Optional

from storefront.constants import DEFAULT_NEWS, DEFAULT_PRODUCTS, FILTER_TYPES
from storefront.models import NewsItem, Product
from storefront.shared.utils import StoreException

logger = logging.getLogger("storefront.catalog")

class Catalog:
    """Products and news fetched once per session, then searched in memory."""

    def __init__(self, backend, news_limit: int = 10):
        self.backend = backend
        self.news_limit = news_limit
        self.products: List[Product] = list(DEFAULT_PRODUCTS)
        self.news: List[NewsItem] = list(DEFAULT_NEWS)
        self.loaded = False

    async def _fetch_products(self) -> List[Product]:
        try:
            return await self.backend.list_products()
        except (StoreException, ValueError) as e:
            logger.warning(f"Error loading products: {getattr(e, 'detail', e)}", extra={"event": "catalog_load"})
            return []

    async def _fetch_news(self) -> List[NewsItem]:
        try:
            return await self.backend.list_news(self.news_limit)
        except (StoreException, ValueError) as e:
            logger.warning(f"Error loading news: {getattr(e, 'detail', e)}", extra={"event": "catalog_load"})
            return []

    async def load(self):
        if self.loaded:
            return
        products, news = await asyncio.gather(self._fetch_products(), self._fetch_news())
        # Empty results keep the built-in catalog on screen.
        self.products = list(products) if products else list(DEFAULT_PRODUCTS)
        self.news = list(news) if news else list(DEFAULT_NEWS)
        self.loaded = True
        logger.info(
            f"Catalog loaded: {len(self.products)} products, {len(self.news)} news",
            extra={"event": "catalog_load"},
        )

    def get(self, product_id: str) -> Optional[Product]:
        for product in self.products:
            if product.id == product_id:
                return product
        return None

    def add(self, product: Product):
        self.products = [product] + [p for p in self.products if p.id != product.id]

    def filter(self, query: str = "", type: str = "all") -> List[Product]:
        if type not in FILTER_TYPES:
            raise ValueError(f"Unknown product type filter: {type}")
        needle = query.strip().lower()

        def matches(product: Product) -> bool:
            matches_search = not needle or (
                needle in product.title.lower() or needle in product.description.lower()
            )
            matches_type = type == "all" or product.type == type
            return matches_search and matches_type

        return [p for p in self.products if matches(p)]
