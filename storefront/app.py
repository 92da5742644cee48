import asyncio
import logging
from typing import Optional

from storefront.cart import CartStore
from storefront.catalog import Catalog
from storefront.checkout import CheckoutOrchestrator, CompletionPolicy
from storefront.merchant import MerchantDesk
from storefront.notifications import Notifier
from storefront.preferences import ThemePreference
from storefront.session import SessionManager
from storefront.shared.logging_config import BackendCallLogger
from storefront.shared.utils import Settings, get_backend_client
from storefront.storage import KeyValueStore, MemoryStore

logger = logging.getLogger("storefront")

class Storefront:
    """
    Wires the stores around one backend handle. Use as an async context
    manager, or call ``start()`` and ``close()`` yourself.
    """

    def __init__(
        self,
        config: Settings,
        storage: Optional[KeyValueStore] = None,
        backend=None,
        completion: Optional[CompletionPolicy] = None,
    ):
        self.config = config
        self.storage = storage if storage is not None else MemoryStore()
        if backend is None:
            hooks = BackendCallLogger("storefront.backend").event_hooks()
            backend = get_backend_client(config, self.storage, event_hooks=hooks)
        self.backend = backend

        self.notifier = Notifier(duration_ms=config.NOTIFICATION_DURATION_MS)
        self.theme = ThemePreference(self.storage, config.THEME_STORAGE_KEY)
        self.cart = CartStore(self.storage, self.notifier, config.CART_STORAGE_KEY)
        self.catalog = Catalog(self.backend, news_limit=config.NEWS_LIMIT)
        self.session = SessionManager(self.backend, self.notifier)
        self.checkout = CheckoutOrchestrator(
            self.backend,
            self.cart,
            self.session,
            self.notifier,
            completion=completion,
            tax_rate=config.TAX_RATE,
            payment_method=config.PAYMENT_METHOD,
        )
        self.merchant = MerchantDesk(self.backend, self.catalog, self.session, self.notifier)
        self.loading = True

    async def start(self):
        self.theme.load()
        self.cart.hydrate()
        self.loading = True
        try:
            await asyncio.gather(self.catalog.load(), self.session.start())
        finally:
            self.loading = False
        logger.info("Storefront ready", extra={"event": "startup"})

    async def close(self):
        await self.session.close()
        await self.backend.aclose()

    async def __aenter__(self) -> "Storefront":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
