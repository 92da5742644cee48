import logging
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from storefront.models import CartItem, Product
from storefront.notifications import Notifier
from storefront.storage import KeyValueStore, load_json

logger = logging.getLogger("storefront.cart")

CART_ADAPTER = TypeAdapter(List[CartItem])

def serialize_cart(items: List[CartItem]) -> str:
    return CART_ADAPTER.dump_json(items).decode("utf-8")

def deserialize_cart(raw) -> List[CartItem]:
    return CART_ADAPTER.validate_python(raw)

class CartStore:
    """
    Ordered cart, unique by product id, mirrored to ``storage`` after every
    mutation. Persistence is synchronous: when a method returns, the stored
    copy already matches memory.
    """

    def __init__(self, storage: KeyValueStore, notifier: Notifier, storage_key: str = "digistore_cart"):
        self.storage = storage
        self.notifier = notifier
        self.storage_key = storage_key
        self._items: List[CartItem] = []

    def hydrate(self) -> List[CartItem]:
        raw = load_json(self.storage, self.storage_key)
        if raw is None:
            self._items = []
            return self.items
        try:
            self._items = self._dedupe(deserialize_cart(raw))
        except ValidationError:
            logger.warning("Stored cart is invalid, starting with an empty cart")
            self._items = []
        return self.items

    @staticmethod
    def _dedupe(items: List[CartItem]) -> List[CartItem]:
        merged = {}
        for item in items:
            if item.id in merged:
                merged[item.id].quantity += item.quantity
            else:
                merged[item.id] = item
        return list(merged.values())

    @property
    def items(self) -> List[CartItem]:
        return [item.model_copy() for item in self._items]

    def __len__(self) -> int:
        return len(self._items)

    def find(self, product_id: str) -> Optional[CartItem]:
        for item in self._items:
            if item.id == product_id:
                return item
        return None

    def _persist(self):
        try:
            self.storage.set(self.storage_key, serialize_cart(self._items))
        except OSError:
            logger.error("Failed to persist cart", exc_info=True)

    def add_item(self, product: Product) -> CartItem:
        existing = self.find(product.id)
        if existing:
            existing.quantity += 1
            item = existing
        else:
            item = CartItem(**product.model_dump(exclude={"quantity"}), quantity=1)
            self._items.append(item)
        self._persist()
        logger.info("Added to cart", extra={"product_id": product.id, "event": "cart_add"})
        self.notifier.success(f'Added "{product.title}" to the cart')
        return item.model_copy()

    def update_quantity(self, product_id: str, delta: int) -> Optional[CartItem]:
        item = self.find(product_id)
        if item is None:
            return None
        item.quantity = max(1, item.quantity + delta)
        self._persist()
        return item.model_copy()

    def remove_item(self, product_id: str) -> bool:
        item = self.find(product_id)
        if item is None:
            return False
        self._items.remove(item)
        self._persist()
        logger.info("Removed from cart", extra={"product_id": product_id, "event": "cart_remove"})
        self.notifier.info("Product removed from the cart")
        return True

    def clear(self):
        self._items = []
        self._persist()

    def remove_submitted(self, submitted: List[CartItem]):
        """Takes ordered quantities out of the cart, keeping anything added since."""
        ordered = {item.id: item.quantity for item in submitted}
        remaining = []
        for item in self._items:
            item.quantity -= ordered.get(item.id, 0)
            if item.quantity > 0:
                remaining.append(item)
        self._items = remaining
        self._persist()

    def total_item_count(self) -> int:
        return sum(item.quantity for item in self._items)

