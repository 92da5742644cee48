import logging
import time

from storefront.catalog import Catalog
from storefront.constants import PLACEHOLDER_IMAGE_URL
from storefront.models import Product
from storefront.notifications import Notifier
from storefront.schemas import ProductCreate
from storefront.session import SessionManager
from storefront.shared.security_config import is_safe_image_url
from storefront.shared.utils import (
    ErrorResponse, InvalidProduct, NotAuthenticated, NotAuthorized, StoreException, SuccessResponse
)

logger = logging.getLogger("storefront.merchant")

SELLER_ROLES = ("merchant", "admin")

class MerchantDesk:
    """Lets merchants list new products; published products show up in the catalog at once."""

    def __init__(self, backend, catalog: Catalog, session: SessionManager, notifier: Notifier):
        self.backend = backend
        self.catalog = catalog
        self.session = session
        self.notifier = notifier

    def prepare(self, listing: ProductCreate) -> ProductCreate:
        user = self.session.current_user()
        if user is None:
            raise NotAuthenticated()
        if user.role not in SELLER_ROLES:
            raise NotAuthorized("Only merchants can publish products")
        if not listing.title:
            raise InvalidProduct("Product title is required")

        image_url = listing.image_url
        if not image_url:
            image_url = f"{PLACEHOLDER_IMAGE_URL}?random={int(time.time() * 1000)}"
        elif not is_safe_image_url(image_url):
            raise InvalidProduct("Image URL must start with http:// or https://")

        # model_copy skips validation, so fields are not escaped twice.
        return listing.model_copy(update={"seller_id": user.id, "image_url": image_url})

    async def publish(self, listing: ProductCreate):
        try:
            prepared = self.prepare(listing)
            product: Product = await self.backend.create_product(prepared)
        except StoreException as e:
            logger.warning(f"Product not published: {e.detail}", extra={"event": "product_publish"})
            self.notifier.error(e.detail)
            return e.to_response()
        except ValueError as e:
            logger.error(f"Unexpected product payload: {e}", extra={"event": "product_publish"})
            self.notifier.error("Something went wrong while publishing the product")
            return ErrorResponse(error="backend_unavailable", details=str(e))

        self.catalog.add(product)
        logger.info(
            "Product published",
            extra={"product_id": product.id, "user_id": product.seller_id, "event": "product_publish"},
        )
        self.notifier.success("Product published to the store")
        return SuccessResponse(data=product, message="Product published")
