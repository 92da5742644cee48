from decimal import Decimal

from storefront.models import NewsItem, Product

PLACEHOLDER_IMAGE_URL = "https://picsum.photos/400/400"

# Values accepted by Catalog.filter(type=...)
FILTER_TYPES = ("all", "package", "digital_product", "subscription")

# Shown whenever the backend returns nothing or cannot be reached.
DEFAULT_PRODUCTS = (
    Product(
        id="1",
        title="Pro Designer Bundle",
        description="Arabic typefaces and high resolution vector icon sets.",
        price=Decimal("49.99"),
        type="package",
        seller_id="merchant_1",
        image_url="https://picsum.photos/400/400?random=1",
    ),
    Product(
        id="2",
        title="Advanced React Course",
        description="A complete course on React with TypeScript.",
        price=Decimal("120.00"),
        type="digital_product",
        seller_id="merchant_1",
        image_url="https://picsum.photos/400/400?random=2",
    ),
    Product(
        id="3",
        title="Storefront Website Template",
        description="Ready made HTML/CSS template with full right-to-left support.",
        price=Decimal("25.50"),
        type="digital_product",
        seller_id="merchant_2",
        image_url="https://picsum.photos/400/400?random=3",
    ),
    Product(
        id="4",
        title="Marketing Bundle",
        description="Ready marketing plans and social media posts.",
        price=Decimal("75.00"),
        type="package",
        seller_id="merchant_2",
        image_url="https://picsum.photos/400/400?random=4",
    ),
)

DEFAULT_NEWS = (
    NewsItem(
        id="1",
        title="50% off",
        content="Get 50% off every bundle until the end of the week.",
        type="offer",
    ),
    NewsItem(
        id="2",
        title="Platform update",
        content="New payment methods were added to make checkout easier.",
        type="update",
    ),
    NewsItem(
        id="3",
        title="Scheduled maintenance",
        content="The store will be under maintenance next Friday.",
        type="alert",
    ),
)
