from decimal import Decimal

import pytest

from storefront.cart import CartStore
from storefront.catalog import Catalog
from storefront.checkout import CheckoutOrchestrator
from storefront.models import NewsItem, Product, User
from storefront.notifications import Notifier
from storefront.session import SessionManager
from storefront.storage import MemoryStore
from tests.fakes import FakeBackend


@pytest.fixture
def product():
    return Product(id="100", title="Icon Pack", description="Vector icons", price=Decimal("100"), type="package")


@pytest.fixture
def products(product):
    return [
        product,
        Product(id="200", title="React Course", description="Learn React with TypeScript",
                price=Decimal("120.00"), type="digital_product"),
        Product(id="300", title="Monthly Fonts", description="A new ARABIC font every month",
                price=Decimal("9.99"), type="subscription"),
    ]


@pytest.fixture
def customer():
    return User(id="user-1", email="buyer@example.com", name="Sara", role="customer")


@pytest.fixture
def merchant():
    return User(id="merchant-1", email="seller@example.com", name="Omar", role="merchant")


@pytest.fixture
def backend(products, customer, merchant):
    fake = FakeBackend(
        products=products,
        news=[NewsItem(id="n1", title="Sale", content="Everything half price", type="offer")],
        users=[customer, merchant],
    )
    fake.passwords[customer.email] = "Password123"
    fake.passwords[merchant.email] = "Password123"
    return fake


@pytest.fixture
def storage():
    return MemoryStore()


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def cart(storage, notifier):
    return CartStore(storage, notifier)


@pytest.fixture
def catalog(backend):
    return Catalog(backend)


@pytest.fixture
def session(backend, notifier):
    return SessionManager(backend, notifier)


@pytest.fixture
def orchestrator(backend, cart, session, notifier):
    return CheckoutOrchestrator(backend, cart, session, notifier)
