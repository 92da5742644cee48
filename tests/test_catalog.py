import pytest

from storefront.catalog import Catalog
from storefront.constants import DEFAULT_NEWS, DEFAULT_PRODUCTS
from storefront.models import Product
from tests.fakes import FakeBackend


@pytest.mark.asyncio
async def test_load_uses_backend_listings(catalog, backend, products):
    await catalog.load()
    assert catalog.loaded
    assert [p.id for p in catalog.products] == [p.id for p in products]
    assert catalog.news[0].title == "Sale"


@pytest.mark.asyncio
async def test_empty_backend_falls_back_to_default_catalog():
    catalog = Catalog(FakeBackend())
    await catalog.load()
    assert catalog.products == list(DEFAULT_PRODUCTS)
    assert catalog.news == list(DEFAULT_NEWS)
    assert catalog.filter()


@pytest.mark.asyncio
async def test_fetch_failure_is_logged_not_raised(backend, caplog):
    backend.fail = {"list_products", "list_news"}
    catalog = Catalog(backend)
    await catalog.load()
    assert catalog.products == list(DEFAULT_PRODUCTS)
    assert "Error loading products" in caplog.text


@pytest.mark.asyncio
async def test_load_fetches_once(catalog, backend):
    await catalog.load()
    await catalog.load()
    assert backend.calls.count("list_products") == 1


@pytest.mark.asyncio
async def test_filter_is_case_insensitive_on_title_and_description(catalog, backend):
    await catalog.load()
    assert [p.id for p in catalog.filter("react")] == ["200"]
    assert [p.id for p in catalog.filter("arabic")] == ["300"]
    assert [p.id for p in catalog.filter("  ICON ")] == ["100"]
    assert catalog.filter("nothing matches") == []
    assert backend.calls.count("list_products") == 1


@pytest.mark.asyncio
async def test_filter_by_type(catalog):
    await catalog.load()
    assert [p.id for p in catalog.filter(type="package")] == ["100"]
    assert [p.id for p in catalog.filter("course", "package")] == []
    assert len(catalog.filter(type="all")) == 3


def test_filter_rejects_unknown_type(catalog):
    with pytest.raises(ValueError):
        catalog.filter(type="hardware")


def test_add_prepends_and_replaces(catalog, product):
    new = Product(id="new", title="New", price="5", type="package")
    catalog.add(new)
    assert catalog.products[0].id == "new"
    catalog.add(new)
    assert [p.id for p in catalog.products].count("new") == 1
    assert catalog.get("new") == new
    assert catalog.get("missing") is None
