import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx
import pytest

from storefront.backend import HttpBackend, promo_discount, token_expiry
from storefront.models import AuthSession, PromoCode
from storefront.schemas import OrderCreate, ProductCreate, UserLogin
from storefront.shared.logging_config import BackendCallLogger
from storefront.shared.utils import BackendUnavailable, NotAuthenticated
from storefront.storage import MemoryStore
from tests.rest_app import create_app, make_token


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def storage():
    return MemoryStore()


def make_backend(app, storage, event_hooks=None):
    return HttpBackend(
        base_url="http://testserver",
        anon_key="anon-key",
        storage=storage,
        event_hooks=event_hooks,
        transport=httpx.ASGITransport(app=app),
    )


@pytest.mark.asyncio
async def test_list_products_and_news(app, storage):
    backend = make_backend(app, storage)
    products = await backend.list_products()
    assert [p.id for p in products] == ["100"]
    assert products[0].price == Decimal("100")
    assert await backend.list_news() == []
    assert app.state.seen_headers[0]["apikey"] == "anon-key"
    assert app.state.seen_headers[0]["authorization"] == "Bearer anon-key"
    await backend.aclose()


@pytest.mark.asyncio
async def test_server_error_becomes_backend_unavailable(app, storage):
    app.state.fail.add("/rest/v1/products")
    backend = make_backend(app, storage)
    with pytest.raises(BackendUnavailable):
        await backend.list_products()
    await backend.aclose()


@pytest.mark.asyncio
async def test_unreachable_backend_becomes_backend_unavailable(storage):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    backend = HttpBackend("http://testserver", "anon-key", storage, transport=httpx.MockTransport(refuse))
    with pytest.raises(BackendUnavailable):
        await backend.list_news()
    await backend.aclose()


@pytest.mark.asyncio
async def test_sign_in_persists_session_and_publishes_event(app, storage):
    backend = make_backend(app, storage)
    subscription = backend.subscribe_auth_changes()

    session = await backend.sign_in_with_password(UserLogin(email="buyer@example.com", password="Password123"))
    assert session.user_id == "user-1"
    assert json.loads(storage.get("digistore_session"))["user_id"] == "user-1"
    event = await asyncio.wait_for(subscription.__anext__(), 1)
    assert event.event == "SIGNED_IN"
    assert await backend.get_session() == session

    profile = await backend.get_user_profile("user-1")
    assert profile.name == "Sara"
    assert app.state.seen_headers[-1]["authorization"] == f"Bearer {session.access_token}"
    await backend.aclose()


@pytest.mark.asyncio
async def test_wrong_password_raises(app, storage):
    backend = make_backend(app, storage)
    with pytest.raises(BackendUnavailable):
        await backend.sign_in_with_password(UserLogin(email="buyer@example.com", password="wrong"))
    assert storage.get("digistore_session") is None
    await backend.aclose()


@pytest.mark.asyncio
async def test_expired_session_is_refreshed(app, storage):
    app.state.refresh_tokens["old-refresh"] = "user-1"
    expired = AuthSession(access_token=make_token("user-1", expires_in=-60), refresh_token="old-refresh",
                          user_id="user-1")
    storage.set("digistore_session", expired.model_dump_json())
    backend = make_backend(app, storage)
    subscription = backend.subscribe_auth_changes()

    session = await backend.get_session()
    assert session.user_id == "user-1"
    assert session.refresh_token != "old-refresh"
    assert (await asyncio.wait_for(subscription.__anext__(), 1)).event == "TOKEN_REFRESHED"
    await backend.aclose()


@pytest.mark.asyncio
async def test_expired_session_without_valid_refresh_is_dropped(app, storage):
    expired = AuthSession(access_token=make_token("user-1", expires_in=-60), refresh_token="unknown",
                          user_id="user-1")
    storage.set("digistore_session", expired.model_dump_json())
    backend = make_backend(app, storage)
    assert await backend.get_session() is None
    assert storage.get("digistore_session") is None
    await backend.aclose()


@pytest.mark.asyncio
async def test_sign_out_clears_session_and_publishes(app, storage):
    backend = make_backend(app, storage)
    await backend.sign_in_with_password(UserLogin(email="buyer@example.com", password="Password123"))
    subscription = backend.subscribe_auth_changes()
    await backend.sign_out()
    assert storage.get("digistore_session") is None
    assert (await asyncio.wait_for(subscription.__anext__(), 1)).event == "SIGNED_OUT"
    await backend.aclose()


@pytest.mark.asyncio
async def test_create_order_and_update_status(app, storage):
    backend = make_backend(app, storage)
    request = OrderCreate(user_id="user-1", total_amount=Decimal("100.00"), tax_amount=Decimal("15.00"),
                          final_amount=Decimal("115.00"), payment_method="manual")
    order = await backend.create_order(request)
    assert order.status == "pending"
    assert order.final_amount == Decimal("115.00")

    updated = await backend.update_order_status(order.id, "completed")
    assert updated.status == "completed"
    assert [o.id for o in await backend.get_user_orders("user-1")] == [order.id]

    with pytest.raises(BackendUnavailable):
        await backend.update_order_status("missing", "completed")
    await backend.aclose()


@pytest.mark.asyncio
async def test_create_product(app, storage):
    backend = make_backend(app, storage)
    product = await backend.create_product(
        ProductCreate(title="Kit", price=Decimal("5"), image_url="https://x/y.png", seller_id="merchant-1")
    )
    assert product.id.startswith("p")
    assert product.seller_id == "merchant-1"
    await backend.aclose()


@pytest.mark.asyncio
async def test_validate_promo_code(app, storage):
    app.state.promo_codes["FIXED5"] = {"id": "1", "code": "FIXED5", "discount_type": "fixed",
                                       "discount_value": "5", "min_order_amount": "20"}
    backend = make_backend(app, storage)
    assert (await backend.validate_promo_code("FIXED5", Decimal("50"))).discount_amount == Decimal("5")
    under_minimum = await backend.validate_promo_code("FIXED5", Decimal("10"))
    assert not under_minimum.valid
    assert not (await backend.validate_promo_code("NOPE", Decimal("50"))).valid
    await backend.aclose()


def test_promo_discount_rules():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    promo = PromoCode(id="1", code="P", discount_type="percentage", discount_value=Decimal("20"))
    assert promo_discount(promo, Decimal("50"), now).discount_amount == Decimal("10")

    expired = promo.model_copy(update={"valid_until": now - timedelta(days=1)})
    assert promo_discount(expired, Decimal("50"), now).error == "Promo code has expired"

    exhausted = promo.model_copy(update={"max_uses": 3, "current_uses": 3})
    assert not promo_discount(exhausted, Decimal("50"), now).valid

    huge = PromoCode(id="2", code="H", discount_type="fixed", discount_value=Decimal("500"))
    assert promo_discount(huge, Decimal("50"), now).discount_amount == Decimal("50")


def test_token_expiry_reads_unverified_claims():
    token = make_token("user-1", expires_in=100)
    assert token_expiry(token) is not None
    assert token_expiry("not-a-jwt") is None


@pytest.mark.asyncio
async def test_backend_calls_are_logged_with_masked_headers(app, storage, caplog):
    hooks = BackendCallLogger("test-backend").event_hooks()
    backend = make_backend(app, storage, event_hooks=hooks)
    with caplog.at_level(logging.INFO, logger="test-backend"):
        await backend.list_products()
    record = next(r for r in caplog.records if r.name == "test-backend")
    assert record.status_code == 200
    assert record.path == "/rest/v1/products"
    assert record.headers["apikey"] == "***"
    assert record.request_id
    assert app.state.seen_headers[0]["x-request-id"] == record.request_id
    await backend.aclose()


@pytest.mark.asyncio
async def test_unauthorized_maps_to_not_authenticated(storage):
    transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"message": "JWT expired"}))
    backend = HttpBackend("http://testserver", "anon-key", storage, transport=transport)
    with pytest.raises(NotAuthenticated):
        await backend.create_order(OrderCreate(user_id="u", total_amount=Decimal("1"), tax_amount=Decimal("0"),
                                               final_amount=Decimal("1")))
    await backend.aclose()


@pytest.mark.asyncio
async def test_non_list_rows_become_backend_unavailable(storage):
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"id": "100", "title": "Lone row"}))
    backend = HttpBackend("http://testserver", "anon-key", storage, transport=transport)
    with pytest.raises(BackendUnavailable):
        await backend.list_products()
    with pytest.raises(BackendUnavailable):
        await backend.get_user_profile("user-1")
    await backend.aclose()
