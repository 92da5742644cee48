import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Protocol, Set

import httpx
from jose import JWTError, jwt

from storefront.models import AuthSession, NewsItem, Order, Product, PromoCode, User
from storefront.schemas import (
    AuthEvent, OrderCreate, OrderStatusUpdate, ProductCreate, PromoValidation, UserLogin, UserRegister
)
from storefront.shared.utils import BackendUnavailable, NotAuthenticated
from storefront.storage import KeyValueStore, load_json

logger = logging.getLogger("storefront.backend")

# Tokens this close to expiry are refreshed before use.
EXPIRY_MARGIN_SECONDS = 30


class StoreBackend(Protocol):
    """Operations the storefront consumes from the managed backend."""

    async def get_session(self) -> Optional[AuthSession]: ...

    async def get_user_profile(self, user_id: str) -> Optional[User]: ...

    def subscribe_auth_changes(self) -> "AuthSubscription": ...

    async def sign_in_with_password(self, credentials: UserLogin) -> AuthSession: ...

    async def sign_up(self, registration: UserRegister) -> Optional[AuthSession]: ...

    async def sign_out(self) -> None: ...

    async def list_products(self) -> List[Product]: ...

    async def list_news(self, limit: int = 10) -> List[NewsItem]: ...

    async def create_product(self, product: ProductCreate) -> Product: ...

    async def create_order(self, order: OrderCreate) -> Order: ...

    async def update_order_status(self, order_id: str, status: str) -> Order: ...

    async def get_user_orders(self, user_id: str) -> List[Order]: ...

    async def validate_promo_code(self, code: str, order_amount: Decimal) -> PromoValidation: ...

    async def aclose(self) -> None: ...


class AuthSubscription:
    """
    Live feed of auth-state changes. Iterate it from a task and call
    ``unsubscribe()`` on shutdown; iteration then ends.
    """

    _CLOSED = object()

    def __init__(self, registry: Set["AuthSubscription"]):
        self._registry = registry
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False
        registry.add(self)

    def publish(self, event: AuthEvent):
        if not self.closed:
            self._queue.put_nowait(event)

    def unsubscribe(self):
        if self.closed:
            return
        self.closed = True
        self._registry.discard(self)
        self._queue.put_nowait(self._CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> AuthEvent:
        item = await self._queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        return item


class AuthEventHub:
    """Keeps the live subscriptions of one backend client."""

    def __init__(self):
        self.subscriptions: Set[AuthSubscription] = set()

    def subscribe(self) -> AuthSubscription:
        return AuthSubscription(self.subscriptions)

    def publish(self, event: AuthEvent):
        for subscription in list(self.subscriptions):
            subscription.publish(event)


def token_expiry(access_token: str) -> Optional[int]:
    """Reads ``exp`` from the JWT without verifying it; the backend verifies."""
    try:
        claims = jwt.get_unverified_claims(access_token)
    except JWTError:
        return None
    exp = claims.get("exp")
    return int(exp) if exp is not None else None


def promo_discount(promo: PromoCode, order_amount: Decimal, now: Optional[datetime] = None) -> PromoValidation:
    now = now or datetime.now(timezone.utc)
    if not promo.is_active:
        return PromoValidation(valid=False, error="Promo code is invalid or expired")
    if promo.valid_from and promo.valid_from > now:
        return PromoValidation(valid=False, error="Promo code is not active yet")
    if promo.valid_until and promo.valid_until < now:
        return PromoValidation(valid=False, error="Promo code has expired")
    if promo.max_uses is not None and promo.current_uses >= promo.max_uses:
        return PromoValidation(valid=False, error="Promo code usage limit reached")
    if order_amount < promo.min_order_amount:
        return PromoValidation(valid=False, error=f"Minimum order amount is {promo.min_order_amount}")

    if promo.discount_type == "percentage":
        discount = order_amount * promo.discount_value / Decimal("100")
    else:
        discount = promo.discount_value
    return PromoValidation(valid=True, discount_amount=min(discount, order_amount), promo=promo)


class HttpBackend:
    """
    Supabase-style REST client: ``/auth/v1`` for identity, ``/rest/v1`` for
    rows. The auth session is persisted in ``storage`` so it survives restarts.
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        storage: KeyValueStore,
        session_key: str = "digistore_session",
        timeout: float = 10.0,
        event_hooks: Optional[dict] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.anon_key = anon_key
        self.storage = storage
        self.session_key = session_key
        self.hub = AuthEventHub()
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"apikey": anon_key},
            event_hooks=event_hooks,
            transport=transport,
        )

    # --- Transport ---

    def _headers(self, session: Optional[AuthSession]) -> dict:
        token = session.access_token if session else self.anon_key
        return {"Authorization": f"Bearer {token}"}

    async def _request(self, method: str, path: str, session: Optional[AuthSession] = None, **kwargs):
        headers = self._headers(session)
        headers.update(kwargs.pop("headers", {}))
        try:
            response = await self.client.request(method, path, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code in (401, 403):
                raise NotAuthenticated(f"{method} {path} rejected: {e.response.status_code}")
            raise BackendUnavailable(f"{method} {path} failed: {e.response.status_code}")
        except httpx.RequestError as e:
            raise BackendUnavailable(f"{method} {path} unreachable: {e}")
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise BackendUnavailable(f"{method} {path} returned invalid JSON")

    async def _rows(self, path: str, params: dict, session: Optional[AuthSession] = None) -> list:
        data = await self._request("GET", path, session=session, params=params)
        if data is None:
            return []
        if not isinstance(data, list):
            raise BackendUnavailable(f"GET {path} returned {type(data).__name__}, expected rows")
        return data

    async def _single(self, method: str, path: str, session: Optional[AuthSession], **kwargs) -> dict:
        rows = await self._request(
            method, path, session=session, headers={"Prefer": "return=representation"}, **kwargs
        )
        if isinstance(rows, list):
            rows = rows[0] if rows else None
        if not rows:
            raise BackendUnavailable(f"{method} {path} returned no row")
        return rows

    # --- Session ---

    def _stored_session(self) -> Optional[AuthSession]:
        raw = load_json(self.storage, self.session_key)
        if not raw:
            return None
        try:
            return AuthSession(**raw)
        except (TypeError, ValueError):
            logger.warning("Discarding invalid stored session")
            return None

    def _store_session(self, session: Optional[AuthSession]):
        try:
            if session is None:
                self.storage.delete(self.session_key)
            else:
                self.storage.set(self.session_key, session.model_dump_json())
        except OSError:
            logger.error("Failed to persist auth session", exc_info=True)

    @staticmethod
    def _session_from_token_response(data: dict) -> AuthSession:
        user = (data or {}).get("user") or {}
        try:
            access_token = data["access_token"]
            expires_at = data.get("expires_at") or token_expiry(access_token)
            if expires_at is None and data.get("expires_in"):
                expires_at = int(time.time()) + int(data["expires_in"])
            user_id = user.get("id") or jwt.get_unverified_claims(access_token)["sub"]
        except (KeyError, TypeError, JWTError):
            raise BackendUnavailable("Token response is missing session fields")
        return AuthSession(
            access_token=access_token,
            refresh_token=data.get("refresh_token", ""),
            token_type=data.get("token_type", "bearer"),
            user_id=user_id,
            expires_at=expires_at,
        )

    async def _refresh(self, session: AuthSession) -> Optional[AuthSession]:
        if not session.refresh_token:
            return None
        try:
            data = await self._request(
                "POST", "/auth/v1/token",
                params={"grant_type": "refresh_token"},
                json={"refresh_token": session.refresh_token},
            )
            refreshed = self._session_from_token_response(data)
        except (BackendUnavailable, NotAuthenticated):
            logger.warning("Session refresh failed", extra={"user_id": session.user_id}, exc_info=True)
            return None
        self._store_session(refreshed)
        self.hub.publish(AuthEvent(event="TOKEN_REFRESHED", session=refreshed))
        return refreshed

    async def get_session(self) -> Optional[AuthSession]:
        session = self._stored_session()
        if session is None:
            return None
        expires_at = session.expires_at or token_expiry(session.access_token)
        if expires_at is not None and expires_at - EXPIRY_MARGIN_SECONDS <= time.time():
            refreshed = await self._refresh(session)
            if refreshed is None:
                self._store_session(None)
            return refreshed
        return session

    def subscribe_auth_changes(self) -> AuthSubscription:
        return self.hub.subscribe()

    async def sign_in_with_password(self, credentials: UserLogin) -> AuthSession:
        data = await self._request(
            "POST", "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": credentials.email, "password": credentials.password},
        )
        session = self._session_from_token_response(data)
        self._store_session(session)
        self.hub.publish(AuthEvent(event="SIGNED_IN", session=session))
        return session

    async def sign_up(self, registration: UserRegister) -> Optional[AuthSession]:
        data = await self._request(
            "POST", "/auth/v1/signup",
            json={
                "email": registration.email,
                "password": registration.password,
                "data": {"name": registration.name},
            },
        )
        # Without an access token the account still awaits email confirmation.
        if not data or "access_token" not in data:
            return None
        session = self._session_from_token_response(data)
        self._store_session(session)
        self.hub.publish(AuthEvent(event="SIGNED_IN", session=session))
        return session

    async def sign_out(self) -> None:
        session = self._stored_session()
        try:
            if session:
                await self._request("POST", "/auth/v1/logout", session=session)
        except (BackendUnavailable, NotAuthenticated):
            logger.warning("Remote sign-out failed, dropping local session", exc_info=True)
        finally:
            self._store_session(None)
            self.hub.publish(AuthEvent(event="SIGNED_OUT"))

    # --- Rows ---

    async def get_user_profile(self, user_id: str) -> Optional[User]:
        rows = await self._rows(
            "/rest/v1/users", {"select": "*", "id": f"eq.{user_id}"}, session=self._stored_session()
        )
        if not rows:
            return None
        return User(**rows[0])

    async def list_products(self) -> List[Product]:
        rows = await self._rows(
            "/rest/v1/products",
            {"select": "*", "is_active": "eq.true", "order": "created_at.desc"},
        )
        return [Product(**row) for row in rows]

    async def list_news(self, limit: int = 10) -> List[NewsItem]:
        rows = await self._rows(
            "/rest/v1/news",
            {"select": "*", "is_published": "eq.true", "order": "created_at.desc", "limit": str(limit)},
        )
        return [NewsItem(**row) for row in rows]

    async def create_product(self, product: ProductCreate) -> Product:
        row = await self._single(
            "POST", "/rest/v1/products", self._stored_session(),
            json=json.loads(product.model_dump_json(exclude_none=True)),
        )
        return Product(**row)

    async def create_order(self, order: OrderCreate) -> Order:
        row = await self._single(
            "POST", "/rest/v1/orders", self._stored_session(),
            json=json.loads(order.model_dump_json(exclude_none=True)),
        )
        return Order(**row)

    async def update_order_status(self, order_id: str, status: str) -> Order:
        update = OrderStatusUpdate(status=status)
        row = await self._single(
            "PATCH", "/rest/v1/orders", self._stored_session(),
            params={"id": f"eq.{order_id}"},
            json=json.loads(update.model_dump_json()),
        )
        return Order(**row)

    async def get_user_orders(self, user_id: str) -> List[Order]:
        rows = await self._rows(
            "/rest/v1/orders",
            {"select": "*", "user_id": f"eq.{user_id}", "order": "created_at.desc"},
            session=self._stored_session(),
        )
        return [Order(**row) for row in rows]

    async def validate_promo_code(self, code: str, order_amount: Decimal) -> PromoValidation:
        rows = await self._rows(
            "/rest/v1/promo_codes",
            {"select": "*", "code": f"eq.{code}", "is_active": "eq.true"},
            session=self._stored_session(),
        )
        if not rows:
            return PromoValidation(valid=False, error="Promo code is invalid or expired")
        return promo_discount(PromoCode(**rows[0]), order_amount)

    async def aclose(self) -> None:
        for subscription in list(self.hub.subscriptions):
            subscription.unsubscribe()
        await self.client.aclose()
