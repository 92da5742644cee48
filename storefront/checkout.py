"""
Checkout: turn the cart into an order on the backend.

    idle -> validating -> submitting -> finalizing -> idle
    idle -> validating -> rejected -> idle

Only one checkout runs at a time; a second call while one is in flight is
rejected with ``CheckoutInProgress``. A failure before the order exists
leaves the cart exactly as it was.
"""
import asyncio
import enum
import logging
from decimal import Decimal
from typing import Optional, Protocol, Union

from storefront.cart import CartStore
from storefront.models import Order
from storefront.notifications import Notifier
from storefront.pricing import TAX_RATE, compute_totals
from storefront.schemas import OrderCreate, Totals
from storefront.session import SessionManager
from storefront.shared.utils import (
    BackendUnavailable, CheckoutInProgress, EmptyCart, ErrorResponse, NotAuthenticated,
    PromoCodeRejected, StoreException, SuccessResponse
)

logger = logging.getLogger("storefront.checkout")

class CheckoutState(str, enum.Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    FINALIZING = "finalizing"
    REJECTED = "rejected"

class CompletionPolicy(Protocol):
    """Decides what happens to an order once the backend has created it."""

    async def complete(self, backend, order: Order) -> Order: ...

class OptimisticCompletion:
    """Marks the order completed right away; there is no payment gate yet."""

    status = "completed"

    async def complete(self, backend, order: Order) -> Order:
        return await backend.update_order_status(order.id, self.status)

class LeavePending:
    """Leaves the order pending for an external payment step to settle."""

    async def complete(self, backend, order: Order) -> Order:
        return order

CheckoutResult = Union[SuccessResponse[Order], ErrorResponse]

class CheckoutOrchestrator:
    def __init__(
        self,
        backend,
        cart: CartStore,
        session: SessionManager,
        notifier: Notifier,
        completion: Optional[CompletionPolicy] = None,
        tax_rate: Decimal = TAX_RATE,
        payment_method: str = "manual",
    ):
        self.backend = backend
        self.cart = cart
        self.session = session
        self.notifier = notifier
        self.completion = completion or OptimisticCompletion()
        self.tax_rate = tax_rate
        self.payment_method = payment_method
        self.state = CheckoutState.IDLE
        self._lock = asyncio.Lock()

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    def preview(self, discount: Decimal = Decimal("0")) -> Totals:
        return compute_totals(self.cart.items, discount=discount, tax_rate=self.tax_rate)

    async def checkout(self, promo_code: Optional[str] = None) -> CheckoutResult:
        if self._lock.locked():
            logger.warning("Checkout rejected, another one is in flight", extra={"event": "checkout"})
            return CheckoutInProgress().to_response()

        async with self._lock:
            try:
                return await self._run(promo_code)
            except NotAuthenticated as e:
                # Caller prompts for sign-in, not an error.
                logger.info("Checkout needs sign-in", extra={"event": "checkout"})
                self.notifier.info("Please sign in to complete your purchase")
                return self._reject(e)
            except EmptyCart as e:
                self.notifier.error("Your cart is empty")
                return self._reject(e)
            except PromoCodeRejected as e:
                logger.info(f"Promo code rejected: {e.detail}", extra={"event": "checkout"})
                self.notifier.error(e.detail)
                return self._reject(e)
            except StoreException as e:
                logger.error(f"Checkout failed: {e.detail}", extra={"event": "checkout"})
                self.notifier.error("Something went wrong while processing your order")
                return self._reject(e)
            finally:
                self.state = CheckoutState.IDLE

    def _reject(self, error: StoreException) -> ErrorResponse:
        self.state = CheckoutState.REJECTED
        return error.to_response()

    async def _run(self, promo_code: Optional[str]) -> SuccessResponse[Order]:
        self.state = CheckoutState.VALIDATING
        user = self.session.current_user()
        if user is None:
            raise NotAuthenticated()
        items = self.cart.items
        if not items:
            raise EmptyCart()

        self.state = CheckoutState.SUBMITTING
        self.notifier.info("Processing your order...")
        discount = Decimal("0")
        if promo_code:
            discount = await self._discount_for(promo_code, items)
        totals = compute_totals(items, discount=discount, tax_rate=self.tax_rate)
        request = OrderCreate.from_totals(user.id, totals, self.payment_method, promo_code)
        try:
            order = await self.backend.create_order(request)
        except ValueError as e:
            raise BackendUnavailable(f"Unexpected order payload: {e}")
        logger.info(
            "Order created",
            extra={"order_id": order.id, "user_id": user.id, "event": "order_created"},
        )

        self.state = CheckoutState.FINALIZING
        order = await self._finalize(order)
        self.cart.remove_submitted(items)
        self.notifier.success("Your order has been received!")
        return SuccessResponse(data=order, message="Order placed")

    async def _discount_for(self, promo_code: str, items) -> Decimal:
        subtotal = compute_totals(items, tax_rate=self.tax_rate).subtotal
        try:
            validation = await self.backend.validate_promo_code(promo_code, subtotal)
        except (BackendUnavailable, ValueError) as e:
            raise BackendUnavailable(f"Promo validation failed: {getattr(e, 'detail', e)}")
        if not validation.valid:
            raise PromoCodeRejected(validation.error or "Promo code is invalid or expired")
        return validation.discount_amount

    async def _finalize(self, order: Order) -> Order:
        # Best effort: the order already exists, so a failure here never
        # blocks clearing the cart.
        try:
            return await self.completion.complete(self.backend, order)
        except (StoreException, ValueError):
            logger.error(
                "Order status update failed",
                extra={"order_id": order.id, "event": "order_finalize"},
                exc_info=True,
            )
            return order
