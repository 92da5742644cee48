"""
Cart pricing.

Amounts stay exact ``Decimal`` values while they are summed; only the tax is
rounded (half-up, to cents) because that is the amount the backend stores.
Everything else is quantised at the submission boundary by
``OrderCreate.from_totals``.
"""
from decimal import Decimal
from typing import Iterable

from storefront.models import CartItem
from storefront.schemas import Totals, to_cents

TAX_RATE = Decimal("0.15")
ZERO = Decimal("0")

def subtotal(items: Iterable[CartItem]) -> Decimal:
    return sum((Decimal(item.price) * item.quantity for item in items), ZERO)

def compute_totals(items: Iterable[CartItem], discount: Decimal = ZERO, tax_rate: Decimal = TAX_RATE) -> Totals:
    """
    Pure: the same cart always yields the same totals.

    A discount bigger than subtotal + tax clamps the final amount to zero
    instead of producing a negative charge.
    """
    sub = subtotal(items)
    tax = to_cents(sub * tax_rate)
    discount = max(Decimal(discount), ZERO)
    final = max(sub + tax - discount, ZERO)
    return Totals(subtotal=sub, tax=tax, discount=discount, final=final)
