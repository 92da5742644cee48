from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, Literal
from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime, timezone
from storefront.models import AuthSession, OrderStatus, ProductType, PromoCode
from storefront.shared.security_config import sanitize_input

CENT = Decimal("0.01")

def to_cents(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)

class Totals(BaseModel):
    subtotal: Decimal
    tax: Decimal
    discount: Decimal = Decimal("0")
    final: Decimal

    def rounded(self) -> "Totals":
        # final is rebuilt from the rounded parts so the submitted amounts add up.
        subtotal = to_cents(self.subtotal)
        tax = to_cents(self.tax)
        discount = to_cents(self.discount)
        return Totals(
            subtotal=subtotal,
            tax=tax,
            discount=discount,
            final=max(subtotal + tax - discount, Decimal("0.00")),
        )

class OrderCreate(BaseModel):
    user_id: str
    total_amount: Decimal
    tax_amount: Decimal
    discount_amount: Decimal = Decimal("0")
    final_amount: Decimal
    payment_method: Optional[str] = None
    payment_id: Optional[str] = None
    promo_code_used: Optional[str] = None

    @classmethod
    def from_totals(cls, user_id: str, totals: Totals, payment_method: str, promo_code: Optional[str] = None):
        rounded = totals.rounded()
        return cls(
            user_id=user_id,
            total_amount=rounded.subtotal,
            tax_amount=rounded.tax,
            discount_amount=rounded.discount,
            final_amount=rounded.final,
            payment_method=payment_method,
            promo_code_used=promo_code,
        )

class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class ProductCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    price: Decimal = Field(..., gt=0)
    type: ProductType = "digital_product"
    category: Optional[str] = None
    image_url: Optional[str] = None
    seller_id: Optional[str] = None

    @field_validator('title', 'description', 'category')
    def sanitize_fields(cls, v):
        return sanitize_input(v)

class PromoValidation(BaseModel):
    valid: bool
    discount_amount: Decimal = Decimal("0")
    promo: Optional[PromoCode] = None
    error: Optional[str] = None

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class UserRegister(UserLogin):
    name: str = Field(..., min_length=1)

class AuthEvent(BaseModel):
    event: Literal["SIGNED_IN", "SIGNED_OUT", "TOKEN_REFRESHED"]
    session: Optional[AuthSession] = None

class Notification(BaseModel):
    message: str
    type: Literal["success", "error", "info"] = "success"
    duration_ms: int = 3000
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
