from datetime import datetime
from typing import Optional, Literal
from decimal import Decimal
from pydantic import BaseModel, EmailStr, Field

UserRole = Literal["customer", "merchant", "admin"]
ProductType = Literal["package", "digital_product", "subscription"]
OrderStatus = Literal["pending", "processing", "completed", "failed", "refunded"]
NewsType = Literal["offer", "update", "alert", "general"]
DiscountType = Literal["percentage", "fixed"]

class Product(BaseModel):
    id: str
    title: str
    description: str = ""
    price: Decimal = Field(..., ge=0)
    type: ProductType
    category: Optional[str] = None
    image_url: str = ""
    seller_id: Optional[str] = None
    stock_quantity: int = 0
    is_active: bool = True
    is_featured: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class CartItem(Product):
    quantity: int = Field(1, ge=1)

class User(BaseModel):
    id: str
    email: EmailStr
    name: str
    role: UserRole = "customer"
    avatar_url: Optional[str] = None
    wallet_balance: Decimal = Decimal("0")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class Order(BaseModel):
    id: str
    user_id: str
    total_amount: Decimal
    tax_amount: Decimal
    discount_amount: Decimal = Decimal("0")
    final_amount: Decimal
    status: OrderStatus = "pending"
    payment_method: Optional[str] = None
    payment_id: Optional[str] = None
    promo_code_used: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class NewsItem(BaseModel):
    id: str
    title: str
    content: str
    type: NewsType = "general"
    image_url: Optional[str] = None
    is_published: bool = True
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

class PromoCode(BaseModel):
    id: str
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    min_order_amount: Decimal = Decimal("0")
    max_uses: Optional[int] = None
    current_uses: int = 0
    is_active: bool = True
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None

class AuthSession(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user_id: str
    expires_at: Optional[int] = None # epoch seconds
