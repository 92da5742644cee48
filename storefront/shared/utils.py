from decimal import Decimal
from typing import Optional, Generic, TypeVar, Any
from pydantic import BaseModel
from pydantic_settings import BaseSettings

# --- Configuration ---
class Settings(BaseSettings):
    BACKEND_URL: str = "http://localhost:54321"
    BACKEND_ANON_KEY: str = ""
    REQUEST_TIMEOUT: float = 10.0
    TAX_RATE: Decimal = Decimal("0.15")
    PAYMENT_METHOD: str = "manual"
    CART_STORAGE_KEY: str = "digistore_cart"
    THEME_STORAGE_KEY: str = "digistore_theme"
    SESSION_STORAGE_KEY: str = "digistore_session"
    STATE_DIR: str = ".storefront"
    NEWS_LIMIT: int = 10
    NOTIFICATION_DURATION_MS: int = 3000
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_prefix = "STOREFRONT_"
        extra = "ignore"

    @property
    def backend_configured(self) -> bool:
        return bool(self.BACKEND_URL and self.BACKEND_ANON_KEY)

settings = Settings()

# --- Backend ---
def get_backend_client(config: Settings, storage, event_hooks: Optional[dict] = None):
    # Imported here so the models and envelopes stay importable without the HTTP layer.
    from storefront.backend import HttpBackend

    return HttpBackend(
        base_url=config.BACKEND_URL,
        anon_key=config.BACKEND_ANON_KEY,
        storage=storage,
        session_key=config.SESSION_STORAGE_KEY,
        timeout=config.REQUEST_TIMEOUT,
        event_hooks=event_hooks,
    )

# --- Response Models ---
T = TypeVar("T")

class SuccessResponse(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None

class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    details: Optional[Any] = None

# --- Exceptions ---
class StoreException(Exception):
    code = "store_error"

    def __init__(self, detail: str = "An error occurred"):
        super().__init__(detail)
        self.detail = detail

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(error=self.code, details=self.detail)

class NotAuthenticated(StoreException):
    code = "not_authenticated"

    def __init__(self, detail: str = "Sign in required"):
        super().__init__(detail)

class NotAuthorized(StoreException):
    code = "not_authorized"

    def __init__(self, detail: str = "Not authorized"):
        super().__init__(detail)

class EmptyCart(StoreException):
    code = "empty_cart"

    def __init__(self, detail: str = "Cart is empty"):
        super().__init__(detail)

class BackendUnavailable(StoreException):
    code = "backend_unavailable"

    def __init__(self, detail: str = "Backend service unavailable"):
        super().__init__(detail)

class StaleProfile(StoreException):
    code = "stale_profile"

    def __init__(self, detail: str = "User profile could not be loaded"):
        super().__init__(detail)

class CheckoutInProgress(StoreException):
    code = "checkout_in_progress"

    def __init__(self, detail: str = "A checkout is already in progress"):
        super().__init__(detail)

class PromoCodeRejected(StoreException):
    code = "promo_code_rejected"

    def __init__(self, detail: str = "Promo code is invalid or expired"):
        super().__init__(detail)

class InvalidProduct(StoreException):
    code = "invalid_product"

    def __init__(self, detail: str = "Invalid product"):
        super().__init__(detail)
