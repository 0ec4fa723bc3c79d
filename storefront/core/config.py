from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Local order mirror
    DATABASE_URL: str = "sqlite+aiosqlite:///./storefront.db"

    # Backend API connection
    BACKEND_API_BASE_URL: str = "http://localhost:3000/api"
    BACKEND_TIMEOUT_SECONDS: float = 15.0

    # Session (client-side storage for cart, checkout draft and auth)
    SESSION_SECRET_KEY: str = "change-me-in-production"
    SESSION_MAX_AGE_DAYS: int = 30

    # Shop Configuration
    SHOP_NAME: str = "Hương Gạo Quê"
    DEFAULT_COUNTRY: str = "Việt Nam"
    CURRENCY_SUFFIX: str = "₫"

    # Checkout pricing (VND)
    ORDER_DISCOUNT_AMOUNT: Decimal = Decimal("50000")
    SHIPPING_FEE: Decimal = Decimal("30000")
    VNPAY_MIN_AMOUNT: Decimal = Decimal("5000")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
