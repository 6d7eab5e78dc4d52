from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Ice Bath Studio Bookings API"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Supabase Auth issues HS256 JWTs signed with the project's JWT secret
    SUPABASE_JWT_SECRET: str = "changeme"
    SUPABASE_JWT_AUDIENCE: str = "authenticated"

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "icebath"
    POSTGRES_PORT: int = 5432
    DATABASE_URL: str = ""
    # Checkout webhooks and bookings share the pool; sized for a single studio
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    CURRENCY: str = "gbp"
    SITE_URL: str = "http://localhost:5173"

    # Resend
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "Ice Bath Studio <bookings@example.com>"

    # Studio schedule. Days use Python's weekday() numbering (Mon=0 .. Sun=6).
    TIMEZONE: str = "Europe/London"
    SLOT_CAPACITY: int = 5
    OPENING_DAYS: List[int] = [0, 1, 2, 3, 4, 5]
    OPENING_HOUR: int = 7
    CLOSING_HOUR: int = 20
    SLOT_INTERVAL_MINUTES: int = 60
    SESSION_DURATION_MINUTES: int = 60
    BOOKING_WINDOW_DAYS: int = 14
    DEFAULT_SERVICE_TYPE: str = "combined"

    # Fallback prices in pence when pricing_config has no active row
    COMMUNAL_PRICE: int = 1800
    PRIVATE_PRICE: int = 7000

    # Gift cards: purchase bounds in pence, then the credit lifetime once redeemed
    GIFT_CARD_MIN_AMOUNT: int = 1000
    GIFT_CARD_MAX_AMOUNT: int = 50000
    GIFT_CREDIT_VALID_DAYS: int = 365

    # None disables automatic release of unpaid pending bookings
    PENDING_BOOKING_TTL_MINUTES: Optional[int] = None
    MAINTENANCE_INTERVAL_SECONDS: int = 300

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    def assemble_db_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"


settings = Settings()
settings.DATABASE_URL = settings.assemble_db_url()
