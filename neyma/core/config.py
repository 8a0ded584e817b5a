# neyma/core/config.py
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Required env vars (.env):
      - SUPABASE_URL
      - SUPABASE_KEY (anon key)
      - DATABASE_URL (Supabase Postgres connection string)
      - SUPABASE_JWT_SECRET (JWT signing secret from Supabase project settings)

    Optional:
      - CHECKOUT_PRICING: "subtotal" (default) or "tax_and_shipping"
      - ADMIN_EMAIL: recipient of new-order notifications
      - SESSION_IDLE_TTL: seconds before an idle storefront session is dropped
    """

    PROJECT_NAME: str = "Neyma Storefront API"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    ]

    # Supabase / DB config
    SUPABASE_URL: str
    SUPABASE_KEY: str
    DATABASE_URL: str

    # JWT verification (backend-side)
    SUPABASE_JWT_SECRET: str
    SUPABASE_JWT_ALG: str = "HS256"

    # Admin notification (edge function name + optional e-mail copy)
    NOTIFY_ADMIN_FUNCTION: str = "notify-admin"
    ADMIN_EMAIL: str | None = None

    # Storefront sessions idle longer than this (seconds) are evicted
    SESSION_IDLE_TTL: float = 1800

    # Checkout total computation
    CHECKOUT_PRICING: Literal["subtotal", "tax_and_shipping"] = "subtotal"
    TAX_RATE: float = 0.075
    SHIPPING_FEE: float = 2500
    FREE_SHIPPING_THRESHOLD: float = 50000

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
