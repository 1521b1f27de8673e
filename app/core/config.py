"""
Application configuration and settings management
"""
import os
from typing import Optional
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "Vendor Bookings"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "sqlite:///./vendor_bookings.db"
    ).replace("postgres://", "postgresql://", 1)

    # Authentication (tokens are issued elsewhere, only decoded here)
    SECRET_KEY: str = os.getenv("SECRET_KEY", "change-me-in-production")
    AUTH_COOKIE_NAME: str = "vendor_token"

    # Razorpay Payment Gateway
    RAZORPAY_KEY_ID: str = os.getenv("RAZORPAY_KEY_ID", "")
    RAZORPAY_KEY_SECRET: str = os.getenv("RAZORPAY_KEY_SECRET", "")
    RAZORPAY_WEBHOOK_SECRET: str = os.getenv("RAZORPAY_WEBHOOK_SECRET", "")
    RAZORPAY_TIMEOUT_SECONDS: float = 10.0
    RAZORPAY_MAX_RETRIES: int = 3
    RAZORPAY_RETRY_BACKOFF_SECONDS: float = 0.5
    CURRENCY: str = "INR"

    # Booking rules
    BOOKING_APPROVAL_WINDOW_HOURS: int = 8
    MAX_BLOCK_DAYS: int = 10
    MAX_NOTES_WORDS: int = 50
    BUSINESS_TIMEZONE: str = "Asia/Kolkata"

    # Expiry sweep
    EXPIRY_SWEEP_ENABLED: bool = True
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = 300

    # AWS SES (Email)
    AWS_ACCESS_KEY_ID: Optional[str] = os.getenv("AWS_ACCESS_KEY_ID")
    AWS_SECRET_ACCESS_KEY: Optional[str] = os.getenv("AWS_SECRET_ACCESS_KEY")
    SES_REGION: str = os.getenv("SES_REGION", "ap-south-1")
    SES_FROM_EMAIL: str = os.getenv("SES_FROM_EMAIL", "no-reply@vendorbookings.in")
    SES_FROM_NAME: str = os.getenv("SES_FROM_NAME", "Vendor Bookings")

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
        "extra": "ignore"
    }


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance with placeholder filtering"""
    s = Settings()
    placeholders = ["XXXX", "your-", "replace-"]

    def is_placeholder(val: Optional[str]) -> bool:
        if not val:
            return True
        return any(p in val for p in placeholders) or any(p in val.lower() for p in placeholders)

    if is_placeholder(s.AWS_ACCESS_KEY_ID):
        s.AWS_ACCESS_KEY_ID = None
    if is_placeholder(s.AWS_SECRET_ACCESS_KEY):
        s.AWS_SECRET_ACCESS_KEY = None

    return s


# Global settings instance
settings = get_settings()
