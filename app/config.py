import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Force-load .env from the project root
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str]
    jwt_secret: Optional[str]
    jwt_expires_days: int
    environment: str
    stripe_secret_key: Optional[str]
    stripe_webhook_secret: Optional[str]
    currency: str
    shipping_fee_cents: int
    frontend_url: str
    backend_url: str
    resend_api_key: Optional[str]
    mail_from: str
    cloudinary_cloud_name: Optional[str]
    cloudinary_api_key: Optional[str]
    cloudinary_api_secret: Optional[str]
    cloudinary_folder: str
    log_level: str
    rate_limit_enabled: bool

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def get_settings() -> Settings:
    # Read on every call so a patched os.environ is picked up
    return Settings(
        database_url=os.getenv("DATABASE_URL"),
        jwt_secret=os.getenv("JWT_SECRET"),
        jwt_expires_days=int(os.getenv("JWT_EXPIRES_DAYS", "7")),
        environment=os.getenv("ENVIRONMENT", "development"),
        stripe_secret_key=os.getenv("STRIPE_SECRET_KEY"),
        stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET"),
        currency=os.getenv("CURRENCY", "usd"),
        shipping_fee_cents=int(os.getenv("SHIPPING_FEE_CENTS", "5000")),
        frontend_url=os.getenv("FRONTEND_URL", "http://localhost:5173"),
        backend_url=os.getenv("BACKEND_URL", "http://localhost:8000"),
        resend_api_key=os.getenv("RESEND_API_KEY"),
        mail_from=os.getenv("MAIL_FROM", "Shop <onboarding@resend.dev>"),
        cloudinary_cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME"),
        cloudinary_api_key=os.getenv("CLOUDINARY_API_KEY"),
        cloudinary_api_secret=os.getenv("CLOUDINARY_API_SECRET"),
        cloudinary_folder=os.getenv("CLOUDINARY_FOLDER", "ecommerce"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        rate_limit_enabled=os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true",
    )
