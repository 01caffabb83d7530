"""
LexLedger Practice Billing
Application Configuration
"""
import logging
from pydantic_settings import BaseSettings
from typing import Optional, List
from pathlib import Path


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "LexLedger Practice Billing"
    APP_VERSION: str = "1.4.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./lexledger.db"

    # File storage
    EXPORT_DIR: str = "./exports"
    MAX_UPLOAD_SIZE_MB: int = 25
    ALLOWED_IMPORT_TYPES: List[str] = [".xlsx", ".xls"]

    # Currency
    DEFAULT_CURRENCY: str = "INR"
    EXCHANGE_RATE_API_URL: str = "https://open.er-api.com/v6/latest"
    EXCHANGE_RATE_API_KEY: Optional[str] = None
    EXCHANGE_RATE_TIMEOUT_SECONDS: int = 30

    # Invoicing
    INVOICE_NUMBER_PREFIX: str = "INV"
    PAYMENT_TERMS_DAYS: int = 30

    # Firm letterhead (used on exported invoices)
    FIRM_NAME: str = "Touchstone Partners"
    FIRM_ADDRESS: str = "New Delhi, India"
    FIRM_EMAIL: str = "accounts@example.com"
    FIRM_PHONE: str = ""
    FIRM_BANK_DETAILS: str = (
        "I should be grateful if you would arrange to have the amount remitted "
        "to our account as per the bank details shared with you."
    )

    # CORS Origins
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()


def init_directories():
    """Create required directories on startup"""
    Path(settings.EXPORT_DIR).mkdir(parents=True, exist_ok=True)


def configure_logging(level: Optional[str] = None):
    """Configure root logging once for the service and the CLI"""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
