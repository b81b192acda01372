from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""
    
    # Database
    DATABASE_URL: str = "sqlite:///./ultrabms.db"
    SQL_ECHO: bool = False
    
    # App
    APP_NAME: str = "ULTRA BMS"
    CURRENCY: str = "AED"
    LOG_LEVEL: str = "INFO"
    
    # Lease lifecycle
    EXPIRING_SOON_DAYS: int = 60
    EXPIRY_THRESHOLDS: list[int] = [60, 30, 14]
    
    # Deposit settlement
    APPROVAL_THRESHOLD: Decimal = Decimal("5000")
    EARLY_TERMINATION_CAP_MONTHS: int = 2
    
    # Notification webhook
    NOTIFICATION_WEBHOOK_URL: Optional[str] = None
    NOTIFICATION_TIMEOUT_SECONDS: float = 5.0
    
    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
