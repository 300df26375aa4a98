"""
Configuration management using Pydantic settings
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Binance Futures Configuration
    binance_api_key: Optional[str] = Field(None, description="Seed API key when no stored config exists")
    binance_api_secret: Optional[str] = Field(None, description="Seed API secret when no stored config exists")
    binance_recv_window: int = Field(60000)

    # Market Cap Data
    coingecko_api_key: Optional[str] = Field(None)
    coingecko_url: str = Field("https://api.coingecko.com/api/v3")
    market_cap_page_size: int = Field(200)
    http_timeout: float = Field(10.0)

    # Database Configuration
    database_path: str = Field("futures_dashboard.db")

    # Dashboard Service
    dashboard_host: str = Field("127.0.0.1")
    dashboard_port: int = Field(8010)
    positions_poll_interval: float = Field(5.0)

    # Trading Configuration
    trade_batch_size: int = Field(5)
    close_batch_size: int = Field(3)
    fallback_account_balance: float = Field(10000.0)
    max_balance_fraction: float = Field(0.5)
    retry_notional_increment: float = Field(50.0)

    # Logging
    log_level: str = Field("INFO")
    log_format: str = Field("json")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
