"""
Configuration management for Quote Proxy Service.
Uses pydantic-settings for environment variable management.
"""

from typing import Dict, List
from pydantic import Field, validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application metadata
    app_name: str = Field(default="Quote Proxy", env="APP_NAME")
    app_version: str = Field(default="1.0.0", env="APP_VERSION")
    debug: bool = Field(default=False, env="DEBUG")

    # Server configuration
    server_host: str = Field(default="0.0.0.0", env="SERVER_HOST")
    server_port: int = Field(default=8002, env="SERVER_PORT")
    api_prefix: str = Field(default="/api/prices", env="API_PREFIX")

    # MetaAPI (forex/metals) credentials
    meta_api_token: str = Field(default="", env="META_API_TOKEN")
    meta_api_account_id: str = Field(default="", env="META_API_ACCOUNT_ID")
    metaapi_base_url: str = Field(
        default="https://mt-client-api-v1.london.agiliumtrade.ai",
        env="METAAPI_BASE_URL"
    )

    # Binance (crypto) public API - no key required
    binance_base_url: str = Field(default="https://api.binance.com", env="BINANCE_BASE_URL")

    # Outbound request timeouts (in seconds)
    request_timeout: float = Field(default=10.0, env="REQUEST_TIMEOUT")
    connect_timeout: float = Field(default=5.0, env="CONNECT_TIMEOUT")

    # Cache TTL settings (in seconds)
    refresh_cache_ttl: float = Field(default=30.0, env="REFRESH_CACHE_TTL")
    batch_cache_ttl: float = Field(default=2.0, env="BATCH_CACHE_TTL")

    # MetaAPI rate limiting: max 1 request per second
    metaapi_min_interval: float = Field(default=1.0, env="METAAPI_MIN_INTERVAL")
    metaapi_max_concurrency: int = Field(default=3, env="METAAPI_MAX_CONCURRENCY")

    # Background refresh (disabled by default to stay within rate limits)
    background_refresh_enabled: bool = Field(default=False, env="BACKGROUND_REFRESH_ENABLED")
    price_refresh_interval: float = Field(default=30.0, env="PRICE_REFRESH_INTERVAL")

    # Logging configuration
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_format: str = Field(default="json", env="LOG_FORMAT")

    @validator('log_level')
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @validator('log_format')
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = {'json', 'text'}
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {', '.join(valid_formats)}")
        return v.lower()

    @validator('refresh_cache_ttl', 'batch_cache_ttl', 'request_timeout', 'connect_timeout')
    def validate_positive(cls, v: float) -> float:
        """TTLs and timeouts must be positive."""
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @validator('metaapi_max_concurrency')
    def validate_concurrency(cls, v: int) -> int:
        """At least one concurrent MetaAPI request is required."""
        if v < 1:
            raise ValueError("metaapi_max_concurrency must be at least 1")
        return v

    @validator('api_prefix')
    def validate_api_prefix(cls, v: str) -> str:
        """Normalize the router prefix to '/segment' form."""
        v = v.strip().rstrip('/')
        if v and not v.startswith('/'):
            v = '/' + v
        return v

    def get_metaapi_account_url(self) -> str:
        """Get the MetaAPI base URL for the configured account."""
        return f"{self.metaapi_base_url.rstrip('/')}/users/current/accounts/{self.meta_api_account_id}"

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()


# Provider configuration
class ProviderConfig:
    """Static symbol tables deciding which provider serves a symbol."""

    # MetaAPI symbols - limited to essential pairs to stay under the 1 req/sec limit
    METAAPI_SYMBOLS: List[str] = [
        # Major Forex
        'EURUSD', 'GBPUSD', 'USDJPY', 'USDCHF', 'AUDUSD', 'NZDUSD', 'USDCAD',
        # Cross pairs
        'EURGBP', 'EURJPY', 'GBPJPY', 'EURCHF', 'EURAUD', 'EURCAD', 'GBPAUD',
        'GBPCAD', 'AUDCAD', 'AUDJPY', 'CADJPY', 'CHFJPY', 'NZDJPY',
        # Metals
        'XAUUSD', 'XAGUSD'
    ]

    # Binance symbol mapping for crypto
    BINANCE_SYMBOLS: Dict[str, str] = {
        'BTCUSD': 'BTCUSDT',
        'ETHUSD': 'ETHUSDT',
        'BNBUSD': 'BNBUSDT',
        'SOLUSD': 'SOLUSDT',
        'XRPUSD': 'XRPUSDT',
        'ADAUSD': 'ADAUSDT',
        'DOGEUSD': 'DOGEUSDT',
        'DOTUSD': 'DOTUSDT',
        'MATICUSD': 'MATICUSDT',
        'LTCUSD': 'LTCUSDT',
        'AVAXUSD': 'AVAXUSDT',
        'LINKUSD': 'LINKUSDT'
    }


provider_config = ProviderConfig()
