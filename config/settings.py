"""Application settings and configuration management."""
from pydantic_settings import BaseSettings
from functools import lru_cache
import yaml
from pathlib import Path

class Settings(BaseSettings):
    """Application settings from environment variables."""
    
    # Database
    DATABASE_URL: str = "sqlite:///./trading.db"
    
    # Redis
    REDIS_HOST: str = "redis"
    REDIS_PORT: int = 6379
    
    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    
    # Base asset every position is cycled out of and back into
    BASE_ASSET: str = "GALA|Unit|none|none"
    BASE_SYMBOL: str = "GALA"
    
    # Swap execution
    SWAP_MODE: str = "dry_run"  # dry_run | paper
    DRY_RUN_MODE: bool = True
    DEFAULT_SLIPPAGE: float = 0.05
    MIN_TRADE_AMOUNT: float = 1.0
    MAX_TRADE_AMOUNT: float = 100.0
    MIN_TIME_BETWEEN_TRADES_MS: int = 3_600_000
    
    # Paper venue
    PAPER_STARTING_BALANCE: float = 1000.0
    PAPER_FEE_RATE: float = 0.003
    PAPER_SLIPPAGE_BPS: int = 50
    PAPER_ENFORCE_BALANCES: bool = False
    
    # Buyback thresholds and retry policy
    PROFIT_THRESHOLD: float = 0.05
    LOSS_THRESHOLD: float = -0.02
    MAX_RETRIES: int = 5
    
    # External call timeouts
    PRICE_TIMEOUT_SECONDS: float = 10.0
    SWAP_TIMEOUT_SECONDS: float = 60.0
    STALE_PRICE_ALERT_AFTER: int = 10
    
    # Monitoring
    MONITOR_INTERVAL_SECONDS: int = 300
    MONITOR_MAX_WORKERS: int = 1
    MONITOR_LOCK_TIMEOUT_SECONDS: int = 600
    
    # Price oracle
    PRICE_ORACLE_URL: str = "https://dex-backend-prod1.defi.gala.com/price-oracle/fetch-price"
    PRICE_CACHE_TIMEOUT_SECONDS: int = 60
    
    # Notifications
    DISCORD_WEBHOOK_URL: str = ""
    NOTIFICATION_MIN_INTERVAL_MS: int = 1000
    
    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    
    # Environment
    ENV: str = "development"
    
    class Config:
        env_file = ".env"

@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

@lru_cache()
def get_strategies_config() -> dict:
    """Load entry strategy configuration from YAML."""
    config_path = Path(__file__).parent / "strategies.yaml"
    with open(config_path, 'r') as f:
        return yaml.safe_load(f)
