"""
Application constants to replace magic numbers throughout the codebase.
"""
from decimal import Decimal

# Base asset
DEFAULT_BASE_ASSET = "GALA|Unit|none|none"
DEFAULT_BASE_SYMBOL = "GALA"

# Buyback thresholds (signed fractions)
DEFAULT_PROFIT_THRESHOLD = Decimal('0.05')  # +5%
DEFAULT_LOSS_THRESHOLD = Decimal('-0.02')   # -2%

# Retry policy
DEFAULT_MAX_RETRIES = 5

# Swap execution
DEFAULT_SLIPPAGE = Decimal('0.05')  # 5%
BPS_DIVISOR = Decimal(10000)

# Monitoring
DEFAULT_STALE_PRICE_ALERT_AFTER = 10
DEFAULT_PRICE_TIMEOUT_SECONDS = 10.0
DEFAULT_SWAP_TIMEOUT_SECONDS = 60.0

# Decimal helpers
HUNDRED = Decimal(100)

# Database query limits
DEFAULT_QUERY_LIMIT = 50
MAX_QUERY_LIMIT = 500

# Discord embed colours
COLOR_SUCCESS = 0x00ff00
COLOR_DRY_RUN = 0x0099ff
COLOR_FAILURE = 0xff0000
COLOR_WARNING = 0xffa500
