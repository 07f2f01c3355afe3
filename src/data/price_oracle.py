"""
Price source integration.

Prices are returned in base-asset units per token: the oracle publishes
USD prices, so a token is priced as token_usd / base_usd.
Uses the GalaSwap price-oracle API.
"""
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple
import requests
from src.core.errors import PriceUnavailable
from src.utils.constants import DEFAULT_BASE_ASSET
from src.utils.logging import get_logger

logger = get_logger(__name__)

@dataclass
class PriceResult:
    """Outcome of a current-price lookup."""
    success: bool
    price: Optional[Decimal] = None
    error: Optional[str] = None

class BasePriceSource(ABC):
    """Abstract price source consumed by the monitoring core."""
    
    @abstractmethod
    def get_current_price(self, token_identifier: str) -> PriceResult:
        """Current token price in base-asset units. Never raises for data errors."""
        pass
    
    def get_price_history(self, token_identifier: str, lookback_days: int = 250) -> List[Decimal]:
        """Historical prices in base units, newest first."""
        raise NotImplementedError(f"{type(self).__name__} has no price history")

def to_api_symbol(token_identifier: str) -> str:
    """Swap identifiers use pipes, the oracle expects dollar signs."""
    return token_identifier.replace('|', '$')

class GalaPriceOracle(BasePriceSource):
    """Fetch prices from the GalaSwap price oracle."""
    
    def __init__(
        self,
        base_url: str,
        base_asset: str = DEFAULT_BASE_ASSET,
        cache_timeout_seconds: int = 60,
        request_timeout: float = 10,
        session: requests.Session = None
    ):
        self.base_url = base_url
        self.base_asset = base_asset
        self.cache_timeout_seconds = cache_timeout_seconds
        self.request_timeout = request_timeout
        self.session = session or requests.Session()
        self._cache: Dict[str, Tuple[float, Decimal]] = {}
        self._lock = threading.Lock()
    
    def get_current_price(self, token_identifier: str) -> PriceResult:
        """Token price in base units via two USD lookups."""
        if token_identifier == self.base_asset:
            return PriceResult(success=True, price=Decimal(1))
        try:
            token_usd = self._get_usd_price(token_identifier)
            base_usd = self._get_usd_price(self.base_asset)
        except (requests.RequestException, ValueError, KeyError, InvalidOperation) as e:
            logger.warning(f"Failed to get price for {token_identifier}: {e}")
            return PriceResult(success=False, error=str(e))
        
        if base_usd <= 0:
            return PriceResult(success=False, error=f"Invalid base price {base_usd}")
        if token_usd < 0:
            return PriceResult(success=False, error=f"Invalid token price {token_usd}")
        
        return PriceResult(success=True, price=token_usd / base_usd)
    
    def get_price_history(self, token_identifier: str, lookback_days: int = 250) -> List[Decimal]:
        """
        Historical prices in base units, newest first.
        
        Token and base series are paired by position; both come back newest
        first from the oracle.
        
        Raises:
            PriceUnavailable: the oracle request failed or returned bad rows
        """
        start = datetime.utcnow() - timedelta(days=lookback_days)
        try:
            token_series = self._fetch_series(token_identifier, start, lookback_days + 1)
            if token_identifier == self.base_asset:
                return [Decimal(1) for _ in token_series]
            base_series = self._fetch_series(self.base_asset, start, lookback_days + 1)
        except (requests.RequestException, ValueError, KeyError, InvalidOperation) as e:
            logger.warning("Price history unavailable", token=token_identifier, error=str(e))
            raise PriceUnavailable(f"No price history for {token_identifier}: {e}") from e
        
        prices = []
        for token_usd, base_usd in zip(token_series, base_series):
            if base_usd > 0:
                prices.append(token_usd / base_usd)
        return prices
    
    def _get_usd_price(self, token_identifier: str) -> Decimal:
        now = time.monotonic()
        with self._lock:
            cached = self._cache.get(token_identifier)
        if cached and now - cached[0] < self.cache_timeout_seconds:
            return cached[1]
        
        rows = self._request({'token': to_api_symbol(token_identifier), 'page': 1, 'limit': 1})
        if not rows:
            raise ValueError(f"No price data available for {token_identifier}")
        price = Decimal(str(rows[0]['price']))
        
        with self._lock:
            self._cache[token_identifier] = (now, price)
        return price
    
    def _fetch_series(self, token_identifier: str, start: datetime, limit: int) -> List[Decimal]:
        rows = self._request({
            'token': to_api_symbol(token_identifier),
            'page': 1,
            'limit': limit,
            'from': start.strftime('%Y-%m-%dT%H:%M:%SZ')
        })
        return [Decimal(str(row['price'])) for row in rows]
    
    def _request(self, params: Dict) -> List[Dict]:
        response = self.session.get(self.base_url, params=params, timeout=self.request_timeout)
        response.raise_for_status()
        payload = response.json()
        return payload.get('data') or []
