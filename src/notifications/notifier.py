"""
Lifecycle notifications.

Delivery is best effort: the core wraps every call and swallows
NotificationFailed, so a broken webhook never blocks a transition.
"""
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional
import requests
from src.core.errors import NotificationFailed
from src.core.pnl import format_pnl
from src.utils.constants import COLOR_SUCCESS, COLOR_DRY_RUN, COLOR_FAILURE, COLOR_WARNING
from src.utils.logging import get_logger

logger = get_logger(__name__)

FOOTER = {'text': 'Gala Trading Bot'}

class BaseNotifier(ABC):
    """Sink for position lifecycle events."""
    
    @abstractmethod
    def notify_position_opened(self, position) -> None:
        pass
    
    @abstractmethod
    def notify_buyback(self, position, outcome) -> None:
        pass
    
    @abstractmethod
    def notify_position_failed(self, position, reason: str) -> None:
        pass
    
    @abstractmethod
    def notify_stale_position(self, position, consecutive_failures: int) -> None:
        pass
    
    @abstractmethod
    def notify_error(self, title: str, error: str, context: Optional[Dict[str, Any]] = None) -> None:
        pass

class LogNotifier(BaseNotifier):
    """Writes lifecycle events to the log only."""
    
    def notify_position_opened(self, position) -> None:
        logger.info("Position opened", position_id=position.id, pair=position.pair_symbol)
    
    def notify_buyback(self, position, outcome) -> None:
        logger.info(
            "Buyback executed",
            position_id=position.id,
            pair=position.pair_symbol,
            final_base_amount=str(outcome.final_base_amount),
            percentage_pnl=str(outcome.percentage_pnl)
        )
    
    def notify_position_failed(self, position, reason: str) -> None:
        logger.warning("Position failed", position_id=position.id, reason=reason)
    
    def notify_stale_position(self, position, consecutive_failures: int) -> None:
        logger.warning(
            "Position has no price data",
            position_id=position.id,
            consecutive_failures=consecutive_failures
        )
    
    def notify_error(self, title: str, error: str, context: Optional[Dict[str, Any]] = None) -> None:
        logger.error(title, error=error, **(context or {}))

class DiscordNotifier(BaseNotifier):
    """Posts lifecycle embeds to a Discord webhook."""
    
    def __init__(
        self,
        webhook_url: str,
        min_interval_ms: int = 1000,
        timeout: float = 10,
        session: requests.Session = None
    ):
        if not webhook_url:
            raise ValueError("webhook_url is required")
        self.webhook_url = webhook_url
        self.min_interval = min_interval_ms / 1000.0
        self.timeout = timeout
        self.session = session or requests.Session()
        self._last_sent = 0.0
        self._lock = threading.Lock()
    
    def send_webhook(self, payload: Dict) -> None:
        """
        Send a payload, waiting out the rate limit first.
        
        Raises:
            NotificationFailed: network error or non-2xx response
        """
        with self._lock:
            wait = self.min_interval - (time.monotonic() - self._last_sent)
            if wait > 0:
                logger.debug(f"Rate limiting: waiting {wait:.2f}s")
                time.sleep(wait)
            try:
                response = self.session.post(self.webhook_url, json=payload, timeout=self.timeout)
            except requests.RequestException as e:
                raise NotificationFailed(f"Webhook request failed: {e}") from e
            finally:
                self._last_sent = time.monotonic()
        
        if not response.ok:
            raise NotificationFailed(f"HTTP {response.status_code}: {response.text}")
        logger.debug("Webhook sent successfully")
    
    def notify_position_opened(self, position) -> None:
        self._send_embed(
            content='📤 **Position Opened**',
            title=f"Sold {position.entry_amount} for {position.token_symbol}",
            color=COLOR_SUCCESS,
            fields=[
                _field('Pair', position.pair_symbol),
                _field('Strategy', position.strategy),
                _field('Entry Price', f"{position.entry_price}"),
                _field('Tokens', f"{position.token_amount}"),
                _field('Take Profit', f"{float(position.profit_threshold) * 100:.2f}%"),
                _field('Stop Loss', f"{float(position.loss_threshold) * 100:.2f}%"),
            ]
        )
    
    def notify_buyback(self, position, outcome) -> None:
        pnl = format_pnl(outcome.percentage_pnl, outcome.absolute_pnl)
        self._send_embed(
            content='🧪 **Dry Run Buyback**' if outcome.dry_run else '💰 **Buyback Executed**',
            title=f"{position.pair_symbol} closed: {outcome.reason or 'MANUAL'}",
            color=COLOR_DRY_RUN if outcome.dry_run else COLOR_SUCCESS,
            fields=[
                _field('Entry', f"{position.entry_amount}"),
                _field('Recovered', f"{outcome.final_base_amount}"),
                _field('PnL', pnl),
                _field('Transaction ID', outcome.transaction_id or 'N/A', inline=False),
            ]
        )
    
    def notify_position_failed(self, position, reason: str) -> None:
        self._send_embed(
            content='❌ **Buyback Failed**',
            title=f"{position.pair_symbol} marked FAILED after {position.retry_count} attempts",
            color=COLOR_FAILURE,
            description=reason,
            fields=[_field('Tokens Held', f"{position.token_amount} {position.token_symbol}")]
        )
    
    def notify_stale_position(self, position, consecutive_failures: int) -> None:
        self._send_embed(
            content='⚠️ **Stale Position**',
            title=f"No price for {position.token_symbol}",
            color=COLOR_WARNING,
            description=f"{consecutive_failures} consecutive price lookups failed for position {position.id}"
        )
    
    def notify_error(self, title: str, error: str, context: Optional[Dict[str, Any]] = None) -> None:
        fields = [_field(str(k), str(v)) for k, v in (context or {}).items()]
        self._send_embed(
            content='🚨 **Error**',
            title=title,
            color=COLOR_FAILURE,
            description=str(error)[:2000],
            fields=fields
        )
    
    def _send_embed(
        self,
        content: str,
        title: str,
        color: int,
        description: str = None,
        fields: List[Dict] = None
    ):
        embed = {
            'title': title,
            'color': color,
            'fields': fields or [],
            'timestamp': datetime.utcnow().isoformat(),
            'footer': FOOTER
        }
        if description:
            embed['description'] = description
        self.send_webhook({'content': content, 'embeds': [embed]})

def _field(name: str, value: str, inline: bool = True) -> Dict:
    return {'name': name, 'value': value, 'inline': inline}
