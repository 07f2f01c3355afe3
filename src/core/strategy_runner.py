"""
Runs the configured entry strategies once.

Each enabled strategy decides per target token whether to open a new
position; opening goes through the lifecycle manager so the entry swap,
trade record and position row stay together.
"""
from datetime import datetime
from decimal import Decimal
from typing import Dict, List
from src.core.position_manager import PositionLifecycleManager
from src.core.signal_strategy import analyze_golden_cross, dca_volatility_ok, is_entry_signal, should_run_dca
from src.data.price_oracle import BasePriceSource
from src.storage.position_repository import PositionRepository
from src.utils.logging import get_logger

logger = get_logger(__name__)

class StrategyRunner:
    """
    Evaluates entry strategies from strategies.yaml.
    
    Args:
        repository: Position repository (open positions, last entry times)
        lifecycle_manager: Opens positions
        price_source: Historical prices for the indicators
        strategies: Parsed strategies.yaml
    """
    
    def __init__(
        self,
        repository: PositionRepository,
        lifecycle_manager: PositionLifecycleManager,
        price_source: BasePriceSource,
        strategies: Dict
    ):
        self.repository = repository
        self.lifecycle_manager = lifecycle_manager
        self.price_source = price_source
        self.strategies = strategies or {}
    
    def run(self, now: datetime = None) -> List[Dict]:
        """Evaluate every enabled strategy and target; returns one record per target."""
        now = now or datetime.utcnow()
        results = []
        
        for name, handler in (('golden_cross', self._golden_cross), ('dca', self._dca)):
            strategy = self.strategies.get(name) or {}
            if not strategy.get('enabled', False):
                continue
            for target in strategy.get('targets', []):
                try:
                    results.append(handler(name, strategy, target, now))
                except Exception as e:
                    logger.error(
                        "Entry strategy failed",
                        strategy=name,
                        target=target.get('symbol'),
                        error_type=type(e).__name__,
                        error=str(e)
                    )
                    results.append({
                        'strategy': name,
                        'target': target.get('symbol'),
                        'action': 'error',
                        'error': f"{type(e).__name__}: {e}"
                    })
        
        return results
    
    def _golden_cross(self, name: str, strategy: Dict, target: Dict, now: datetime) -> Dict:
        record = {'strategy': name, 'target': target['symbol']}
        if self._has_open_position(name, target['token_identifier']):
            return {**record, 'action': 'skip', 'reason': 'position already open'}
        
        # Target priced in base units; invert to get the base asset's own trend
        target_prices = self.price_source.get_price_history(
            target['token_identifier'], strategy.get('lookback_days', 250)
        )
        base_prices = [Decimal(1) / p for p in target_prices if p > 0]
        signal = analyze_golden_cross(
            base_prices,
            short_period=strategy.get('short_period', 50),
            long_period=strategy.get('long_period', 200),
            use_rsi=strategy.get('use_rsi', True),
            rsi_period=strategy.get('rsi_period', 14)
        )
        logger.info(
            "Golden cross analysis",
            target=target['symbol'],
            signal=signal.signal,
            confidence=signal.confidence,
            reasons=signal.reasons
        )
        
        if not is_entry_signal(signal, strategy.get('minimum_confidence', 0.6)):
            return {**record, 'action': 'hold', 'signal': signal.signal, 'confidence': signal.confidence}
        return self._open(name, strategy, target, record)
    
    def _dca(self, name: str, strategy: Dict, target: Dict, now: datetime) -> Dict:
        record = {'strategy': name, 'target': target['symbol']}
        last_entry = self.repository.last_entry_at(name, target['token_identifier'])
        if not should_run_dca(last_entry, strategy.get('interval_hours', 24), now):
            return {**record, 'action': 'skip', 'reason': 'interval not elapsed'}
        
        window = strategy.get('volatility_window', 14)
        prices = self.price_source.get_price_history(target['token_identifier'], window + 1)
        if not dca_volatility_ok(prices, strategy.get('max_volatility', 0.15), window):
            return {**record, 'action': 'skip', 'reason': 'volatility above limit'}
        return self._open(name, strategy, target, record)
    
    def _open(self, name: str, strategy: Dict, target: Dict, record: Dict) -> Dict:
        result = self.lifecycle_manager.open_position(
            strategy=name,
            token_identifier=target['token_identifier'],
            token_symbol=target['symbol'],
            entry_amount=strategy.get('trade_amount'),
            profit_threshold=strategy.get('profit_threshold'),
            loss_threshold=strategy.get('loss_threshold')
        )
        return {**record, 'action': 'open', **result.to_dict()}
    
    def _has_open_position(self, strategy: str, token_identifier: str) -> bool:
        return any(
            p.token_identifier == token_identifier
            for p in self.repository.get_open_positions(strategy)
        )
