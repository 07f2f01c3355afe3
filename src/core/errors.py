"""
Error taxonomy for the position lifecycle.

Recoverable conditions (price, swap, storage) are caught at the batch
monitor boundary; InvalidInput and InvalidState signal caller bugs.
"""

class TradingBotError(Exception):
    """Base class for all trading bot errors."""

class InvalidInput(TradingBotError, ValueError):
    """Malformed arguments, e.g. a non-positive entry price."""

class PriceUnavailable(TradingBotError):
    """Price source failed or returned no data for a token."""

class SwapError(TradingBotError):
    """Base class for buyback / entry swap failures."""

class SwapFailed(SwapError):
    """Swap rejected or failed (liquidity, network, slippage exceeded)."""

class InsufficientBalance(SwapError):
    """Wallet does not hold enough of the input asset."""

class QuoteUnavailable(SwapError):
    """No quote could be obtained for the requested pair."""

class InvalidPair(SwapError, ValueError):
    """fromAsset and toAsset are the same token."""

class StorageError(TradingBotError):
    """Repository I/O failure."""

class NotFound(StorageError):
    """Position does not exist or is not in the expected state."""

class InvalidState(TradingBotError):
    """Attempt to act on a position that is not OPEN."""

class NotificationFailed(TradingBotError):
    """Notification could not be delivered."""

class CallTimeout(TradingBotError):
    """External call exceeded its timeout."""
