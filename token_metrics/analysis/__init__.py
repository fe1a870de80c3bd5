"""Transfer classification and market metric calculations."""

from .classifier import is_large_transfer
from .market import HeuristicOffMarketStrategy, MarketMetricsCalculator, OffMarketStrategy

__all__ = [
    "is_large_transfer",
    "MarketMetricsCalculator",
    "OffMarketStrategy",
    "HeuristicOffMarketStrategy",
]
