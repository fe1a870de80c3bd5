"""
Token Metrics Analyzer

Extracts ERC20 token metadata and recent transfer history from unreliable
JSON-RPC endpoints and derives market metrics from it.
"""

__version__ = "1.0.0"
__author__ = "Token Metrics Analytics"

from .analyzer import TokenMetricsAnalyzer, analyze_token
from .models import MarketMetrics, TokenDescriptor, TokenMetrics, Transfer

__all__ = [
    "TokenMetricsAnalyzer",
    "analyze_token",
    "TokenDescriptor",
    "TokenMetrics",
    "Transfer",
    "MarketMetrics",
]
