"""
Market metrics derived from a token descriptor and a reference price.

All functions return neutral values (zeros) instead of raising or producing
NaN/Infinity when a denominator is zero or negative.
"""

import logging
import math
import time
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation, localcontext
from typing import Callable, Dict, Iterable, Optional, Union

from ..models import MarketMetrics, TokenDescriptor, Transfer

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 60 * 60 * 24


def to_decimal(raw_amount: Union[str, int], decimals: int) -> Decimal:
    """Scale a raw integer token amount by ``10 ** decimals``."""
    try:
        value = int(raw_amount)
        with localcontext() as ctx:
            # Keep every digit of 256-bit amounts
            ctx.prec = max(ctx.prec, len(str(abs(value))) + 1)
            return Decimal(value).scaleb(-int(decimals))
    except (TypeError, ValueError, InvalidOperation) as e:
        logger.error(f"Error converting token amount {raw_amount!r}: {e}")
        return Decimal(0)


def _finite(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def calculate_market_cap(total_supply: Union[str, int], decimals: int, price: float) -> float:
    """Calculate market cap from token supply and price."""
    return _finite(float(to_decimal(total_supply, decimals)) * price)


def calculate_fully_diluted_cap(
    total_supply: Union[str, int],
    decimals: int,
    price: float,
    max_supply: Optional[Union[str, int]] = None,
) -> float:
    """
    Calculate fully diluted market cap.

    Uses ``max_supply`` when the token has a cap different from its current
    supply, otherwise the total supply.
    """
    supply = max_supply if max_supply not in (None, "") else total_supply
    return _finite(float(to_decimal(supply, decimals)) * price)


def calculate_market_cap_difference(market_cap: float, fully_diluted_cap: float) -> Dict[str, float]:
    """
    Difference between fully diluted cap and market cap.

    >>> calculate_market_cap_difference(100, 150)
    {'difference': 50, 'percent_difference': 50.0}
    """
    difference = fully_diluted_cap - market_cap
    percent_difference = (difference / market_cap) * 100 if market_cap > 0 else 0
    return {"difference": difference, "percent_difference": percent_difference}


class OffMarketStrategy(ABC):
    """Decides whether a large transfer likely traded below market price."""

    @abstractmethod
    def is_below_market(self, transfer: Transfer, descriptor: TokenDescriptor) -> bool:
        ...


class HeuristicOffMarketStrategy(OffMarketStrategy):
    """
    Deterministic heuristic for off-market trades.

    Transfers to addresses starting with ``0x00`` (burns, vanity or fresh
    wallets) and recent round-number transfers (typical of OTC deals) count
    as below market; everything else counts as above.
    """

    def __init__(self, clock: Callable[[], float] = time.time, recent_window: int = SECONDS_PER_DAY):
        self.clock = clock
        self.recent_window = recent_window

    def is_below_market(self, transfer: Transfer, descriptor: TokenDescriptor) -> bool:
        if transfer.recipient.lower().startswith("0x00"):
            return True

        try:
            is_round_number = int(transfer.amount) % (10 * 10 ** int(descriptor.decimals)) == 0
        except (TypeError, ValueError):
            return False
        is_recent = self.clock() - transfer.timestamp < self.recent_window
        return bool(is_round_number and is_recent)


def analyze_off_market_sales(
    transfers: Iterable[Transfer],
    descriptor: TokenDescriptor,
    price: float,
    strategy: Optional[OffMarketStrategy] = None,
) -> Dict[str, float]:
    """
    Split large-transfer volume into likely above/below market trades.

    Returns:
        ``above_price`` and ``below_price`` as percentages of market cap,
        ``percentage`` as the share of total supply moved and ``volume_usd``
    """
    empty = {"above_price": 0.0, "below_price": 0.0, "percentage": 0.0, "volume_usd": 0.0}
    large = [t for t in transfers if t.is_large]
    if not large or price <= 0:
        return empty

    strategy = strategy or HeuristicOffMarketStrategy()
    above = Decimal(0)
    below = Decimal(0)
    for transfer in large:
        amount = to_decimal(transfer.amount, descriptor.decimals)
        if strategy.is_below_market(transfer, descriptor):
            below += amount
        else:
            above += amount

    total_tokens = float(above + below)
    market_cap = calculate_market_cap(descriptor.total_supply, descriptor.decimals, price)
    supply_tokens = float(to_decimal(descriptor.total_supply, descriptor.decimals))

    if market_cap > 0:
        above_percent = float(above) * price / market_cap * 100
        below_percent = float(below) * price / market_cap * 100
    else:
        above_percent = below_percent = 0.0

    return {
        "above_price": _finite(above_percent),
        "below_price": _finite(below_percent),
        "percentage": _finite(total_tokens / supply_tokens * 100) if supply_tokens > 0 else 0.0,
        "volume_usd": _finite(total_tokens * price),
    }


class MarketMetricsCalculator:
    """Builds MarketMetrics for a token at a reference price."""

    def __init__(self, strategy: Optional[OffMarketStrategy] = None):
        self.strategy = strategy or HeuristicOffMarketStrategy()

    def calculate(
        self,
        descriptor: TokenDescriptor,
        price: Optional[float],
        transfers: Iterable[Transfer] = (),
        max_supply: Optional[str] = None,
    ) -> Optional[MarketMetrics]:
        """
        Calculate market metrics, or None when no positive price is given.
        """
        if price is None or not math.isfinite(price) or price <= 0:
            return None

        market_cap = calculate_market_cap(descriptor.total_supply, descriptor.decimals, price)
        fully_diluted_cap = calculate_fully_diluted_cap(
            descriptor.total_supply, descriptor.decimals, price, max_supply
        )
        difference = calculate_market_cap_difference(market_cap, fully_diluted_cap)
        off_market = analyze_off_market_sales(transfers, descriptor, price, self.strategy)

        logger.info(f"Market cap calculated: ${market_cap:,.2f}")
        logger.info(
            f"Fully diluted market cap: ${fully_diluted_cap:,.2f} "
            f"(difference ${difference['difference']:,.2f}, {difference['percent_difference']:.2f}%)"
        )

        return MarketMetrics(
            price=price,
            market_cap=market_cap,
            fully_diluted_cap=fully_diluted_cap,
            dilution_delta=difference["difference"],
            dilution_percent=difference["percent_difference"],
            off_market_above_percent=off_market["above_price"],
            off_market_below_percent=off_market["below_price"],
            off_market_percent_of_supply=off_market["percentage"],
            off_market_volume_usd=off_market["volume_usd"],
        )
