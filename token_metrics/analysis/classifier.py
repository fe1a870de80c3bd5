"""Large-transfer classification."""

import logging
from typing import Union

logger = logging.getLogger(__name__)

LARGE_TRANSFER_THRESHOLD = 0.005
# Same threshold in parts per thousand
_PER_MILLE_THRESHOLD = 5


def is_large_transfer(amount: Union[str, int], total_supply: Union[str, int]) -> bool:
    """
    Determine whether a transfer moves at least 0.5% of total supply.

    Uses integer arithmetic so 256-bit quantities are compared exactly.

    Args:
        amount: Raw transfer amount
        total_supply: Raw total supply

    Returns:
        True for a large transfer; False for zero supply or unparsable input
    """
    try:
        value = int(amount)
        supply = int(total_supply)
    except (TypeError, ValueError) as e:
        logger.warning(f"Error determining if transfer is large: {e}")
        return False

    if supply <= 0 or value < 0:
        return False

    return value * 1000 // supply >= _PER_MILLE_THRESHOLD
