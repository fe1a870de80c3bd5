"""
Reference price lookup from CoinGecko.

The analysis pipeline takes a price as a plain number; this module is an
optional source for that number, looked up by contract address.
"""

import logging
from operator import attrgetter
from typing import Any, Dict, Optional

import requests
from cachetools import TTLCache, cachedmethod
from ratelimit import limits, sleep_and_retry

logger = logging.getLogger(__name__)

# CoinGecko asset platform ids for the configured networks
COINGECKO_PLATFORMS = {
    "ethereum": "ethereum",
    "polygon": "polygon-pos",
    "bsc": "binance-smart-chain",
    "avalanche": "avalanche",
    "arbitrum": "arbitrum-one",
    "optimism": "optimistic-ethereum",
}


class PriceFetcher:
    """Fetches USD token prices from CoinGecko."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, session: Optional[requests.Session] = None):
        """
        Initialize the price fetcher.

        Args:
            config: The ``pricing`` section of the configuration
            session: Optional requests session (useful for tests)
        """
        config = config or {}
        self.base_url = config.get("coingecko_url", "https://api.coingecko.com/api/v3").rstrip("/")
        self.timeout = config.get("timeout", 10)
        self.session = session or requests.Session()
        self.price_cache = TTLCache(maxsize=100, ttl=config.get("cache_ttl_seconds", 300))

        calls = config.get("requests_per_minute", 10)
        self._get = sleep_and_retry(limits(calls=calls, period=60)(self._request))

        logger.info("PriceFetcher initialized")

    def _request(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        response = self.session.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    @cachedmethod(attrgetter("price_cache"))
    def get_token_price_usd(self, token_address: str, network: str = "ethereum") -> Optional[float]:
        """
        Get a token's USD price by contract address.

        Args:
            token_address: Token contract address
            network: Network key from the configuration

        Returns:
            Price in USD, or None when the token or network is not listed
        """
        platform = COINGECKO_PLATFORMS.get(network)
        if not platform:
            logger.warning(f"No CoinGecko platform for network {network}")
            return None

        address = token_address.lower()
        try:
            data = self._get(
                f"/simple/token_price/{platform}",
                {"contract_addresses": address, "vs_currencies": "usd"},
            )
        except requests.RequestException as e:
            logger.error(f"Error fetching from CoinGecko: {e}")
            return None

        price = (data.get(address) or {}).get("usd")
        if price is None:
            logger.warning(f"CoinGecko has no price for {token_address} on {network}")
            return None
        logger.info(f"Got price from CoinGecko for {token_address}: ${price}")
        return float(price)
