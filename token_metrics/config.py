"""
Configuration loading for the token metrics tool.

Settings come from a YAML file merged over built-in defaults. The network
table maps a network key to an ordered list of RPC endpoints (primary first)
and the average block time used for timestamp estimation.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_TIME = 13


def get_default_config() -> Dict[str, Any]:
    """Return the default configuration used when no config file is found."""
    return {
        "networks": {
            "ethereum": {
                "chain_id": 1,
                "name": "Ethereum Mainnet",
                "rpc_urls": [
                    "https://mainnet.infura.io/v3/9aa3d95b3bc440fa88ea12eaa4456161",
                    "https://rpc.ankr.com/eth",
                    "https://eth.llamarpc.com",
                    "https://ethereum.publicnode.com",
                    "https://1rpc.io/eth",
                ],
                "block_time": 13,
                "explorer_url": "https://etherscan.io",
            },
            "sepolia": {
                "chain_id": 11155111,
                "name": "Sepolia Testnet",
                "rpc_urls": [
                    "https://sepolia.infura.io/v3/9aa3d95b3bc440fa88ea12eaa4456161",
                    "https://rpc.sepolia.org",
                ],
                "block_time": 12,
                "explorer_url": "https://sepolia.etherscan.io",
            },
            "polygon": {
                "chain_id": 137,
                "name": "Polygon Mainnet",
                "rpc_urls": [
                    "https://polygon-mainnet.g.alchemy.com/v2/demo",
                    "https://polygon-rpc.com",
                ],
                "block_time": 2,
                "explorer_url": "https://polygonscan.com",
            },
            "bsc": {
                "chain_id": 56,
                "name": "BNB Smart Chain",
                "rpc_urls": ["https://bsc-dataseed.binance.org"],
                "block_time": 3,
                "explorer_url": "https://bscscan.com",
            },
            "avalanche": {
                "chain_id": 43114,
                "name": "Avalanche C-Chain",
                "rpc_urls": ["https://api.avax.network/ext/bc/C/rpc"],
                "block_time": 2,
                "explorer_url": "https://snowtrace.io",
            },
            "arbitrum": {
                "chain_id": 42161,
                "name": "Arbitrum One",
                "rpc_urls": ["https://arb1.arbitrum.io/rpc"],
                "explorer_url": "https://arbiscan.io",
            },
            "optimism": {
                "chain_id": 10,
                "name": "Optimism",
                "rpc_urls": ["https://mainnet.optimism.io"],
                "block_time": 2,
                "explorer_url": "https://optimistic.etherscan.io",
            },
        },
        "data_collection": {
            "chunk_size": 10000,
            "max_events": 2000,
            "blocks_per_day": 6500,
            "lookback_days": 30,
            "prewarm_batch_size": 20,
            "probe_timeout": 5,
            "chunk_timeout": 20,
            "call_timeout": 10,
            "block_timeouts": [10, 15, 15],
            "connect_attempts": 3,
            "connect_backoff": 1,
            "block_cache_size": 100000,
        },
        "pricing": {
            "coingecko_url": "https://api.coingecko.com/api/v3",
            "requests_per_minute": 10,
            "cache_ttl_seconds": 300,
        },
    }


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str] = "config.yaml") -> Dict[str, Any]:
    """Load configuration from YAML file, falling back to defaults."""
    defaults = get_default_config()
    if not config_path:
        return defaults
    try:
        with open(config_path, "r") as f:
            user_config = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning(f"Config file not found at {config_path}, using defaults")
        return defaults
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid config file {config_path}: {e}") from e

    if not isinstance(user_config, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")
    return _merge(defaults, user_config)


@dataclass(frozen=True)
class NetworkConfig:
    key: str
    name: str
    chain_id: Optional[int]
    rpc_urls: Tuple[str, ...]
    block_time: int = DEFAULT_BLOCK_TIME
    explorer_url: Optional[str] = None

    @property
    def primary_url(self) -> Optional[str]:
        return self.rpc_urls[0] if self.rpc_urls else None

    @property
    def fallback_urls(self) -> Tuple[str, ...]:
        return self.rpc_urls[1:]

    def token_url(self, address: str) -> Optional[str]:
        if not self.explorer_url:
            return None
        return f"{self.explorer_url}/token/{address}"

    def transaction_url(self, tx_hash: str) -> Optional[str]:
        if not self.explorer_url:
            return None
        return f"{self.explorer_url}/tx/{tx_hash}"


class NetworkRegistry:
    """Lookup of configured networks by key or chain id."""

    def __init__(self, networks: Dict[str, Dict[str, Any]]):
        self._networks: Dict[str, NetworkConfig] = {}
        for key, raw in (networks or {}).items():
            urls = raw.get("rpc_urls")
            if urls is None and raw.get("rpc_url"):
                urls = [raw["rpc_url"]] + list(raw.get("fallback_urls", []))
            self._networks[key] = NetworkConfig(
                key=key,
                name=raw.get("name", key),
                chain_id=raw.get("chain_id"),
                rpc_urls=tuple(urls or ()),
                block_time=raw.get("block_time") or DEFAULT_BLOCK_TIME,
                explorer_url=raw.get("explorer_url"),
            )

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "NetworkRegistry":
        return cls(config.get("networks", {}))

    def get(self, network: Union[str, int]) -> NetworkConfig:
        """Resolve a network key (``"ethereum"``) or chain id (``1``, ``"1"``)."""
        key = str(network).strip()
        if key in self._networks:
            return self._networks[key]
        for candidate in self._networks.values():
            if candidate.chain_id is not None and str(candidate.chain_id) == key:
                return candidate
        raise ConfigurationError(f"Unknown network: {network}")

    def keys(self) -> List[str]:
        return list(self._networks)

    def __iter__(self):
        return iter(self._networks.values())

    def __contains__(self, network: Union[str, int]) -> bool:
        try:
            self.get(network)
        except ConfigurationError:
            return False
        return True


@dataclass(frozen=True)
class RetrievalSettings:
    """Tunables for the retrieval pipeline; times are in seconds."""

    chunk_size: int = 10000
    max_events: int = 2000
    blocks_per_day: int = 6500
    lookback_days: int = 30
    prewarm_batch_size: int = 20
    probe_timeout: float = 5
    chunk_timeout: float = 20
    call_timeout: float = 10
    block_timeouts: Tuple[float, ...] = (10, 15, 15)
    connect_attempts: int = 3
    connect_backoff: float = 1
    block_cache_size: int = 100000

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "RetrievalSettings":
        raw = dict(config.get("data_collection", {}))
        known = {k: v for k, v in raw.items() if k in cls.__dataclass_fields__}
        if "block_timeouts" in known:
            known["block_timeouts"] = tuple(known["block_timeouts"])
        settings = cls(**known)
        if settings.chunk_size <= 0:
            raise ConfigurationError("data_collection.chunk_size must be positive")
        if settings.max_events <= 0:
            raise ConfigurationError("data_collection.max_events must be positive")
        if not settings.block_timeouts:
            raise ConfigurationError("data_collection.block_timeouts must not be empty")
        return settings
