"""
RPC endpoint failover.

Candidates are tried in order: the endpoint that last worked for the network,
the configured primary, then the configured fallbacks. The first one that
answers a block-number probe wins.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from ..config import NetworkRegistry
from ..errors import ConfigurationError, ConnectivityError, classify_error, describe_error
from .rpc import close_client, default_client_factory

logger = logging.getLogger(__name__)


class EndpointState:
    """Remembers the most recent working endpoint per network."""

    def __init__(self):
        self._last_successful: Dict[str, str] = {}

    def get(self, network: str) -> Optional[str]:
        return self._last_successful.get(network)

    def record_success(self, network: str, url: str) -> None:
        self._last_successful[network] = url

    def clear(self) -> None:
        self._last_successful.clear()


class EndpointSelector:
    """Produces a connected, validated client for a network."""

    def __init__(
        self,
        networks: NetworkRegistry,
        state: Optional[EndpointState] = None,
        client_factory: Callable = default_client_factory,
        probe_timeout: float = 5,
    ):
        self.networks = networks
        self.state = state if state is not None else EndpointState()
        self.client_factory = client_factory
        self.probe_timeout = probe_timeout

    def candidates(self, network: str) -> List[str]:
        """
        Ordered, de-duplicated list of endpoint URLs to try.

        Raises:
            ConfigurationError: If the network is unknown
        """
        config = self.networks.get(network)
        ordered = []
        preferred = self.state.get(config.key)
        if preferred:
            ordered.append(preferred)
        ordered.extend(config.rpc_urls)

        seen = set()
        urls = []
        for url in ordered:
            if url and url not in seen:
                seen.add(url)
                urls.append(url)
        return urls

    async def connect(self, network: str):
        """
        Probe candidates in order and return the first live client.

        Args:
            network: Network key or chain id

        Returns:
            A client for the first endpoint that answered the probe

        Raises:
            ConfigurationError: If the network is unknown or has no endpoints
            ConnectivityError: If every candidate failed
        """
        config = self.networks.get(network)
        urls = self.candidates(config.key)
        if not urls:
            raise ConfigurationError(f"No RPC endpoints configured for {config.name}")
        attempted: List[str] = []
        last_error: Optional[BaseException] = None

        for index, url in enumerate(urls):
            attempted.append(url)
            label = "preferred" if index == 0 and self.state.get(config.key) else "candidate"
            logger.info(f"Attempting to connect to {label} RPC for {config.name}: {url}")
            client = self.client_factory(url)
            try:
                block_number = await asyncio.wait_for(
                    client.get_block_number(), timeout=self.probe_timeout
                )
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Failed to connect to {url}: {classify_error(e)} ({describe_error(e)})"
                )
                await close_client(client)
                continue

            self.state.record_success(config.key, url)
            logger.info(f"Connected to {url} at block {block_number}")
            return client

        logger.error(f"All RPC connection attempts failed for {config.name}")
        raise ConnectivityError(config.key, attempted, last_error)

