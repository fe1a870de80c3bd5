"""
Token descriptor fetching.

Reads the ERC20 metadata of a token contract. Each field is read on its own
so that a contract missing one function still yields a usable descriptor.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from web3 import Web3

from ..config import NetworkConfig
from ..context import AnalysisContext
from ..errors import (
    ConfigurationError,
    ConnectivityError,
    ContractReadError,
    NotAContractError,
    describe_error,
)
from ..models import Diagnostic, Stage, TokenDescriptor
from .rpc import is_empty_code

logger = logging.getLogger(__name__)

# Values used when a contract does not answer for a field
DESCRIPTOR_DEFAULTS: Dict[str, Any] = {
    "name": "Unknown Token",
    "symbol": "???",
    "decimals": 18,
    "totalSupply": "0",
}


def normalize_address(address: str) -> str:
    """Checksum an address, raising ConfigurationError when malformed."""
    if not isinstance(address, str) or not Web3.is_address(address.strip()):
        raise ConfigurationError(f"Invalid Ethereum address format: {address!r}")
    return Web3.to_checksum_address(address.strip())


class TokenDataFetcher:
    """Fetches token metadata through a connected RPC client."""

    def __init__(
        self,
        client,
        network: NetworkConfig,
        context: Optional[AnalysisContext] = None,
        call_timeout: float = 10,
    ):
        self.client = client
        self.network = network
        self.context = context if context is not None else AnalysisContext()
        self.call_timeout = call_timeout

    async def _ensure_contract(self, address: str) -> None:
        try:
            code = await asyncio.wait_for(self.client.get_code(address), timeout=self.call_timeout)
        except Exception as e:
            raise ConnectivityError(
                self.network.key,
                [getattr(self.client, "url", "")],
                e,
                message=f"Failed to read contract code for {address}: {describe_error(e)}",
            ) from e
        if is_empty_code(code):
            raise NotAContractError(address)

    async def _read_field(self, address: str, field: str) -> Any:
        return await asyncio.wait_for(self.client.call(address, field), timeout=self.call_timeout)

    async def get_token_info(self, address: str) -> TokenDescriptor:
        """
        Get basic token information.

        Args:
            address: The token contract address

        Returns:
            TokenDescriptor with defaults for any field that could not be read

        Raises:
            ConfigurationError: If the address is malformed or not a contract
            ConnectivityError: If the contract code cannot be read at all
        """
        address = normalize_address(address)
        await self._ensure_contract(address)

        values = dict(DESCRIPTOR_DEFAULTS)
        failed = []
        for field in ("name", "symbol", "decimals", "totalSupply"):
            try:
                values[field] = await self._read_field(address, field)
            except Exception as e:
                failed.append(field)
                error = ContractReadError(field, e)
                self.context.record(
                    Diagnostic.from_error(Stage.FETCHING_DESCRIPTOR, error, field=field)
                )

        try:
            decimals = int(values["decimals"])
            total_supply = str(int(values["totalSupply"]))
        except (TypeError, ValueError) as e:
            logger.warning(f"Unexpected decimals/totalSupply value for {address}: {e}")
            decimals = DESCRIPTOR_DEFAULTS["decimals"]
            total_supply = DESCRIPTOR_DEFAULTS["totalSupply"]
            failed.append("decimals/totalSupply")

        descriptor = TokenDescriptor(
            address=address,
            name=str(values["name"]),
            symbol=str(values["symbol"]),
            decimals=decimals,
            total_supply=total_supply,
            is_erc20_compliant=not failed,
            network=self.network.key,
            chain_id=self.network.chain_id,
        )
        logger.info(f"Fetched info for token {descriptor.name} ({descriptor.symbol})")
        return descriptor

    async def check_compliance(self, address: str) -> Dict[str, bool]:
        """
        Check which required ERC20 read functions a contract implements.

        Returns:
            Mapping of function name to availability, plus ``is_contract``
            and ``compliant`` keys
        """
        address = normalize_address(address)
        result = {"is_contract": True, "name": False, "symbol": False,
                  "decimals": False, "totalSupply": False, "compliant": False}
        try:
            await self._ensure_contract(address)
        except NotAContractError:
            logger.warning(f"Address {address} is not a contract")
            result["is_contract"] = False
            return result

        for field in ("name", "symbol", "decimals", "totalSupply"):
            try:
                await self._read_field(address, field)
                result[field] = True
            except Exception as e:
                logger.warning(f"Contract {address} is missing {field}() function: {describe_error(e)}")

        result["compliant"] = all(result[f] for f in ("name", "symbol", "decimals", "totalSupply"))
        return result
