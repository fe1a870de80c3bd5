"""
Async JSON-RPC client for EVM chains.

Wraps a single ``AsyncWeb3`` connection and exposes the handful of calls the
analysis pipeline needs. Timeouts are applied by the callers.
"""

import json
import logging
from typing import Any, List, Optional

from web3 import AsyncWeb3, Web3

from ..models import BlockHeader, RawTransferEvent

logger = logging.getLogger(__name__)

# Standard ERC20 ABI for basic token operations
ERC20_ABI = json.loads('''[
    {"constant":true,"inputs":[],"name":"name","outputs":[{"name":"","type":"string"}],"type":"function"},
    {"constant":true,"inputs":[],"name":"symbol","outputs":[{"name":"","type":"string"}],"type":"function"},
    {"constant":true,"inputs":[],"name":"decimals","outputs":[{"name":"","type":"uint8"}],"type":"function"},
    {"constant":true,"inputs":[],"name":"totalSupply","outputs":[{"name":"","type":"uint256"}],"type":"function"},
    {"constant":true,"inputs":[{"name":"_owner","type":"address"}],"name":"balanceOf","outputs":[{"name":"balance","type":"uint256"}],"type":"function"},
    {"anonymous":false,"inputs":[{"indexed":true,"name":"from","type":"address"},{"indexed":true,"name":"to","type":"address"},{"indexed":false,"name":"value","type":"uint256"}],"name":"Transfer","type":"event"}
]''')

TRANSFER_EVENT_SIGNATURE = "Transfer(address,address,uint256)"
TRANSFER_TOPIC = Web3.to_hex(Web3.keccak(text=TRANSFER_EVENT_SIGNATURE))


class RpcClient:
    """Data-service handle bound to one RPC endpoint."""

    def __init__(self, url: str):
        self.url = url
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(url))

    def __repr__(self) -> str:
        return f"RpcClient({self.url!r})"

    def _contract(self, address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=ERC20_ABI)

    async def get_block_number(self) -> int:
        return await self.w3.eth.block_number

    async def get_block(self, number: Any) -> BlockHeader:
        """Fetch a block by number (or ``"latest"``)."""
        block = await self.w3.eth.get_block(number)
        return BlockHeader(number=int(block["number"]), timestamp=int(block["timestamp"]))

    async def get_code(self, address: str) -> bytes:
        code = await self.w3.eth.get_code(Web3.to_checksum_address(address))
        return bytes(code)

    async def call(self, address: str, method: str, *args: Any) -> Any:
        """Call a read-only ERC20 function on ``address``."""
        contract = self._contract(address)
        return await getattr(contract.functions, method)(*args).call()

    async def query_logs(
        self,
        address: str,
        from_block: int,
        to_block: int,
        event_signature: str = TRANSFER_EVENT_SIGNATURE,
    ) -> List[RawTransferEvent]:
        """Return decoded Transfer logs emitted by ``address`` in a block range."""
        if event_signature != TRANSFER_EVENT_SIGNATURE:
            raise ValueError(f"Unsupported event signature: {event_signature}")

        contract = self._contract(address)
        logs = await self.w3.eth.get_logs({
            "address": contract.address,
            "fromBlock": from_block,
            "toBlock": to_block,
            "topics": [TRANSFER_TOPIC],
        })

        events = []
        transfer = contract.events.Transfer()
        for log in logs:
            try:
                decoded = transfer.process_log(log)
            except Exception as e:
                # Non-standard Transfer layouts (e.g. ERC721 with indexed value)
                logger.debug(f"Skipping undecodable log in block {log.get('blockNumber')}: {e}")
                continue
            args = decoded["args"]
            events.append(RawTransferEvent(
                transaction_hash=Web3.to_hex(decoded["transactionHash"]),
                block_number=int(decoded["blockNumber"]),
                args=(args["from"], args["to"], args["value"]),
            ))
        return events

    async def close(self) -> None:
        """Release the underlying HTTP session."""
        await self.w3.provider.disconnect()


def default_client_factory(url: str) -> RpcClient:
    return RpcClient(url)


def is_empty_code(code: Optional[bytes]) -> bool:
    return not code or bytes(code) in (b"", b"\x00")


async def close_client(client) -> None:
    """Close a client if it supports closing; errors are logged, not raised."""
    close = getattr(client, "close", None)
    if close is None:
        return
    try:
        await close()
    except Exception as e:
        logger.debug(f"Error closing client {client!r}: {e}")
