"""
Pytest configuration and fake RPC clients for the token metrics tests
"""
import asyncio
from collections import defaultdict
from typing import Dict, List, Optional

import pytest

from token_metrics.config import get_default_config
from token_metrics.models import BlockHeader, RawTransferEvent

TOKEN_ADDRESS = "0x1f9840a85d5aF5bf1D1762F925BDADdC4201F984"
GENESIS_TIMESTAMP = 1_600_000_000
BLOCK_TIME = 13


class FakeRpcClient:
    """In-memory stand-in for RpcClient with scriptable failures."""

    def __init__(
        self,
        url: str = "fake://primary",
        head: int = 1000,
        code: bytes = b"\x60\x80\x60\x40",
        fields: Optional[Dict[str, object]] = None,
        events: Optional[List[RawTransferEvent]] = None,
        failing_blocks=(),
        failing_chunks=(),
        probe_error: Optional[Exception] = None,
        head_error: Optional[Exception] = None,
    ):
        self.url = url
        self.head = head
        self.code = code
        self.fields = {
            "name": "Test Token",
            "symbol": "TST",
            "decimals": 18,
            "totalSupply": 1000 * 10 ** 18,
        }
        self.fields.update(fields or {})
        self.events = list(events or [])
        self.failing_blocks = set(failing_blocks)
        self.failing_chunks = set(failing_chunks)
        self.probe_error = probe_error
        self.head_error = head_error
        self.calls = defaultdict(int)
        self.block_requests: List[object] = []
        self.log_requests: List[tuple] = []
        self.closed = False

    def timestamp_of(self, number: int) -> int:
        return GENESIS_TIMESTAMP + number * BLOCK_TIME

    async def get_block_number(self) -> int:
        self.calls["get_block_number"] += 1
        if self.probe_error is not None:
            raise self.probe_error
        return self.head

    async def get_block(self, number) -> BlockHeader:
        self.calls["get_block"] += 1
        self.block_requests.append(number)
        if number == "latest":
            if self.head_error is not None:
                raise self.head_error
            number = self.head
        if number in self.failing_blocks:
            raise asyncio.TimeoutError()
        return BlockHeader(number=number, timestamp=self.timestamp_of(number))

    async def get_code(self, address: str) -> bytes:
        self.calls["get_code"] += 1
        return self.code

    async def call(self, address: str, method: str, *args):
        self.calls[method] += 1
        value = self.fields[method]
        if isinstance(value, Exception):
            raise value
        return value

    async def query_logs(self, address: str, from_block: int, to_block: int):
        self.calls["query_logs"] += 1
        self.log_requests.append((from_block, to_block))
        if (from_block, to_block) in self.failing_chunks:
            raise asyncio.TimeoutError()
        return [e for e in self.events if from_block <= e.block_number <= to_block]

    async def close(self) -> None:
        self.closed = True


def make_event(block_number: int, value: int, tx: Optional[str] = None,
               sender: str = "0xSender000000000000000000000000000000000001",
               recipient: str = "0xRecipient0000000000000000000000000000002") -> RawTransferEvent:
    return RawTransferEvent(
        transaction_hash=tx or f"0x{block_number:064x}",
        block_number=block_number,
        args=(sender, recipient, value),
    )


class ClientFactory:
    """Hands out pre-built fake clients by URL and records the order of use."""

    def __init__(self, clients: Dict[str, FakeRpcClient]):
        self.clients = clients
        self.requested: List[str] = []

    def __call__(self, url: str) -> FakeRpcClient:
        self.requested.append(url)
        return self.clients[url]


@pytest.fixture
def test_config():
    """Small, fast configuration with one three-endpoint test network"""
    config = get_default_config()
    config["networks"]["testnet"] = {
        "chain_id": 1337,
        "name": "Test Network",
        "rpc_urls": ["fake://a", "fake://b", "fake://c"],
        "block_time": BLOCK_TIME,
    }
    config["data_collection"].update({
        "chunk_size": 100,
        "blocks_per_day": 10,
        "lookback_days": 30,
        "connect_backoff": 0,
    })
    return config


@pytest.fixture
def fake_client():
    return FakeRpcClient()
