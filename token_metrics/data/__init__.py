"""Remote data retrieval and post-processing for token metrics."""

from .blocks import BlockResolver
from .endpoints import EndpointSelector, EndpointState
from .events import EventRetriever, chunk_range
from .fetcher import TokenDataFetcher
from .processor import DataProcessor
from .rpc import RpcClient

__all__ = [
    "BlockResolver",
    "EndpointSelector",
    "EndpointState",
    "EventRetriever",
    "chunk_range",
    "TokenDataFetcher",
    "DataProcessor",
    "RpcClient",
]
