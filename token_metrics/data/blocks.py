"""
Block timestamp resolution.

Resolves block numbers to timestamps through the per-run cache, retrying
slow or failing fetches with growing timeouts. When a block cannot be fetched
at all, its timestamp is extrapolated from the chain head and the average
block time, so resolution never aborts the pipeline.
"""

import asyncio
import logging
import time
from typing import Callable, Optional, Sequence

from ..config import DEFAULT_BLOCK_TIME
from ..context import AnalysisContext, BlockCache
from ..errors import ResolutionFallback, describe_error
from ..models import BlockCacheEntry, BlockHeader, Diagnostic, Stage

logger = logging.getLogger(__name__)

# Used when neither the head block nor a head height hint is available
FALLBACK_BLOCK_DISTANCE = 1000


class BlockResolver:
    """Maps block numbers to timestamps for one analysis run."""

    def __init__(
        self,
        client,
        cache: Optional[BlockCache] = None,
        seconds_per_block: int = DEFAULT_BLOCK_TIME,
        timeouts: Sequence[float] = (10, 15, 15),
        head_timeout: float = 10,
        context: Optional[AnalysisContext] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        if cache is None:
            cache = context.block_cache if context is not None else BlockCache()
        self.cache = cache
        self.seconds_per_block = seconds_per_block or DEFAULT_BLOCK_TIME
        self.timeouts = tuple(timeouts)
        self.head_timeout = head_timeout
        self.context = context
        self.clock = clock
        self.head_hint: Optional[int] = None
        self._anchor: Optional[BlockHeader] = None

    async def resolve(self, block_number: int) -> BlockCacheEntry:
        """
        Return the timestamp entry for a block.

        A cached entry, real or estimated, is returned as-is. Otherwise the
        block is fetched with retries, and estimated if every attempt fails.
        """
        cached = self.cache.get(block_number)
        if cached is not None:
            return cached

        last_error: Optional[BaseException] = None
        attempts = len(self.timeouts)
        for attempt, timeout in enumerate(self.timeouts, start=1):
            if attempt > 1:
                logger.debug(f"Retrying block {block_number} fetch (attempt {attempt}/{attempts})")
            try:
                block = await asyncio.wait_for(self.client.get_block(block_number), timeout=timeout)
            except Exception as e:
                last_error = e
                continue
            entry = BlockCacheEntry(timestamp=int(block.timestamp), is_estimated=False)
            self.cache.put(block_number, entry)
            return entry

        logger.warning(
            f"Failed to get block {block_number} after {attempts} attempts: "
            f"{describe_error(last_error)}"
        )
        entry = BlockCacheEntry(timestamp=await self.estimate(block_number), is_estimated=True)
        self.cache.put(block_number, entry)
        if self.context is not None:
            fallback = ResolutionFallback(block_number, entry.timestamp, last_error)
            self.context.record(
                Diagnostic.from_error(Stage.RESOLVING_BLOCKS, fallback, block_number=block_number)
            )
        return entry

    async def estimate(self, block_number: int) -> int:
        """Extrapolate a timestamp linearly from the chain head."""
        anchor = await self._head_anchor()
        if anchor is None:
            now = int(self.clock())
            if self.head_hint is None:
                return now - FALLBACK_BLOCK_DISTANCE * self.seconds_per_block
            anchor = BlockHeader(number=self.head_hint, timestamp=now)
        return anchor.timestamp - (anchor.number - block_number) * self.seconds_per_block

    async def _head_anchor(self) -> Optional[BlockHeader]:
        if self._anchor is not None:
            return self._anchor
        try:
            head = await asyncio.wait_for(self.client.get_block("latest"), timeout=self.head_timeout)
        except Exception as e:
            logger.warning(f"Could not fetch head block for estimation: {describe_error(e)}")
            return None
        self._anchor = head
        return head

    async def prewarm(self, block_numbers: Sequence[int], batch_size: int = 20) -> None:
        """
        Resolve many blocks ahead of time.

        Batches run one after another; blocks within a batch are resolved
        concurrently.
        """
        pending = [n for n in dict.fromkeys(block_numbers) if n not in self.cache]
        total = len(pending)
        if not total:
            return

        done = 0
        for start in range(0, total, batch_size):
            if self.context is not None:
                self.context.check_cancelled()
            batch = pending[start:start + batch_size]
            results = await asyncio.gather(
                *(self.resolve(n) for n in batch), return_exceptions=True
            )
            for number, result in zip(batch, results):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                if isinstance(result, BaseException):
                    logger.warning(f"Pre-fetch of block {number} failed: {describe_error(result)}")
            done += len(batch)
            logger.info(f"Pre-fetched blocks {done}/{total} ({round(done / total * 100)}%)")
