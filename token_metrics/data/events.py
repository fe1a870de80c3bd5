"""
Chunked Transfer-log retrieval.

Block ranges are scanned in fixed-size chunks, strictly in ascending order.
A failed chunk is recorded and skipped; scanning stops once enough events
have been collected.
"""

import asyncio
import logging
from typing import Iterator, List, Optional, Sequence, Tuple

from ..analysis.classifier import is_large_transfer
from ..context import AnalysisContext
from ..errors import (
    ConfigurationError,
    RangeScanPartialFailure,
    classify_error,
)
from ..models import ChunkResult, Diagnostic, RawTransferEvent, ScanReport, Stage, Transfer
from .blocks import BlockResolver

logger = logging.getLogger(__name__)


def chunk_range(from_block: int, to_block: int, chunk_size: int) -> Iterator[Tuple[int, int]]:
    """
    Split an inclusive block range into consecutive inclusive chunks.

    The chunks tile the range exactly; the last chunk ends at ``to_block``.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    start = from_block
    while start <= to_block:
        end = min(to_block, start + chunk_size - 1)
        yield start, end
        start = end + 1


class EventRetriever:
    """Collects Transfer events for one token over a block range."""

    def __init__(
        self,
        client,
        context: Optional[AnalysisContext] = None,
        chunk_size: int = 10000,
        max_events: int = 2000,
        chunk_timeout: float = 20,
    ):
        self.client = client
        self.context = context if context is not None else AnalysisContext()
        self.chunk_size = chunk_size
        self.max_events = max_events
        self.chunk_timeout = chunk_timeout

    async def scan(
        self, address: str, from_block: int, to_block: int
    ) -> Tuple[List[RawTransferEvent], ScanReport]:
        """
        Fetch Transfer events in ``[from_block, to_block]``.

        Returns:
            The collected events (at most ``max_events``) and a report of
            which chunks were covered

        Raises:
            ConfigurationError: If the range is invalid
        """
        if from_block < 0 or to_block < 0 or from_block > to_block:
            raise ConfigurationError(f"Invalid block range {from_block}-{to_block}")

        total_blocks = to_block - from_block + 1
        events: List[RawTransferEvent] = []
        chunks: List[ChunkResult] = []
        processed = 0
        stopped_early = False

        for chunk_start, chunk_end in chunk_range(from_block, to_block, self.chunk_size):
            self.context.check_cancelled()
            processed += chunk_end - chunk_start + 1
            logger.info(
                f"Fetching transfers for blocks {chunk_start} to {chunk_end} "
                f"({round(processed / total_blocks * 100)}% complete)"
            )
            try:
                chunk_events = await asyncio.wait_for(
                    self.client.query_logs(address, chunk_start, chunk_end),
                    timeout=self.chunk_timeout,
                )
            except Exception as e:
                reason = classify_error(e)
                failure = RangeScanPartialFailure(chunk_start, chunk_end, reason, e)
                self.context.record(Diagnostic.from_error(
                    Stage.RETRIEVING_TRANSFERS,
                    failure,
                    from_block=chunk_start,
                    to_block=chunk_end,
                    reason=reason,
                ))
                chunks.append(ChunkResult(chunk_start, chunk_end, error=reason))
                continue

            chunk_events = list(chunk_events)
            logger.info(
                f"Retrieved {len(chunk_events)} transfer events for blocks {chunk_start}-{chunk_end}"
            )
            room = self.max_events - len(events)
            if len(chunk_events) > room:
                kept, dropped = chunk_events[:room], chunk_events[room:]
                covered_to = min(e.block_number for e in dropped) - 1
                logger.info(
                    f"Keeping {len(kept)} of {len(chunk_events)} events for blocks "
                    f"{chunk_start}-{chunk_end}, complete through block {covered_to}"
                )
                chunks.append(ChunkResult(chunk_start, chunk_end, event_count=len(kept),
                                          truncated=True, covered_to=covered_to))
                chunk_events = kept
            else:
                chunks.append(ChunkResult(chunk_start, chunk_end, event_count=len(chunk_events)))
            events.extend(chunk_events)

            if len(events) >= self.max_events:
                stopped_early = chunk_end < to_block or chunks[-1].truncated
                logger.info(f"Reached {self.max_events} events, stopping retrieval")
                break

        report = ScanReport(
            from_block=from_block,
            to_block=to_block,
            chunks=tuple(chunks),
            event_count=len(events),
            stopped_early=stopped_early,
        )
        logger.info(
            f"Retrieved {len(events)} transfer events covering "
            f"{report.blocks_covered}/{total_blocks} blocks"
        )
        return events, report

    async def build_transfers(
        self,
        events: Sequence[RawTransferEvent],
        resolver: BlockResolver,
        total_supply: str,
        batch_size: int = 20,
    ) -> List[Transfer]:
        """
        Turn raw events into classified Transfer records.

        The distinct blocks are resolved up front in concurrent batches so
        that events sharing a block cost a single lookup.
        """
        if not events:
            return []

        block_numbers = list(dict.fromkeys(event.block_number for event in events))
        logger.info(f"Processing {len(events)} transfer events across {len(block_numbers)} blocks")
        await resolver.prewarm(block_numbers, batch_size=batch_size)

        transfers = []
        for event in events:
            if not event.args or len(event.args) < 3:
                continue
            sender, recipient, value = event.args[:3]
            try:
                amount = str(int(value))
                entry = await resolver.resolve(event.block_number)
            except (TypeError, ValueError) as e:
                logger.warning(
                    f"Error processing transfer event in tx {event.transaction_hash}: {e}"
                )
                continue
            transfers.append(Transfer(
                transaction_hash=event.transaction_hash,
                sender=sender,
                recipient=recipient,
                amount=amount,
                timestamp=entry.timestamp,
                is_large=is_large_transfer(amount, total_supply),
                block_number=event.block_number,
                is_estimated_timestamp=entry.is_estimated,
            ))
        return transfers
