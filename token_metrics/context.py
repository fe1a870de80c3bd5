"""
Per-run analysis state: the block cache, the diagnostic trail and the
cancellation flag. One context is created for each analysis run.
"""

import asyncio
import logging
from typing import List, Optional

from cachetools import LRUCache

from .errors import AnalysisCancelled
from .models import BlockCacheEntry, Diagnostic, Severity

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


class BlockCache:
    """Block number to timestamp cache. Entries are only ever added."""

    def __init__(self, maxsize: int = 100000):
        self._entries = LRUCache(maxsize=maxsize)

    def get(self, block_number: int) -> Optional[BlockCacheEntry]:
        return self._entries.get(block_number)

    def put(self, block_number: int, entry: BlockCacheEntry) -> None:
        self._entries[block_number] = entry

    def __contains__(self, block_number: int) -> bool:
        return block_number in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class AnalysisContext:
    def __init__(
        self,
        block_cache: Optional[BlockCache] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.block_cache = block_cache if block_cache is not None else BlockCache()
        self.cancel_event = cancel_event
        self.diagnostics: List[Diagnostic] = []

    def record(self, diagnostic: Diagnostic) -> None:
        """Append a diagnostic and log it at the matching level."""
        self.diagnostics.append(diagnostic)
        logger.log(
            _LOG_LEVELS.get(diagnostic.severity, logging.WARNING),
            f"[{diagnostic.stage.value}] {diagnostic.message}",
        )

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def check_cancelled(self) -> None:
        if self.cancelled:
            raise AnalysisCancelled("Analysis cancelled by caller")
