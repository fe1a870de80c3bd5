"""
Data model for token metrics analysis.

Every record is an immutable snapshot. Raw token quantities (total supply,
transfer amounts) are kept as decimal strings so that 256-bit values never
pass through a float.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Stage(str, Enum):
    """States of an analysis run."""

    IDLE = "idle"
    CONNECTING = "connecting"
    FETCHING_DESCRIPTOR = "fetching_descriptor"
    COMPUTING_MARKET_METRICS = "computing_market_metrics"
    DETERMINING_RANGE = "determining_range"
    RETRIEVING_TRANSFERS = "retrieving_transfers"
    RESOLVING_BLOCKS = "resolving_blocks"
    CLASSIFYING_AND_AGGREGATING = "classifying_and_aggregating"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class Diagnostic:
    """A structured note about something that degraded during a run."""

    stage: Stage
    message: str
    severity: Severity = Severity.WARNING
    kind: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_error(
        cls,
        stage: Stage,
        error: BaseException,
        severity: Severity = Severity.WARNING,
        **details: Any,
    ) -> "Diagnostic":
        return cls(
            stage=stage,
            message=str(error),
            severity=severity,
            kind=type(error).__name__,
            details=details,
        )


@dataclass(frozen=True)
class TokenDescriptor:
    address: str
    name: str
    symbol: str
    decimals: int
    total_supply: str
    is_erc20_compliant: bool
    network: str
    chain_id: Optional[int] = None


@dataclass(frozen=True)
class RawTransferEvent:
    """A decoded Transfer log as returned by the data service."""

    transaction_hash: str
    block_number: int
    args: Tuple[Any, ...]


@dataclass(frozen=True)
class BlockHeader:
    number: int
    timestamp: int


@dataclass(frozen=True)
class BlockCacheEntry:
    timestamp: int
    is_estimated: bool = False


@dataclass(frozen=True)
class Transfer:
    transaction_hash: str
    sender: str
    recipient: str
    amount: str
    timestamp: int
    is_large: bool
    block_number: int
    is_estimated_timestamp: bool = False


@dataclass(frozen=True)
class MarketMetrics:
    price: float
    market_cap: float
    fully_diluted_cap: float
    dilution_delta: float
    dilution_percent: float
    off_market_above_percent: float = 0.0
    off_market_below_percent: float = 0.0
    off_market_percent_of_supply: float = 0.0
    off_market_volume_usd: float = 0.0


@dataclass(frozen=True)
class ChunkResult:
    from_block: int
    to_block: int
    event_count: int = 0
    error: Optional[str] = None
    truncated: bool = False
    # Last block whose events were all kept, for a truncated chunk
    covered_to: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def blocks_covered(self) -> int:
        if not self.succeeded:
            return 0
        last = self.covered_to if self.truncated and self.covered_to is not None else self.to_block
        return max(0, last - self.from_block + 1)


@dataclass(frozen=True)
class ScanReport:
    """What part of the requested block range was actually covered."""

    from_block: int
    to_block: int
    chunks: Tuple[ChunkResult, ...] = ()
    event_count: int = 0
    stopped_early: bool = False

    @property
    def covered_chunks(self) -> List[ChunkResult]:
        return [chunk for chunk in self.chunks if chunk.succeeded]

    @property
    def failed_chunks(self) -> List[ChunkResult]:
        return [chunk for chunk in self.chunks if not chunk.succeeded]

    @property
    def blocks_covered(self) -> int:
        return sum(c.blocks_covered for c in self.covered_chunks)


@dataclass(frozen=True)
class AnalysisRequest:
    address: str
    network: str
    reference_price: Optional[float] = None


@dataclass(frozen=True)
class TokenMetrics:
    """Result of one analysis run."""

    descriptor: TokenDescriptor
    market: Optional[MarketMetrics]
    transfers: Tuple[Transfer, ...]
    large_transfers: Tuple[Transfer, ...]
    scan: Optional[ScanReport] = None
    diagnostics: Tuple[Diagnostic, ...] = ()
    request: Optional[AnalysisRequest] = None

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict form, suitable for JSON output."""
        data = asdict(self)
        data["diagnostics"] = [
            {
                "stage": d.stage.value,
                "message": d.message,
                "severity": d.severity.value,
                "kind": d.kind,
                "details": d.details,
            }
            for d in self.diagnostics
        ]
        return data
