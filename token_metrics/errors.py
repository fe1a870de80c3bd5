"""
Exception hierarchy for the token metrics pipeline.

Only ConfigurationError and ConnectivityError are raised out of an analysis
run. The recoverable errors are recorded as diagnostics on the result.
"""

import asyncio
import re
from typing import List, Optional


class TokenMetricsError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(TokenMetricsError):
    """Unknown network, malformed address or invalid block range."""


class NotAContractError(ConfigurationError):
    """The token address has no contract code deployed."""

    def __init__(self, address: str):
        super().__init__(f"Address {address} is not a contract")
        self.address = address


class ConnectivityError(TokenMetricsError):
    """Every candidate RPC endpoint failed."""

    def __init__(
        self,
        network: str,
        attempted: Optional[List[str]] = None,
        last_error: Optional[BaseException] = None,
        message: Optional[str] = None,
    ):
        self.network = network
        self.attempted = list(attempted or [])
        self.last_error = last_error
        if message is None:
            message = (
                f"Unable to connect to {network}. "
                f"Tried {len(self.attempted)} RPC endpoints, all failed. "
                f"Latest error: {describe_error(last_error)}"
            )
        super().__init__(message)


class ContractReadError(TokenMetricsError):
    """A single token descriptor field could not be read."""

    def __init__(self, field: str, cause: Optional[BaseException] = None):
        super().__init__(f"Failed to read token {field}: {describe_error(cause)}")
        self.field = field
        self.cause = cause


class RangeScanPartialFailure(TokenMetricsError):
    """One chunk of a log scan failed and was skipped."""

    def __init__(self, from_block: int, to_block: int, reason: str,
                 cause: Optional[BaseException] = None):
        super().__init__(
            f"Skipped blocks {from_block}-{to_block}: {reason} ({describe_error(cause)})"
        )
        self.from_block = from_block
        self.to_block = to_block
        self.reason = reason
        self.cause = cause


class ResolutionFallback(TokenMetricsError):
    """A block timestamp was estimated instead of fetched."""

    def __init__(self, block_number: int, timestamp: int,
                 cause: Optional[BaseException] = None):
        super().__init__(
            f"Using estimated timestamp {timestamp} for block {block_number} "
            f"({describe_error(cause)})"
        )
        self.block_number = block_number
        self.timestamp = timestamp
        self.cause = cause


class AnalysisCancelled(TokenMetricsError):
    """The caller aborted a running analysis."""


def describe_error(error: Optional[BaseException]) -> str:
    """Short human-readable form of an exception, including bare timeouts."""
    if error is None:
        return "unknown error"
    text = str(error)
    if not text:
        text = type(error).__name__
    return text


_HTTP_429 = re.compile(r"\b429\b")


def classify_error(error: Optional[BaseException]) -> str:
    """Bucket a remote-call failure into timeout, rate limit or provider error."""
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return "timeout"
    text = describe_error(error).lower()
    if "timeout" in text or "timed out" in text:
        return "timeout"
    if "rate limit" in text or "too many requests" in text or _HTTP_429.search(text):
        return "rate limit"
    return "provider error"
