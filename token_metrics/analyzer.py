"""
Token metrics analysis pipeline.

Connects to a network, reads the token descriptor, scans roughly the last
month of Transfer events, resolves their timestamps and assembles a
TokenMetrics snapshot. Only configuration and connectivity problems abort a
run; every later stage degrades into a partial result with diagnostics.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from .analysis.market import HeuristicOffMarketStrategy, MarketMetricsCalculator, OffMarketStrategy
from .config import NetworkConfig, NetworkRegistry, RetrievalSettings, load_config
from .context import AnalysisContext, BlockCache
from .data.blocks import BlockResolver
from .data.endpoints import EndpointSelector, EndpointState
from .data.events import EventRetriever
from .data.fetcher import TokenDataFetcher
from .data.rpc import close_client, default_client_factory
from .errors import AnalysisCancelled, ConnectivityError, TokenMetricsError, describe_error
from .models import (
    AnalysisRequest,
    Diagnostic,
    MarketMetrics,
    ScanReport,
    Severity,
    Stage,
    TokenDescriptor,
    TokenMetrics,
    Transfer,
)

logger = logging.getLogger(__name__)


class TokenMetricsAnalyzer:
    """Runs token metrics analyses against configured networks."""

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        config_path: Optional[str] = None,
        client_factory: Callable = default_client_factory,
        endpoint_state: Optional[EndpointState] = None,
        strategy: Optional[OffMarketStrategy] = None,
        on_state: Optional[Callable[[Stage], None]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the analyzer.

        Args:
            config: Configuration mapping; loaded from ``config_path`` when omitted
            config_path: Path to a YAML configuration file
            client_factory: Builds an RPC client for an endpoint URL
            endpoint_state: Shared last-successful-endpoint memory
            strategy: Off-market sales strategy for market metrics
            on_state: Called with each pipeline state as it is entered
            clock: Wall-clock source, in epoch seconds
        """
        self.config = config if config is not None else load_config(config_path)
        self.networks = NetworkRegistry.from_config(self.config)
        self.settings = RetrievalSettings.from_config(self.config)
        self.endpoint_state = endpoint_state if endpoint_state is not None else EndpointState()
        self.selector = EndpointSelector(
            self.networks,
            self.endpoint_state,
            client_factory=client_factory,
            probe_timeout=self.settings.probe_timeout,
        )
        self.calculator = MarketMetricsCalculator(strategy or HeuristicOffMarketStrategy(clock=clock))
        self.on_state = on_state
        self.clock = clock
        self.state = Stage.IDLE

    def _enter(self, stage: Stage) -> None:
        self.state = stage
        logger.debug(f"Analysis state: {stage.value}")
        if self.on_state is not None:
            self.on_state(stage)

    async def connect(self, network: Union[str, int]):
        """
        Connect to a network, retrying the whole failover sequence.

        Raises:
            ConfigurationError: If the network is unknown
            ConnectivityError: If every attempt failed
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.connect_attempts),
            wait=wait_fixed(self.settings.connect_backoff),
            retry=retry_if_exception_type(ConnectivityError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self.selector.connect(network)

    async def analyze(
        self,
        address: str,
        network: Union[str, int],
        reference_price: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TokenMetrics:
        """
        Analyze a token and return a best-effort metrics snapshot.

        Args:
            address: Token contract address
            network: Network key or chain id
            reference_price: Optional USD price enabling market metrics
            cancel_event: Setting this event aborts the run between steps

        Returns:
            TokenMetrics for the token

        Raises:
            ConfigurationError: Unknown network, bad address or not a contract
            ConnectivityError: No endpoint could be reached
            AnalysisCancelled: ``cancel_event`` was set
        """
        context = AnalysisContext(
            block_cache=BlockCache(self.settings.block_cache_size),
            cancel_event=cancel_event,
        )
        self._enter(Stage.CONNECTING)
        try:
            network_config = self.networks.get(network)
            logger.info(f"Starting analysis for token {address} on {network_config.name}")
            client = await self.connect(network_config.key)
        except TokenMetricsError:
            self._enter(Stage.FAILED)
            raise

        request = AnalysisRequest(address=address, network=network_config.key,
                                  reference_price=reference_price)
        try:
            return await self._run(client, network_config, request, context)
        finally:
            await close_client(client)

    async def refresh(self, previous: Union[AnalysisRequest, TokenMetrics],
                      cancel_event: Optional[asyncio.Event] = None) -> TokenMetrics:
        """Re-run the analysis described by an earlier request or result."""
        request = previous.request if isinstance(previous, TokenMetrics) else previous
        if request is None:
            raise ValueError("No request recorded on previous result")
        return await self.analyze(request.address, request.network,
                                  request.reference_price, cancel_event)

    async def _run(
        self,
        client,
        network: NetworkConfig,
        request: AnalysisRequest,
        context: AnalysisContext,
    ) -> TokenMetrics:
        self._enter(Stage.FETCHING_DESCRIPTOR)
        fetcher = TokenDataFetcher(client, network, context, self.settings.call_timeout)
        try:
            descriptor = await fetcher.get_token_info(request.address)
        except TokenMetricsError:
            self._enter(Stage.FAILED)
            raise

        market: Optional[MarketMetrics] = None
        if request.reference_price is not None:
            self._enter(Stage.COMPUTING_MARKET_METRICS)
            market = self._market_metrics(descriptor, request.reference_price, context)
        else:
            logger.info("No price provided, skipping market data calculation")

        self._enter(Stage.DETERMINING_RANGE)
        block_range = await self._determine_range(client, context)
        if block_range is None:
            return self._finish(descriptor, market, [], None, context, request)
        from_block, head = block_range

        resolver = BlockResolver(
            client,
            cache=context.block_cache,
            seconds_per_block=network.block_time,
            timeouts=self.settings.block_timeouts,
            head_timeout=self.settings.call_timeout,
            context=context,
            clock=self.clock,
        )
        resolver.head_hint = head
        retriever = EventRetriever(
            client,
            context,
            chunk_size=self.settings.chunk_size,
            max_events=self.settings.max_events,
            chunk_timeout=self.settings.chunk_timeout,
        )

        self._enter(Stage.RETRIEVING_TRANSFERS)
        try:
            events, scan = await retriever.scan(descriptor.address, from_block, head)
        except AnalysisCancelled:
            raise
        except Exception as e:
            self._stage_error(context, Stage.RETRIEVING_TRANSFERS, e)
            return self._finish(descriptor, market, [], None, context, request)

        self._enter(Stage.RESOLVING_BLOCKS)
        try:
            await resolver.prewarm([event.block_number for event in events],
                                   batch_size=self.settings.prewarm_batch_size)
        except AnalysisCancelled:
            raise
        except Exception as e:
            self._stage_error(context, Stage.RESOLVING_BLOCKS, e)

        self._enter(Stage.CLASSIFYING_AND_AGGREGATING)
        transfers: List[Transfer] = []
        try:
            transfers = await retriever.build_transfers(
                events, resolver, descriptor.total_supply,
                batch_size=self.settings.prewarm_batch_size,
            )
        except AnalysisCancelled:
            raise
        except Exception as e:
            self._stage_error(context, Stage.CLASSIFYING_AND_AGGREGATING, e)

        return self._finish(descriptor, market, transfers, scan, context, request)

    def _market_metrics(self, descriptor: TokenDescriptor, price: float,
                        context: AnalysisContext) -> Optional[MarketMetrics]:
        if price <= 0:
            context.record(Diagnostic(
                stage=Stage.COMPUTING_MARKET_METRICS,
                message=f"Ignoring non-positive reference price {price}",
                severity=Severity.INFO,
            ))
            return None
        try:
            return self.calculator.calculate(descriptor, price)
        except Exception as e:
            self._stage_error(context, Stage.COMPUTING_MARKET_METRICS, e)
            return None

    async def _determine_range(self, client, context: AnalysisContext) -> Optional[Tuple[int, int]]:
        try:
            head = int(await asyncio.wait_for(client.get_block_number(),
                                              timeout=self.settings.call_timeout))
        except Exception as e:
            self._stage_error(context, Stage.DETERMINING_RANGE, e)
            return None

        lookback = self.settings.blocks_per_day * self.settings.lookback_days
        from_block = max(0, head - lookback)
        logger.info(
            f"Analyzing token transfers from block {from_block} to {head} "
            f"(approximately {self.settings.lookback_days} days)"
        )
        return from_block, head

    def _stage_error(self, context: AnalysisContext, stage: Stage, error: BaseException) -> None:
        context.record(Diagnostic(
            stage=stage,
            message=describe_error(error),
            severity=Severity.ERROR,
            kind=type(error).__name__,
        ))

    def _finish(
        self,
        descriptor: TokenDescriptor,
        market: Optional[MarketMetrics],
        transfers: List[Transfer],
        scan: Optional[ScanReport],
        context: AnalysisContext,
        request: AnalysisRequest,
    ) -> TokenMetrics:
        ordered = sorted(transfers, key=lambda t: t.timestamp, reverse=True)
        large = [t for t in ordered if t.is_large]

        if market is not None and large:
            try:
                market = self.calculator.calculate(descriptor, market.price, large)
            except Exception as e:
                self._stage_error(context, Stage.CLASSIFYING_AND_AGGREGATING, e)

        logger.info(f"Processed {len(ordered)} transfers, {len(large)} large (>= 0.5% of supply)")
        self._enter(Stage.DONE)
        return TokenMetrics(
            descriptor=descriptor,
            market=market,
            transfers=tuple(ordered),
            large_transfers=tuple(large),
            scan=scan,
            diagnostics=tuple(context.diagnostics),
            request=request,
        )

    async def token_info(self, address: str, network: Union[str, int]) -> Tuple[TokenDescriptor, List[Diagnostic]]:
        """Fetch only the token descriptor."""
        network_config = self.networks.get(network)
        context = AnalysisContext()
        client = await self.connect(network_config.key)
        try:
            fetcher = TokenDataFetcher(client, network_config, context, self.settings.call_timeout)
            descriptor = await fetcher.get_token_info(address)
        finally:
            await close_client(client)
        return descriptor, list(context.diagnostics)

    async def verify(self, address: str, network: Union[str, int]) -> Dict[str, bool]:
        """Check a contract for the required ERC20 read functions."""
        network_config = self.networks.get(network)
        client = await self.connect(network_config.key)
        try:
            fetcher = TokenDataFetcher(client, network_config, call_timeout=self.settings.call_timeout)
            return await fetcher.check_compliance(address)
        finally:
            await close_client(client)


def analyze_token(
    address: str,
    network: Union[str, int] = "ethereum",
    reference_price: Optional[float] = None,
    config_path: Optional[str] = "config.yaml",
    **kwargs: Any,
) -> TokenMetrics:
    """Synchronous convenience wrapper around ``TokenMetricsAnalyzer.analyze``."""
    analyzer = TokenMetricsAnalyzer(config_path=config_path, **kwargs)
    return asyncio.run(analyzer.analyze(address, network, reference_price))
