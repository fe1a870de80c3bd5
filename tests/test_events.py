"""
Tests for chunked Transfer-log retrieval
"""
import asyncio

import pytest

from token_metrics.context import AnalysisContext
from token_metrics.data.blocks import BlockResolver
from token_metrics.data.events import EventRetriever, chunk_range
from token_metrics.errors import AnalysisCancelled, ConfigurationError
from token_metrics.models import Stage
from tests.conftest import TOKEN_ADDRESS, FakeRpcClient, make_event

SUPPLY = str(1000 * 10 ** 18)


def test_chunk_range_tiles_exactly():
    assert list(chunk_range(0, 249, 100)) == [(0, 99), (100, 199), (200, 249)]


def test_chunk_range_single_block():
    assert list(chunk_range(42, 42, 100)) == [(42, 42)]


def test_chunk_range_is_contiguous():
    chunks = list(chunk_range(17, 10_016, 1000))
    assert chunks[0][0] == 17
    assert chunks[-1][1] == 10_016
    for (_, end), (start, _) in zip(chunks, chunks[1:]):
        assert start == end + 1


def test_chunk_range_rejects_zero_size():
    with pytest.raises(ValueError):
        list(chunk_range(0, 10, 0))


@pytest.mark.asyncio
async def test_scan_collects_events_in_ascending_chunks():
    events = [make_event(10, 1), make_event(150, 2), make_event(220, 3)]
    client = FakeRpcClient(events=events)
    retriever = EventRetriever(client, chunk_size=100)

    collected, report = await retriever.scan(TOKEN_ADDRESS, 0, 249)

    assert collected == events
    assert client.log_requests == [(0, 99), (100, 199), (200, 249)]
    assert report.event_count == 3
    assert report.failed_chunks == []
    assert report.blocks_covered == 250
    assert report.stopped_early is False


@pytest.mark.asyncio
async def test_failed_chunk_is_skipped_and_recorded():
    events = [make_event(10, 1), make_event(150, 2), make_event(220, 3)]
    client = FakeRpcClient(events=events, failing_chunks={(100, 199)})
    context = AnalysisContext()
    retriever = EventRetriever(client, context=context, chunk_size=100)

    collected, report = await retriever.scan(TOKEN_ADDRESS, 0, 249)

    assert [e.block_number for e in collected] == [10, 220]
    assert client.log_requests == [(0, 99), (100, 199), (200, 249)]
    assert len(report.failed_chunks) == 1
    assert report.failed_chunks[0].error == "timeout"
    assert report.blocks_covered == 150

    assert len(context.diagnostics) == 1
    diagnostic = context.diagnostics[0]
    assert diagnostic.kind == "RangeScanPartialFailure"
    assert diagnostic.stage == Stage.RETRIEVING_TRANSFERS
    assert diagnostic.details["from_block"] == 100
    assert diagnostic.details["to_block"] == 199


@pytest.mark.asyncio
async def test_scan_stops_at_event_cap():
    events = [make_event(n, 1) for n in range(0, 300, 10)]
    client = FakeRpcClient(events=events)
    retriever = EventRetriever(client, chunk_size=100, max_events=5)

    collected, report = await retriever.scan(TOKEN_ADDRESS, 0, 299)

    assert len(collected) == 5
    assert client.log_requests == [(0, 99)]
    assert report.stopped_early is True
    assert report.event_count == 5


@pytest.mark.asyncio
async def test_scan_rejects_inverted_range():
    retriever = EventRetriever(FakeRpcClient())
    with pytest.raises(ConfigurationError):
        await retriever.scan(TOKEN_ADDRESS, 200, 100)


@pytest.mark.asyncio
async def test_scan_honours_cancellation():
    cancel = asyncio.Event()
    cancel.set()
    client = FakeRpcClient()
    retriever = EventRetriever(client, context=AnalysisContext(cancel_event=cancel))

    with pytest.raises(AnalysisCancelled):
        await retriever.scan(TOKEN_ADDRESS, 0, 99)
    assert client.log_requests == []


@pytest.mark.asyncio
async def test_build_transfers_classifies_and_shares_block_lookups():
    events = [
        make_event(100, 10 * 10 ** 18, tx="0x01"),
        make_event(100, 1 * 10 ** 18, tx="0x02"),
        make_event(120, 5 * 10 ** 18, tx="0x03"),
    ]
    client = FakeRpcClient(events=events)
    retriever = EventRetriever(client)
    resolver = BlockResolver(client, timeouts=(1, 1, 1))

    transfers = await retriever.build_transfers(events, resolver, SUPPLY)

    assert [t.transaction_hash for t in transfers] == ["0x01", "0x02", "0x03"]
    assert [t.is_large for t in transfers] == [True, False, True]
    assert transfers[0].timestamp == client.timestamp_of(100)
    assert transfers[0].amount == str(10 * 10 ** 18)
    assert client.calls["get_block"] == 2


@pytest.mark.asyncio
async def test_build_transfers_marks_estimated_timestamps():
    events = [make_event(900, 1)]
    client = FakeRpcClient(events=events, failing_blocks={900})
    retriever = EventRetriever(client)
    resolver = BlockResolver(client, timeouts=(1, 1, 1))

    transfers = await retriever.build_transfers(events, resolver, SUPPLY)

    assert len(transfers) == 1
    assert transfers[0].is_estimated_timestamp is True


@pytest.mark.asyncio
async def test_build_transfers_skips_malformed_events():
    events = [make_event(100, 1)]
    events.append(events[0].__class__(transaction_hash="0xbad", block_number=101, args=("0x1",)))
    client = FakeRpcClient(events=events)
    transfers = await EventRetriever(client).build_transfers(
        events, BlockResolver(client, timeouts=(1, 1, 1)), SUPPLY
    )
    assert [t.block_number for t in transfers] == [100]


@pytest.mark.asyncio
async def test_truncated_chunk_reports_only_kept_blocks():
    events = [make_event(n, 1) for n in range(0, 100, 10)]
    retriever = EventRetriever(FakeRpcClient(events=events), chunk_size=100, max_events=5)

    collected, report = await retriever.scan(TOKEN_ADDRESS, 0, 99)

    assert [e.block_number for e in collected] == [0, 10, 20, 30, 40]
    chunk = report.chunks[0]
    assert chunk.truncated is True
    assert chunk.event_count == 5
    assert chunk.covered_to == 49
    assert report.blocks_covered == 50
    assert report.stopped_early is True


@pytest.mark.asyncio
async def test_chunk_filling_cap_exactly_is_not_truncated():
    events = [make_event(n, 1) for n in range(0, 50, 10)]
    retriever = EventRetriever(FakeRpcClient(events=events), chunk_size=100, max_events=5)

    collected, report = await retriever.scan(TOKEN_ADDRESS, 0, 99)

    assert len(collected) == 5
    assert report.chunks[0].truncated is False
    assert report.blocks_covered == 100
    assert report.stopped_early is False
