"""
Tests for the command-line interface
"""
import json

import pytest
from click.testing import CliRunner
from rich.console import Console

from token_metrics.analyzer import TokenMetricsAnalyzer
from token_metrics.interfaces import cli as cli_module
from tests.conftest import TOKEN_ADDRESS, ClientFactory, FakeRpcClient, make_event

CONFIG = """
networks:
  testnet:
    chain_id: 1337
    name: Test Network
    rpc_urls: ["fake://a"]
    block_time: 13
data_collection:
  chunk_size: 100
  blocks_per_day: 10
  lookback_days: 30
  connect_backoff: 0
"""


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    monkeypatch.setattr(cli_module, "console", Console(width=200))


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG)
    return str(path)


@pytest.fixture
def fake_endpoint(monkeypatch):
    client = FakeRpcClient(url="fake://a", events=[
        make_event(750, 10 * 10 ** 18, tx="0xlarge"),
        make_event(850, 1 * 10 ** 18, tx="0xsmall"),
    ])
    factory = ClientFactory({"fake://a": client})

    def build(config):
        return TokenMetricsAnalyzer(config=config, client_factory=factory)

    monkeypatch.setattr(cli_module, "_analyzer", lambda ctx: build(ctx.obj["config"]))
    return client


def invoke(config_file, *args):
    runner = CliRunner()
    return runner.invoke(cli_module.cli, ["--config", config_file, "--network", "testnet", *args],
                         obj={})


def test_networks_lists_configured_networks(config_file):
    result = invoke(config_file, "networks")
    assert result.exit_code == 0
    assert "testnet" in result.output
    assert "ethereum" in result.output


def test_info(config_file, fake_endpoint):
    result = invoke(config_file, "info", TOKEN_ADDRESS)
    assert result.exit_code == 0
    assert "Test Token" in result.output


def test_verify(config_file, fake_endpoint):
    result = invoke(config_file, "verify", TOKEN_ADDRESS)
    assert result.exit_code == 0
    assert "ERC20 compliant" in result.output


def test_analyze_json(config_file, fake_endpoint):
    result = invoke(config_file, "analyze", TOKEN_ADDRESS, "--price", "2", "--json")

    assert result.exit_code == 0
    data = json.loads(result.output[result.output.index("{"):])
    assert data["descriptor"]["symbol"] == "TST"
    assert len(data["transfers"]) == 2
    assert len(data["large_transfers"]) == 1
    assert data["market"]["market_cap"] == pytest.approx(2000.0)


def test_transfers_export(config_file, fake_endpoint, tmp_path):
    export = tmp_path / "large.csv"
    result = invoke(config_file, "transfers", TOKEN_ADDRESS, "--large-only",
                    "--export", str(export))

    assert result.exit_code == 0
    assert export.exists()
