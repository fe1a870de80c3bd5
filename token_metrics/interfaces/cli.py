"""
Command-line interface for the token metrics analyzer.

Provides commands to analyze a token's recent transfers and market metrics,
inspect or verify a token contract, and export transfers to CSV.
"""

import asyncio
import json
import logging
import sys
from datetime import datetime, timezone

import click
from rich.console import Console
from rich.table import Table

from ..analyzer import TokenMetricsAnalyzer
from ..config import NetworkRegistry, load_config
from ..data.price_fetcher import PriceFetcher
from ..data.processor import DataProcessor
from ..errors import TokenMetricsError
from ..models import Severity, TokenDescriptor, TokenMetrics

console = Console()
logger = logging.getLogger(__name__)

SEVERITY_STYLES = {
    Severity.INFO: "cyan",
    Severity.WARNING: "yellow",
    Severity.ERROR: "red",
}


def _format_timestamp(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


def _short(address: str) -> str:
    if not address or len(address) < 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


def _descriptor_table(descriptor: TokenDescriptor) -> Table:
    table = Table(title="Token Information", show_header=True)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Address", descriptor.address)
    table.add_row("Name", descriptor.name)
    table.add_row("Symbol", descriptor.symbol)
    table.add_row("Decimals", str(descriptor.decimals))
    table.add_row("Total Supply", descriptor.total_supply)
    table.add_row("ERC20 Compliant", "yes" if descriptor.is_erc20_compliant else "no")
    table.add_row("Network", f"{descriptor.network} ({descriptor.chain_id})")
    return table


def _print_diagnostics(metrics_diagnostics) -> None:
    if not metrics_diagnostics:
        return
    table = Table(title="Diagnostics", show_header=True)
    table.add_column("Stage", style="cyan")
    table.add_column("Severity")
    table.add_column("Message")
    for diagnostic in metrics_diagnostics:
        style = SEVERITY_STYLES.get(diagnostic.severity, "white")
        table.add_row(diagnostic.stage.value, f"[{style}]{diagnostic.severity.value}[/{style}]",
                      diagnostic.message)
    console.print(table)


def _print_metrics(metrics: TokenMetrics, limit: int) -> None:
    descriptor = metrics.descriptor
    console.print(_descriptor_table(descriptor))

    if metrics.market is not None:
        market = metrics.market
        table = Table(title="Market Metrics", show_header=True)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("Price", f"${market.price:,.6f}")
        table.add_row("Market Cap", f"${market.market_cap:,.2f}")
        table.add_row("Fully Diluted Cap", f"${market.fully_diluted_cap:,.2f}")
        table.add_row("Dilution", f"${market.dilution_delta:,.2f} ({market.dilution_percent:.2f}%)")
        table.add_row("Off-market Above Price", f"{market.off_market_above_percent:.2f}%")
        table.add_row("Off-market Below Price", f"{market.off_market_below_percent:.2f}%")
        table.add_row("Off-market Share of Supply", f"{market.off_market_percent_of_supply:.2f}%")
        table.add_row("Off-market Volume", f"${market.off_market_volume_usd:,.2f}")
        console.print(table)

    processor = DataProcessor()
    df = processor.transfers_to_frame(metrics.transfers, descriptor.decimals)
    summary = processor.summarize_transfers(df)

    table = Table(title="Transfer Summary", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Transfers", str(summary["transfer_count"]))
    table.add_row("Large Transfers", str(summary["large_transfer_count"]))
    table.add_row("Total Volume", f"{summary['total_volume']:,.4f} {descriptor.symbol}")
    table.add_row("Median Transfer", f"{summary['median_transfer']:,.4f}")
    table.add_row("Unique Senders", str(summary["unique_senders"]))
    table.add_row("Estimated Timestamps", f"{summary['estimated_timestamp_share'] * 100:.1f}%")
    if metrics.scan is not None:
        scan = metrics.scan
        table.add_row("Blocks Scanned",
                      f"{scan.blocks_covered}/{scan.to_block - scan.from_block + 1}")
        table.add_row("Failed Chunks", str(len(scan.failed_chunks)))
    console.print(table)

    if metrics.large_transfers:
        _print_transfers(metrics.large_transfers[:limit], descriptor, "Large Transfers")
    _print_diagnostics(metrics.diagnostics)


def _print_transfers(transfers, descriptor: TokenDescriptor, title: str) -> None:
    processor = DataProcessor()
    df = processor.transfers_to_frame(transfers, descriptor.decimals)
    table = Table(title=title, show_header=True)
    table.add_column("Time (UTC)", style="cyan")
    table.add_column("From", style="yellow")
    table.add_column("To", style="yellow")
    table.add_column("Amount", style="green")
    table.add_column("Tx", style="magenta")
    for transfer, amount in zip(transfers, df["amount_formatted"]):
        time_label = _format_timestamp(transfer.timestamp)
        if transfer.is_estimated_timestamp:
            time_label += " ~"
        table.add_row(time_label, _short(transfer.sender), _short(transfer.recipient),
                      f"{amount:,.4f}", _short(transfer.transaction_hash))
    console.print(table)


@click.group()
@click.option("--config", "-c", default="config.yaml", help="Path to configuration file")
@click.option("--network", "-n", default="ethereum", help="Network key or chain id")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx, config, network, verbose):
    """Token Metrics Analyzer CLI"""
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = load_config(config)
    ctx.obj["network"] = network


def _analyzer(ctx) -> TokenMetricsAnalyzer:
    return TokenMetricsAnalyzer(config=ctx.obj["config"])


@cli.command()
@click.argument("token_address")
@click.option("--price", "-p", type=float, help="Reference USD price for market metrics")
@click.option("--coingecko", is_flag=True, help="Look up the reference price on CoinGecko")
@click.option("--limit", "-l", default=10, help="Number of large transfers to show")
@click.option("--export", "-e", help="Export transfers to CSV file")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.pass_context
def analyze(ctx, token_address, price, coingecko, limit, export, as_json):
    """Analyze recent transfers and market metrics for a token"""
    network = ctx.obj["network"]
    if price is None and coingecko:
        fetcher = PriceFetcher(ctx.obj["config"].get("pricing"))
        network_key = NetworkRegistry.from_config(ctx.obj["config"]).get(network).key
        price = fetcher.get_token_price_usd(token_address, network_key)
        if price is None:
            console.print("[yellow]No CoinGecko price found, skipping market metrics[/yellow]")

    with console.status("[bold green]Analyzing token transfers..."):
        metrics = asyncio.run(_analyzer(ctx).analyze(token_address, network, price))

    if as_json:
        click.echo(json.dumps(metrics.to_dict(), indent=2, default=str))
    else:
        _print_metrics(metrics, limit)

    if export:
        processor = DataProcessor()
        df = processor.transfers_to_frame(metrics.transfers, metrics.descriptor.decimals)
        if processor.export_to_csv(df, export):
            console.print(f"[green]Transfers exported to {export}[/green]")


@cli.command()
@click.argument("token_address")
@click.pass_context
def info(ctx, token_address):
    """Get basic information about a token"""
    with console.status("[bold green]Fetching token information..."):
        descriptor, diagnostics = asyncio.run(
            _analyzer(ctx).token_info(token_address, ctx.obj["network"])
        )
    console.print(_descriptor_table(descriptor))
    _print_diagnostics(diagnostics)


@cli.command()
@click.argument("token_address")
@click.pass_context
def verify(ctx, token_address):
    """Check whether a contract implements the ERC20 read functions"""
    with console.status("[bold green]Verifying contract..."):
        result = asyncio.run(_analyzer(ctx).verify(token_address, ctx.obj["network"]))

    if not result["is_contract"]:
        console.print(f"[red]{token_address} is not a contract[/red]")
        return

    table = Table(title="ERC20 Compliance", show_header=True)
    table.add_column("Function", style="cyan")
    table.add_column("Available")
    for field in ("name", "symbol", "decimals", "totalSupply"):
        table.add_row(f"{field}()", "[green]yes[/green]" if result[field] else "[red]no[/red]")
    console.print(table)
    if result["compliant"]:
        console.print("[green]✓ Contract is ERC20 compliant[/green]")
    else:
        console.print("[yellow]Contract is missing required ERC20 functions[/yellow]")


@cli.command()
@click.argument("token_address")
@click.option("--large-only", is_flag=True, help="Only include large transfers")
@click.option("--daily", is_flag=True, help="Show daily volume instead of individual transfers")
@click.option("--limit", "-l", default=20, help="Number of transfers to show")
@click.option("--export", "-e", help="Export data to CSV file")
@click.pass_context
def transfers(ctx, token_address, large_only, daily, limit, export):
    """List recent transfers or daily volume for a token"""
    with console.status("[bold green]Fetching transfers..."):
        metrics = asyncio.run(_analyzer(ctx).analyze(token_address, ctx.obj["network"]))

    descriptor = metrics.descriptor
    selected = metrics.large_transfers if large_only else metrics.transfers
    processor = DataProcessor()
    df = processor.transfers_to_frame(selected, descriptor.decimals)

    if daily:
        df = processor.daily_volume(df)
        table = Table(title="Daily Volume", show_header=True)
        table.add_column("Date", style="cyan")
        table.add_column("Volume", style="green")
        table.add_column("Transfers")
        table.add_column("Large")
        for _, row in df.iterrows():
            table.add_row(str(row["date"]), f"{row['volume']:,.4f}",
                          str(row["transaction_count"]), str(row["large_count"]))
        console.print(table)
    elif selected:
        _print_transfers(selected[:limit], descriptor,
                         "Large Transfers" if large_only else "Recent Transfers")
    else:
        console.print("[yellow]No transfers found in the analyzed period[/yellow]")

    _print_diagnostics(metrics.diagnostics)

    if export and processor.export_to_csv(df, export):
        console.print(f"[green]Data exported to {export}[/green]")


@cli.command()
@click.pass_context
def networks(ctx):
    """List configured networks and their RPC endpoints"""
    registry = NetworkRegistry.from_config(ctx.obj["config"])
    table = Table(title="Networks", show_header=True)
    table.add_column("Key", style="cyan")
    table.add_column("Name")
    table.add_column("Chain ID")
    table.add_column("Block Time")
    table.add_column("Endpoints", style="green")
    for network in registry:
        table.add_row(network.key, network.name, str(network.chain_id),
                      f"{network.block_time}s", "\n".join(network.rpc_urls))
    console.print(table)


def main():
    """Main entry point for the CLI"""
    try:
        cli(obj={})
    except TokenMetricsError as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        logger.error(f"CLI error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
