#!/usr/bin/env python3
"""
Basic usage example for the Token Metrics Analyzer.

Analyzes the UNI token on Ethereum mainnet with a reference price and
exports the transfers and daily volume to CSV.
"""

import asyncio
import logging
import sys
from pathlib import Path
sys.path.append(str(Path(__file__).parent.parent))

from token_metrics import TokenMetricsAnalyzer
from token_metrics.data.processor import DataProcessor


async def run(token: str, price: float):
    analyzer = TokenMetricsAnalyzer(config_path="config.yaml")
    return await analyzer.analyze(token, "ethereum", reference_price=price)


def main():
    """Run basic token analysis example."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    UNI_TOKEN = "0x1f9840a85d5aF5bf1D1762F925BDADdC4201F984"

    print("🚀 Token Metrics - Basic Usage Example")
    print("=" * 50)

    metrics = asyncio.run(run(UNI_TOKEN, price=6.5))
    descriptor = metrics.descriptor

    print(f"\n📝 {descriptor.name} ({descriptor.symbol})")
    print(f"  Decimals: {descriptor.decimals}")
    print(f"  Total Supply: {descriptor.total_supply}")
    print(f"  ERC20 compliant: {descriptor.is_erc20_compliant}")

    if metrics.market:
        print("\n💰 Market metrics")
        print(f"  Market cap: ${metrics.market.market_cap:,.2f}")
        print(f"  Fully diluted cap: ${metrics.market.fully_diluted_cap:,.2f}")
        print(f"  Off-market volume: ${metrics.market.off_market_volume_usd:,.2f}")

    print("\n📊 Transfers")
    print(f"  Total: {len(metrics.transfers)}")
    print(f"  Large (>= 0.5% of supply): {len(metrics.large_transfers)}")
    if metrics.scan:
        print(f"  Failed chunks: {len(metrics.scan.failed_chunks)}")

    processor = DataProcessor()
    df = processor.transfers_to_frame(metrics.transfers, descriptor.decimals)
    daily = processor.daily_volume(df, price=6.5)

    print("\n💾 Exporting data to CSV...")
    if processor.export_to_csv(df, "uni_transfers.csv"):
        print("  ✅ Transfers exported to uni_transfers.csv")
    if processor.export_to_csv(daily, "uni_daily_volume.csv"):
        print("  ✅ Daily volume exported to uni_daily_volume.csv")

    for diagnostic in metrics.diagnostics:
        print(f"  ⚠️  [{diagnostic.stage.value}] {diagnostic.message}")

    print("\n✨ Analysis complete!")


if __name__ == "__main__":
    main()
