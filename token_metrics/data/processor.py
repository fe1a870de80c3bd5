"""
Post-processing of analysis results.

Turns the transfers of a TokenMetrics snapshot into pandas frames for
tabular output, daily volume series and CSV export.
"""

import logging
from typing import Any, Dict, Iterable

import numpy as np
import pandas as pd

from ..analysis.market import to_decimal
from ..models import Transfer

logger = logging.getLogger(__name__)

TRANSFER_COLUMNS = [
    "timestamp", "transaction_hash", "block_number", "from", "to",
    "amount", "amount_formatted", "is_large", "is_estimated_timestamp",
]


class DataProcessor:
    """Process and transform transfer data for display and export."""

    def __init__(self):
        """Initialize the DataProcessor."""
        logger.debug("DataProcessor initialized")

    def transfers_to_frame(self, transfers: Iterable[Transfer], decimals: int = 18) -> pd.DataFrame:
        """
        Convert transfers into a DataFrame.

        Args:
            transfers: Transfer records
            decimals: Token decimals used for ``amount_formatted``

        Returns:
            DataFrame with one row per transfer, ``timestamp`` as UTC datetime
        """
        rows = [
            {
                "timestamp": t.timestamp,
                "transaction_hash": t.transaction_hash,
                "block_number": t.block_number,
                "from": t.sender,
                "to": t.recipient,
                "amount": t.amount,
                "amount_formatted": float(to_decimal(t.amount, decimals)),
                "is_large": t.is_large,
                "is_estimated_timestamp": t.is_estimated_timestamp,
            }
            for t in transfers
        ]
        df = pd.DataFrame(rows, columns=TRANSFER_COLUMNS)
        df["timestamp"] = pd.to_datetime(df["timestamp"], unit="s", utc=True)
        return df

    def daily_volume(self, df: pd.DataFrame, price: float = None) -> pd.DataFrame:
        """
        Aggregate transfer volume by day.

        Args:
            df: Frame from ``transfers_to_frame``
            price: Optional USD price to add a ``volume_usd`` column

        Returns:
            DataFrame with date, volume, transaction_count and large_count columns
        """
        columns = ["date", "volume", "transaction_count", "large_count"]
        if df.empty:
            return pd.DataFrame(columns=columns + (["volume_usd"] if price else []))

        grouped = df.assign(date=df["timestamp"].dt.date).groupby("date").agg(
            volume=("amount_formatted", "sum"),
            transaction_count=("transaction_hash", "count"),
            large_count=("is_large", "sum"),
        ).reset_index()
        grouped["large_count"] = grouped["large_count"].astype(int)
        if price:
            grouped["volume_usd"] = grouped["volume"] * price
        return grouped

    def summarize_transfers(self, df: pd.DataFrame) -> Dict[str, Any]:
        """
        Calculate summary statistics for a transfer frame.

        Returns:
            Dictionary with counts, volume statistics and address counts
        """
        if df.empty:
            return {
                "transfer_count": 0,
                "large_transfer_count": 0,
                "total_volume": 0.0,
                "mean_transfer": 0.0,
                "median_transfer": 0.0,
                "max_transfer": 0.0,
                "unique_senders": 0,
                "unique_recipients": 0,
                "estimated_timestamp_share": 0.0,
            }

        amounts = df["amount_formatted"].to_numpy(dtype=float)
        return {
            "transfer_count": int(len(df)),
            "large_transfer_count": int(df["is_large"].sum()),
            "total_volume": float(np.sum(amounts)),
            "mean_transfer": float(np.mean(amounts)),
            "median_transfer": float(np.median(amounts)),
            "max_transfer": float(np.max(amounts)),
            "unique_senders": int(df["from"].nunique()),
            "unique_recipients": int(df["to"].nunique()),
            "estimated_timestamp_share": float(df["is_estimated_timestamp"].mean()),
        }

    def export_to_csv(self, df: pd.DataFrame, filepath: str, index: bool = False) -> bool:
        """
        Export DataFrame to CSV file.

        Args:
            df: DataFrame to export
            filepath: Path to save the CSV file
            index: Whether to include index in export

        Returns:
            True if successful, False otherwise
        """
        try:
            df.to_csv(filepath, index=index)
            logger.info(f"Data exported to {filepath}")
            return True
        except OSError as e:
            logger.error(f"Error exporting to CSV: {e}")
            return False
