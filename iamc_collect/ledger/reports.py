"""Summarize recorded collections per collection date and lot."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import pandas as pd

from iamc_collect.ledger.models import CollectionStatus, ExportCollectionRow
from iamc_collect.ledger.money import PAISE_PER_RUPEE

SUMMARY_COLUMNS = [
    "collection_date",
    "lot_key",
    "collections",
    "pending",
    "exported",
    "total_paise",
    "total_rupees",
]


def summarize_collections(rows: Sequence[ExportCollectionRow]) -> pd.DataFrame:
    """One row per (collection_date, lot_key) with counts and totals."""
    if not rows:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)

    df = pd.DataFrame(
        {
            "collection_date": [r.collection_date for r in rows],
            "lot_key": [r.lot.key for r in rows],
            "collected_paise": [int(r.collected_paise) for r in rows],
            "is_pending": [r.status is CollectionStatus.PENDING for r in rows],
        }
    )
    grouped = (
        df.groupby(["collection_date", "lot_key"], sort=True)
        .agg(
            collections=("collected_paise", "count"),
            pending=("is_pending", "sum"),
            total_paise=("collected_paise", "sum"),
        )
        .reset_index()
    )
    grouped["pending"] = grouped["pending"].astype(int)
    grouped["exported"] = grouped["collections"] - grouped["pending"]
    grouped["total_paise"] = grouped["total_paise"].astype(int)
    grouped["total_rupees"] = (grouped["total_paise"] / PAISE_PER_RUPEE).round(2)
    return grouped[SUMMARY_COLUMNS]


def write_collection_summary(frame: pd.DataFrame, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(path, index=False)
    return path
