"""
Tabular I/O for raw flow observations and result tables.

This module provides functions for:
- Converting raw edges to and from DataFrames (the fetch/analyze hand-off)
- Exporting result tables in the formats downstream reporting accepts
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Union

import numpy as np
import pandas as pd

from .models import AnchorRole, RawFlowEdge, SourceTag

logger = logging.getLogger(__name__)

RAW_EDGE_COLUMNS = ["origin_id", "destination_id", "magnitude", "anchor_id", "anchor_role", "year"]


def raw_edges_to_frame(edges: Iterable[RawFlowEdge]) -> pd.DataFrame:
    """
    Flatten raw edges into a DataFrame.

    Parameters
    ----------
    edges : Iterable[RawFlowEdge]
        Raw observations

    Returns
    -------
    pd.DataFrame
        One row per observation with RAW_EDGE_COLUMNS
    """
    records = [
        {
            "origin_id": e.origin_id,
            "destination_id": e.destination_id,
            "magnitude": e.magnitude,
            "anchor_id": e.source.anchor_id,
            "anchor_role": e.source.anchor_role.value,
            "year": e.source.year,
        }
        for e in edges
    ]
    return pd.DataFrame(records, columns=RAW_EDGE_COLUMNS)


def raw_edges_from_frame(frame: pd.DataFrame) -> List[RawFlowEdge]:
    """
    Rebuild raw edges from a DataFrame written by raw_edges_to_frame.

    Identifier columns must already be strings; use load_raw_edges to read
    files so FIPS leading zeros are preserved.
    """
    missing = [c for c in RAW_EDGE_COLUMNS if c not in frame.columns and c != "year"]
    if missing:
        raise ValueError(f"Missing required column(s): {missing}")

    magnitudes = pd.to_numeric(frame["magnitude"], errors="coerce")
    years = frame["year"] if "year" in frame.columns else pd.Series([None] * len(frame), index=frame.index)

    edges = []
    for row, magnitude, year in zip(frame.itertuples(index=False), magnitudes, years):
        edges.append(RawFlowEdge(
            origin_id=str(row.origin_id),
            destination_id=str(row.destination_id),
            magnitude=None if np.isnan(magnitude) else float(magnitude),
            source=SourceTag(
                anchor_id=str(row.anchor_id),
                anchor_role=AnchorRole(row.anchor_role),
                year=None if pd.isna(year) else int(year),
            ),
        ))
    return edges


def load_raw_edges(path: Union[str, Path]) -> List[RawFlowEdge]:
    """
    Load raw edges from a CSV or JSON file.

    Parameters
    ----------
    path : Union[str, Path]
        File written by the fetch command

    Returns
    -------
    List[RawFlowEdge]
        Raw observations
    """
    path = Path(path)
    logger.info(f"Loading raw edges from {path}")
    id_types = {"origin_id": str, "destination_id": str, "anchor_id": str, "anchor_role": str}

    if path.suffix == ".json":
        frame = pd.read_json(path, orient="records", dtype=id_types)
    elif path.suffix == ".parquet":
        frame = pd.read_parquet(path)
    else:
        frame = pd.read_csv(path, dtype=id_types)

    return raw_edges_from_frame(frame)


def export_table(
    data: pd.DataFrame,
    output_path: Union[str, Path],
    format: str = "csv"
) -> Path:
    """
    Export a result table.

    Parameters
    ----------
    data : pd.DataFrame
        Table to export
    output_path : Union[str, Path]
        Output file path (suffix is replaced to match the format)
    format : str
        Output format ("csv", "json", "parquet")

    Returns
    -------
    Path
        Path actually written
    """
    output_path = Path(output_path).with_suffix(f".{format}")
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if format == "csv":
        data.to_csv(output_path, index=False)
    elif format == "parquet":
        data.to_parquet(output_path, index=False)
    elif format == "json":
        data.to_json(output_path, orient="records", indent=2)
    else:
        raise ValueError(f"Unknown format: {format}")

    logger.info(f"Exported {len(data)} records to {output_path}")
    return output_path
