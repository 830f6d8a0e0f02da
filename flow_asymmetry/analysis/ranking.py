"""
Significance and ranking of asymmetry results.

Ranks origin groups by coefficient of variation and flags individual edges
whose share of their group far exceeds the uniform expectation. Both flag
thresholds come from configuration; the defaults (2x expected share, 100
movers) are exploratory calibrations.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from config.settings import AsymmetryConfig, get_config
from flow_asymmetry.data.assembly import FlowTable
from flow_asymmetry.data.models import AsymmetryRecord, ConcentrationFlag

logger = logging.getLogger(__name__)

RECORD_COLUMNS = [
    "origin_id",
    "total_magnitude",
    "destination_count",
    "cv",
    "gini",
    "top_concentration_ratio",
    "top_destination_id",
    "observed_directions",
]

FLAG_COLUMNS = ["origin_id", "destination_id", "observed_share", "expected_share", "ratio", "weight"]


def _ranking_key(record: AsymmetryRecord):
    gini = record.gini if record.gini is not None else -math.inf
    return (-record.cv, -gini, -record.top_concentration_ratio, record.origin_id)


def rank_records(records: Iterable[AsymmetryRecord]) -> List[AsymmetryRecord]:
    """
    Order records by CV descending.

    Gini and then top-concentration ratio break ties (both descending),
    with origin id as the final deterministic key. Records without a CV are
    dropped.
    """
    return sorted((r for r in records if r.cv is not None), key=_ranking_key)


def find_concentration_flags(
    table: FlowTable,
    ratio_threshold: float,
    min_edge_volume: float,
    origins: Optional[Iterable[str]] = None,
) -> List[ConcentrationFlag]:
    """
    Flag edges whose observed share is at least ratio_threshold times the
    uniform expected share.

    Parameters
    ----------
    table : FlowTable
        Canonical flows
    ratio_threshold : float
        Minimum observed/expected share ratio
    min_edge_volume : float
        Minimum edge weight
    origins : Optional[Iterable[str]]
        Restrict to these origin groups; all groups if None

    Returns
    -------
    List[ConcentrationFlag]
        Flags ordered by ratio descending, then origin and destination id
    """
    flags = []
    for origin_id in (origins if origins is not None else table.origins):
        edges = table.group(origin_id)
        if not edges:
            continue
        total = sum(e.magnitude for e in edges)
        expected_share = 1.0 / len(edges)

        for edge in edges:
            observed_share = edge.magnitude / total
            ratio = observed_share / expected_share
            meets_ratio = ratio >= ratio_threshold or math.isclose(ratio, ratio_threshold)
            if meets_ratio and edge.magnitude >= min_edge_volume:
                flags.append(ConcentrationFlag(
                    origin_id=origin_id,
                    destination_id=edge.destination_id,
                    observed_share=observed_share,
                    expected_share=expected_share,
                    ratio=ratio,
                    weight=edge.magnitude,
                ))

    flags.sort(key=lambda f: (-f.ratio, f.origin_id, f.destination_id))
    return flags


def records_to_frame(records: Iterable[AsymmetryRecord]) -> pd.DataFrame:
    return pd.DataFrame([r.to_dict() for r in records], columns=RECORD_COLUMNS)


def flags_to_frame(flags: Iterable[ConcentrationFlag]) -> pd.DataFrame:
    return pd.DataFrame([f.to_dict() for f in flags], columns=FLAG_COLUMNS)


class SignificanceRanker:
    """
    Rank eligible groups and flag concentrated edges.

    Parameters
    ----------
    config : Optional[AsymmetryConfig]
        Flag thresholds and the high-asymmetry CV cut-off. Uses default if None.
    """

    def __init__(self, config: Optional[AsymmetryConfig] = None):
        self.config = config or get_config().asymmetry

    def rank(self, records: Iterable[AsymmetryRecord]) -> List[AsymmetryRecord]:
        return rank_records(records)

    def flag(self, table: FlowTable, origins: Optional[Iterable[str]] = None) -> List[ConcentrationFlag]:
        flags = find_concentration_flags(
            table,
            ratio_threshold=self.config.flag_ratio_threshold,
            min_edge_volume=self.config.min_edge_volume,
            origins=origins,
        )
        logger.info(
            f"Flagged {len(flags)} edges at >= {self.config.flag_ratio_threshold:g}x expected share "
            f"and >= {self.config.min_edge_volume:g} movers"
        )
        return flags

    def summarize(self, ranked: List[AsymmetryRecord]) -> Dict[str, Any]:
        """
        Headline numbers for a ranked table.

        Returns
        -------
        Dict[str, Any]
            n_groups, mean/median CV, count above the high-asymmetry CV,
            and the most asymmetric origin
        """
        cvs = np.array([r.cv for r in ranked], dtype=float)
        return {
            "n_groups": len(ranked),
            "mean_cv": float(np.mean(cvs)) if len(cvs) else None,
            "median_cv": float(np.median(cvs)) if len(cvs) else None,
            "high_asymmetry_cv": self.config.high_asymmetry_cv,
            "n_high_asymmetry": int(np.sum(cvs > self.config.high_asymmetry_cv)),
            "most_asymmetric_origin": ranked[0].origin_id if ranked else None,
            "total_magnitude": float(sum(r.total_magnitude for r in ranked)),
        }
